from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from securevault.client.crypto import DecryptionError
from securevault.client.vault_client import VaultClient, VaultClientError
from securevault.core.security import create_access_token
from securevault.main import create_app

from conftest import TEST_ITERATIONS, login_headers, make_settings


def _new_item(**extra):
    return {"encryptedTitle": "ct-title", "encryptedPassword": "ct-password", **extra}


# Authentication

def test_signup_sets_session_cookie(client):
    response = client.post("/api/auth/signup", json={"email": "a@x.com", "password": "password1"})
    assert response.status_code == 201
    assert response.json() == {"success": True, "user": {"id": 1, "email": "a@x.com"}}

    name, *attributes = [part.strip().lower() for part in response.headers["set-cookie"].split(";")]
    assert name.startswith("auth_token=")
    assert "httponly" in attributes
    assert "samesite=lax" in attributes
    assert "max-age=604800" in attributes
    assert "secure" not in attributes


def test_cookie_is_secure_in_production():
    settings = make_settings(ENVIRONMENT="production")
    with TestClient(create_app(settings)) as client:
        response = client.post("/api/auth/signup", json={"email": "a@x.com", "password": "password1"})
    assert response.status_code == 201
    attributes = [part.strip().lower() for part in response.headers["set-cookie"].split(";")]
    assert "secure" in attributes


def test_signup_errors(client):
    client.post("/api/auth/signup", json={"email": "a@x.com", "password": "password1"})

    duplicate = client.post("/api/auth/signup", json={"email": "A@X.com", "password": "password1"})
    assert duplicate.status_code == 400
    assert duplicate.json()["code"] == "EMAIL_EXISTS"

    missing = client.post("/api/auth/signup", json={})
    assert missing.status_code == 400
    assert missing.json()["code"] == "INVALID_INPUT"

    weak = client.post("/api/auth/signup", json={"email": "b@x.com", "password": "short"})
    assert weak.status_code == 400
    assert weak.json()["code"] == "WEAK_PASSWORD"

    bad_email = client.post("/api/auth/signup", json={"email": "nope", "password": "password1"})
    assert bad_email.json()["code"] == "INVALID_EMAIL_FORMAT"


def test_login_and_me(client):
    client.post("/api/auth/signup", json={"email": "a@x.com", "password": "password1"})
    client.cookies.clear()

    wrong = client.post("/api/auth/login", json={"email": "a@x.com", "password": "password2"})
    assert wrong.status_code == 401
    assert wrong.json() == {"error": "Invalid email or password", "code": "INVALID_CREDENTIALS"}
    assert client.get("/api/auth/me").status_code == 401

    ok = client.post("/api/auth/login", json={"email": "a@x.com", "password": "password1"})
    assert ok.status_code == 200
    assert ok.json()["user"] == {"id": 1, "email": "a@x.com"}

    # Cookie from login authenticates follow-up requests
    me = client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json() == {"user": {"id": 1, "email": "a@x.com"}}


def test_logout_revokes_the_session(client):
    headers = login_headers(client, "a@x.com")
    assert client.get("/api/auth/me", headers=headers).status_code == 200

    response = client.post("/api/auth/logout", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"success": True}

    # A captured copy of the token no longer works
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_tampered_and_forged_tokens_are_rejected(client, test_settings):
    headers = login_headers(client, "a@x.com")
    token = headers["Authorization"].split(" ", 1)[1]
    tampered = token[:-2] + ("AA" if not token.endswith("AA") else "BB")
    forged = create_access_token(
        {"sub": "1", "email": "a@x.com"},
        secret_key="not-the-server-key",
        algorithm=test_settings.ALGORITHM,
        expires_delta=timedelta(minutes=test_settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )

    for bad in (tampered, forged, "garbage"):
        response = client.get("/api/vault", headers={"Authorization": f"Bearer {bad}"})
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized", "code": "UNAUTHORIZED"}


# Vault items

def test_vault_requires_authentication(client):
    assert client.get("/api/vault").status_code == 401
    assert client.post("/api/vault", json=_new_item()).status_code == 401
    assert client.get("/api/vault/categories").status_code == 401
    assert client.delete("/api/vault/1").status_code == 401


def test_vault_crud(client):
    headers = login_headers(client, "a@x.com")

    created = client.post("/api/vault", json=_new_item(encryptedUrl="ct-url"), headers=headers)
    assert created.status_code == 201
    item = created.json()["item"]
    assert item["encrypted_title"] == "ct-title"
    assert item["encrypted_url"] == "ct-url"
    assert item["category"] == "General"
    assert item["is_favorite"] is False
    assert item["user_id"] == 1
    item_id = item["id"]

    fetched = client.get(f"/api/vault/{item_id}", headers=headers)
    assert fetched.status_code == 200
    assert fetched.json()["item"]["id"] == item_id

    updated = client.put(
        f"/api/vault/{item_id}",
        json={"category": "Work", "isFavorite": True, "encrypted_url": None},
        headers=headers,
    )
    assert updated.status_code == 200
    body = updated.json()["item"]
    assert body["category"] == "Work"
    assert body["is_favorite"] is True
    assert body["encrypted_url"] is None
    assert body["encrypted_title"] == "ct-title"

    listing = client.get("/api/vault", headers=headers).json()["items"]
    assert [i["id"] for i in listing] == [item_id]
    assert client.get("/api/vault", params={"category": "Other"}, headers=headers).json() == {"items": []}
    assert client.get("/api/vault/categories", headers=headers).json() == {"categories": ["Work"]}

    deleted = client.delete(f"/api/vault/{item_id}", headers=headers)
    assert deleted.json() == {"success": True}
    assert client.get(f"/api/vault/{item_id}", headers=headers).status_code == 404
    assert client.delete(f"/api/vault/{item_id}", headers=headers).status_code == 404


def test_vault_validation(client):
    headers = login_headers(client, "a@x.com")

    missing = client.post("/api/vault", json={"encryptedTitle": "ct"}, headers=headers)
    assert missing.status_code == 400
    assert missing.json()["code"] == "INVALID_INPUT"

    smuggled = client.post("/api/vault", json=_new_item(userId=99), headers=headers)
    assert smuggled.status_code == 400
    assert smuggled.json()["code"] == "INVALID_INPUT"

    item_id = client.post("/api/vault", json=_new_item(), headers=headers).json()["item"]["id"]
    empty = client.put(f"/api/vault/{item_id}", json={}, headers=headers)
    assert empty.status_code == 400
    stamp = client.put(f"/api/vault/{item_id}", json={"updated_at": "2020-01-01"}, headers=headers)
    assert stamp.status_code == 400


@pytest.mark.parametrize("bad_id", ["abc", "0", "-3", "1.5", "2147483648", "99999999999999999999999"])
def test_malformed_item_ids(client, bad_id):
    headers = login_headers(client, "a@x.com")
    response = client.get(f"/api/vault/{bad_id}", headers=headers)
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_INPUT"
    assert client.put(f"/api/vault/{bad_id}", json={"category": "x"}, headers=headers).status_code == 400
    assert client.delete(f"/api/vault/{bad_id}", headers=headers).status_code == 400


def test_largest_item_id_is_a_plain_miss(client):
    headers = login_headers(client, "a@x.com")
    assert client.get("/api/vault/2147483647", headers=headers).status_code == 404


def test_overlong_category_is_rejected(client):
    headers = login_headers(client, "a@x.com")
    created = client.post("/api/vault", json=_new_item(category="x" * 101), headers=headers)
    assert created.status_code == 400
    assert created.json()["code"] == "INVALID_INPUT"

    item_id = client.post("/api/vault", json=_new_item(), headers=headers).json()["item"]["id"]
    updated = client.put(f"/api/vault/{item_id}", json={"category": "x" * 101}, headers=headers)
    assert updated.status_code == 400
    assert updated.json()["code"] == "INVALID_INPUT"
    assert client.get(f"/api/vault/{item_id}", headers=headers).json()["item"]["category"] == "General"


def test_items_are_invisible_to_other_users(client):
    alice = login_headers(client, "alice@x.com")
    bob = login_headers(client, "bob@x.com")
    item_id = client.post("/api/vault", json=_new_item(), headers=alice).json()["item"]["id"]

    assert client.get(f"/api/vault/{item_id}", headers=bob).status_code == 404
    assert client.put(f"/api/vault/{item_id}", json={"category": "x"}, headers=bob).status_code == 404
    assert client.delete(f"/api/vault/{item_id}", headers=bob).status_code == 404
    assert client.get("/api/vault", headers=bob).json() == {"items": []}

    # Same body as a genuinely missing id
    assert client.get(f"/api/vault/{item_id}", headers=bob).json() == client.get(
        "/api/vault/999", headers=bob
    ).json()
    assert client.get(f"/api/vault/{item_id}", headers=alice).status_code == 200


def test_search_parameter(client):
    headers = login_headers(client, "a@x.com")
    client.post("/api/vault", json=_new_item(encryptedNotes="note.MARK"), headers=headers)
    client.post("/api/vault", json=_new_item(category="Work"), headers=headers)

    found = client.get("/api/vault", params={"search": ".mark"}, headers=headers).json()["items"]
    assert len(found) == 1
    assert found[0]["encrypted_notes"] == "note.MARK"

    narrowed = client.get("/api/vault", params={"search": ".mark", "category": "Work"}, headers=headers)
    assert narrowed.json() == {"items": []}


# Operations

def test_migration_endpoint(client):
    status = client.get("/api/migrations").json()
    assert status["success"] is True
    assert status["count"] == 2
    assert status["currentVersion"] == 2
    assert [m["name"] for m in status["migrations"]] == ["create_initial_tables", "create_indexes"]

    invalid = client.post("/api/migrations", json={"action": "explode"})
    assert invalid.status_code == 400

    rollback = client.post("/api/migrations", json={"action": "rollback", "targetVersion": 1})
    assert rollback.status_code == 200
    assert rollback.json()["rolledBack"] == [2]
    assert client.get("/api/migrations").json()["currentVersion"] == 1

    migrate = client.post("/api/migrations", json={"action": "migrate"})
    assert migrate.json()["applied"] == [2]
    assert client.post("/api/migrations", json={"action": "migrate"}).json()["applied"] == []


def test_migration_endpoint_admin_token():
    settings = make_settings(ADMIN_TOKEN="ops-token")
    with TestClient(create_app(settings)) as client:
        assert client.get("/api/migrations").status_code == 401
        assert client.get("/api/migrations", headers={"X-Admin-Token": "wrong"}).status_code == 401
        assert client.get("/api/migrations", headers={"X-Admin-Token": "ops-token"}).status_code == 200


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"]["connected"] is True
    assert body["database"]["tables"] == ["migrations", "user_sessions", "users", "vault_items"]


def test_unknown_route_uses_error_shape(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert "error" in response.json()


# Client SDK against the live app

def test_vault_client_round_trip(client):
    vault = VaultClient(client, "my master secret", iterations=TEST_ITERATIONS)
    vault.signup("owner@x.com", "password1")
    vault.login("owner@x.com", "password1")

    added = vault.add_item("GitHub", "hunter22", username="octocat", notes="work account", category="Work")
    vault.add_item("Bank", "s3cret-pin")
    assert added.title == "GitHub"
    assert added.category == "Work"

    # The server only ever saw ciphertext
    raw = client.get(f"/api/vault/{added.id}").json()["item"]
    assert raw["encrypted_title"] != "GitHub"
    assert "hunter22" not in str(raw)

    assert [i.title for i in vault.list_items()] == ["Bank", "GitHub"]
    assert [i.title for i in vault.list_items("Work")] == ["GitHub"]
    assert [i.title for i in vault.search_local("octo")] == ["GitHub"]
    assert vault.categories() == ["General", "Work"]

    updated = vault.update_item(added.id, password="new-password", url="https://github.com")
    assert updated.password == "new-password"
    assert updated.username == "octocat"
    assert vault.get_item(added.id).url == "https://github.com"

    assert vault.delete_item(added.id) is True
    with pytest.raises(VaultClientError) as exc:
        vault.get_item(added.id)
    assert exc.value.status_code == 404

    vault.logout()
    with pytest.raises(VaultClientError) as exc:
        vault.list_items()
    assert exc.value.status_code == 401


def test_vault_client_with_wrong_secret_cannot_read(client):
    owner = VaultClient(client, "my master secret", iterations=TEST_ITERATIONS)
    owner.signup("owner@x.com", "password1")
    owner.login("owner@x.com", "password1")
    owner.add_item("GitHub", "hunter22")

    intruder = VaultClient(client, "a different secret", iterations=TEST_ITERATIONS)
    intruder.login("owner@x.com", "password1")
    with pytest.raises(DecryptionError):
        intruder.list_items()
