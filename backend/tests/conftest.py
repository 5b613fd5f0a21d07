"""
Shared pytest fixtures.

Every test gets a private in-memory SQLite database (StaticPool keeps the
single connection alive for the lifetime of the Database object), bcrypt at
its minimum cost, and a low PBKDF2 iteration count for client-side crypto.
"""

import os

# Set before securevault is imported so the module-level settings never
# point at a real database
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from securevault.core.config import Settings
from securevault.core.database import Database
from securevault.main import create_app
from securevault.migrations.engine import MigrationEngine
from securevault.services.auth_service import AuthService
from securevault.services.vault_store import VaultStore

TEST_ITERATIONS = 1_000


def make_settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": "sqlite://",
        "SECRET_KEY": "test-secret-key",
        "BCRYPT_ROUNDS": 4,
        "AUTO_MIGRATE": True,
        "SESSION_MIRRORING": True,
        "ENVIRONMENT": "development",
        "LOG_LEVEL": "WARNING",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def test_settings():
    return make_settings()


@pytest.fixture
def database(test_settings):
    db = Database(test_settings)
    MigrationEngine(db.engine).migrate()
    yield db
    db.dispose()


@pytest.fixture
def db_session(database):
    with database.session() as session:
        yield session


@pytest.fixture
def auth_service(db_session, test_settings):
    return AuthService(db_session, test_settings)


@pytest.fixture
def vault_store(db_session):
    return VaultStore(db_session)


@pytest.fixture
def client(test_settings):
    with TestClient(create_app(test_settings)) as c:
        yield c


def login_headers(client: TestClient, email: str, password: str = "password1") -> dict:
    """Sign up (if needed) and log in, returning bearer headers for that user.

    The cookie jar is cleared afterwards so several users can be driven from
    one client without their cookies overriding each other.
    """
    client.post("/api/auth/signup", json={"email": email, "password": password})
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    token = response.cookies["auth_token"]
    client.cookies.clear()
    return {"Authorization": f"Bearer {token}"}
