"""
HTTP client for the vault API that encrypts before sending.

The master secret passed to VaultClient never leaves this object: every
encrypted_* field is produced by securevault.client.crypto before the
request is built, and responses are decrypted locally.
"""

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from securevault.client import crypto

# Plaintext field name -> API field holding its ciphertext
FIELD_MAP = {
    "title": "encrypted_title",
    "username": "encrypted_username",
    "password": "encrypted_password",
    "url": "encrypted_url",
    "notes": "encrypted_notes",
}


class VaultClientError(Exception):
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


@dataclass
class DecryptedItem:
    id: int
    title: str
    password: str
    username: Optional[str] = None
    url: Optional[str] = None
    notes: Optional[str] = None
    category: str = "General"
    is_favorite: bool = False


class VaultClient:
    def __init__(
        self,
        http: httpx.Client,
        master_secret: str,
        iterations: int = crypto.PBKDF2_ITERATIONS,
    ):
        # Fail early rather than on the first encrypt
        if len(master_secret) < crypto.MIN_SECRET_LENGTH:
            raise crypto.CryptoError(
                f"Master secret must be at least {crypto.MIN_SECRET_LENGTH} characters"
            )
        self.http = http
        self._secret = master_secret
        self._iterations = iterations
        self._token: Optional[str] = None

    def _headers(self) -> dict:
        if self._token is None:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    def _request(self, method: str, path: str, **kwargs) -> dict:
        response = self.http.request(method, path, headers=self._headers(), **kwargs)
        if response.is_error:
            try:
                message = response.json().get("error", response.text)
            except ValueError:
                message = response.text
            raise VaultClientError(response.status_code, message)
        return response.json()

    def _encrypt_fields(self, fields: dict) -> dict:
        payload = {}
        for name, value in fields.items():
            if name in FIELD_MAP:
                payload[FIELD_MAP[name]] = (
                    None if value is None else crypto.encrypt(value, self._secret, iterations=self._iterations)
                )
            elif name in ("category", "is_favorite"):
                payload[name] = value
            else:
                raise ValueError(f"Unknown vault field: {name}")
        return payload

    def _decrypt_item(self, item: dict) -> DecryptedItem:
        values = {}
        for name, column in FIELD_MAP.items():
            ciphertext = item.get(column)
            values[name] = None if ciphertext is None else crypto.decrypt(ciphertext, self._secret)
        return DecryptedItem(
            id=item["id"],
            category=item.get("category") or "General",
            is_favorite=bool(item.get("is_favorite")),
            **values,
        )

    # Authentication

    def signup(self, email: str, password: str) -> dict:
        data = self._request("POST", "/api/auth/signup", json={"email": email, "password": password})
        return data["user"]

    def login(self, email: str, password: str) -> dict:
        data = self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        # Keep the token for bearer auth in case the cookie jar is not shared
        self._token = self.http.cookies.get("auth_token")
        return data["user"]

    def logout(self) -> None:
        self._request("POST", "/api/auth/logout")
        self._token = None
        self.http.cookies.clear()

    # Vault items

    def add_item(self, title: str, password: str, **fields: Any) -> DecryptedItem:
        payload = self._encrypt_fields({"title": title, "password": password, **fields})
        return self._decrypt_item(self._request("POST", "/api/vault", json=payload)["item"])

    def get_item(self, item_id: int) -> DecryptedItem:
        return self._decrypt_item(self._request("GET", f"/api/vault/{item_id}")["item"])

    def list_items(self, category: Optional[str] = None) -> list[DecryptedItem]:
        params = {"category": category} if category else None
        data = self._request("GET", "/api/vault", params=params)
        return [self._decrypt_item(item) for item in data["items"]]

    def update_item(self, item_id: int, **fields: Any) -> DecryptedItem:
        payload = self._encrypt_fields(fields)
        return self._decrypt_item(self._request("PUT", f"/api/vault/{item_id}", json=payload)["item"])

    def delete_item(self, item_id: int) -> bool:
        return self._request("DELETE", f"/api/vault/{item_id}")["success"]

    def categories(self) -> list[str]:
        return self._request("GET", "/api/vault/categories")["categories"]

    def search_local(self, term: str) -> list[DecryptedItem]:
        """Plaintext search: decrypt everything locally and match there"""
        needle = term.lower()
        matches = []
        for item in self.list_items():
            haystack = (item.title, item.username, item.url, item.notes)
            if any(value and needle in value.lower() for value in haystack):
                matches.append(item)
        return matches
