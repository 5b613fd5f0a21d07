"""
Owner-scoped storage of encrypted vault items.

Every query filters on the caller's user id, so an item owned by someone
else behaves exactly like a missing one. Field values arrive as client-side
ciphertext and are stored verbatim.

Search matches substrings of the stored ciphertext, not of the plaintext.
Ciphertext is freshly randomized per encryption, so a plaintext search term
will generally not match; plaintext search belongs on the client after
decryption (see securevault.client.vault_client.VaultClient.search_local).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from securevault.core.errors import NotFoundError, ValidationError, storage_boundary
from securevault.models.vault_item import CATEGORY_MAX_LENGTH, DEFAULT_CATEGORY, VaultItem
from securevault.services.auth_service import Identity

# Logical field name -> mapped column. The only fields a caller may change.
UPDATABLE_FIELDS = {
    "encrypted_title": VaultItem.encrypted_title,
    "encrypted_username": VaultItem.encrypted_username,
    "encrypted_password": VaultItem.encrypted_password,
    "encrypted_url": VaultItem.encrypted_url,
    "encrypted_notes": VaultItem.encrypted_notes,
    "category": VaultItem.category,
    "is_favorite": VaultItem.is_favorite,
}

CREATABLE_FIELDS = set(UPDATABLE_FIELDS)
REQUIRED_FIELDS = ("encrypted_title", "encrypted_password")
SEARCHABLE_COLUMNS = (
    VaultItem.encrypted_title,
    VaultItem.encrypted_username,
    VaultItem.encrypted_url,
    VaultItem.encrypted_notes,
)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _normalize_category(category: Optional[str]) -> str:
    if category is None or not category.strip():
        return DEFAULT_CATEGORY
    category = category.strip()
    if len(category) > CATEGORY_MAX_LENGTH:
        raise ValidationError(f"Category must be at most {CATEGORY_MAX_LENGTH} characters")
    return category


def _check_fields(fields: Mapping[str, Any], allowed: set) -> None:
    unknown = set(fields) - allowed
    if unknown:
        raise ValidationError(f"Unknown or read-only fields: {', '.join(sorted(unknown))}")
    if "is_favorite" in fields and not isinstance(fields["is_favorite"], bool):
        raise ValidationError("is_favorite must be a boolean")
    if fields.get("category") is not None and not isinstance(fields["category"], str):
        raise ValidationError("category must be a string")
    for name, value in fields.items():
        if name.startswith("encrypted_") and value is not None and not isinstance(value, str):
            raise ValidationError(f"{name} must be a string")


class VaultStore:
    def __init__(self, db: Session):
        self.db = db

    def _owned(self, owner: Identity):
        return self.db.query(VaultItem).filter(VaultItem.user_id == owner.user_id)

    def create(self, owner: Identity, fields: Mapping[str, Any]) -> VaultItem:
        """Store a new item; title and password ciphertext are mandatory"""
        _check_fields(fields, CREATABLE_FIELDS)
        for name in REQUIRED_FIELDS:
            if not fields.get(name):
                raise ValidationError("Title and password are required")

        item = VaultItem(
            user_id=owner.user_id,
            encrypted_title=fields["encrypted_title"],
            encrypted_username=fields.get("encrypted_username"),
            encrypted_password=fields["encrypted_password"],
            encrypted_url=fields.get("encrypted_url"),
            encrypted_notes=fields.get("encrypted_notes"),
            category=_normalize_category(fields.get("category")),
            is_favorite=bool(fields.get("is_favorite", False)),
        )
        with storage_boundary(self.db):
            self.db.add(item)
            self.db.commit()
            self.db.refresh(item)
        return item

    def get(self, owner: Identity, item_id: int) -> VaultItem:
        with storage_boundary(self.db):
            item = self._owned(owner).filter(VaultItem.id == item_id).first()
        if item is None:
            raise NotFoundError()
        return item

    def update(self, owner: Identity, item_id: int, changes: Mapping[str, Any]) -> VaultItem:
        """
        Apply a partial update restricted to UPDATABLE_FIELDS.

        updated_at is always set here; callers cannot supply it.
        """
        _check_fields(changes, set(UPDATABLE_FIELDS))
        if not changes:
            raise ValidationError("No fields to update")
        for name in REQUIRED_FIELDS:
            if name in changes and not changes[name]:
                raise ValidationError("Title and password are required")

        values = {}
        for name, value in changes.items():
            if name == "category":
                value = _normalize_category(value)
            values[UPDATABLE_FIELDS[name]] = value
        values[VaultItem.updated_at] = datetime.now(timezone.utc)

        with storage_boundary(self.db):
            updated = (
                self._owned(owner)
                .filter(VaultItem.id == item_id)
                .update(values, synchronize_session=False)
            )
            self.db.commit()
        if not updated:
            raise NotFoundError()
        return self.get(owner, item_id)

    def delete(self, owner: Identity, item_id: int) -> bool:
        with storage_boundary(self.db):
            deleted = (
                self._owned(owner)
                .filter(VaultItem.id == item_id)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        return deleted > 0

    def list(self, owner: Identity, category: Optional[str] = None) -> list[VaultItem]:
        """Owner's items, newest first, optionally limited to one category"""
        query = self._owned(owner)
        if category:
            query = query.filter(VaultItem.category == category)
        with storage_boundary(self.db):
            return query.order_by(VaultItem.created_at.desc(), VaultItem.id.desc()).all()

    def search(self, owner: Identity, term: str) -> list[VaultItem]:
        """Case-insensitive substring match over stored ciphertext only"""
        pattern = f"%{_escape_like(term)}%"
        query = self._owned(owner).filter(
            or_(*(column.ilike(pattern, escape="\\") for column in SEARCHABLE_COLUMNS))
        )
        with storage_boundary(self.db):
            return query.order_by(VaultItem.created_at.desc(), VaultItem.id.desc()).all()

    def categories(self, owner: Identity) -> list[str]:
        """Distinct categories in use by the owner, ascending"""
        with storage_boundary(self.db):
            rows = (
                self.db.query(VaultItem.category)
                .filter(VaultItem.user_id == owner.user_id, VaultItem.category.isnot(None))
                .distinct()
                .order_by(VaultItem.category)
                .all()
            )
        return [row[0] for row in rows]
