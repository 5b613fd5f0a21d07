from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel
from securevault.core.errors import NotFoundError, ValidationError
from securevault.models.vault_item import CATEGORY_MAX_LENGTH
from securevault.services.auth_service import Identity
from securevault.services.vault_store import VaultStore
from securevault.api.dependencies import get_current_identity, get_vault_store

router = APIRouter(prefix="/vault", tags=["vault"])


class VaultItemFields(BaseModel):
    # Accepts snake_case or camelCase keys; anything else is rejected so
    # server-managed columns (user_id, timestamps) can't be smuggled in
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    encrypted_title: Optional[str] = None
    encrypted_username: Optional[str] = None
    encrypted_password: Optional[str] = None
    encrypted_url: Optional[str] = None
    encrypted_notes: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=CATEGORY_MAX_LENGTH)
    is_favorite: Optional[bool] = None


class VaultItemResponse(BaseModel):
    id: int
    user_id: int
    encrypted_title: str
    encrypted_username: Optional[str]
    encrypted_password: str
    encrypted_url: Optional[str]
    encrypted_notes: Optional[str]
    category: Optional[str]
    is_favorite: bool
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)

    @field_serializer('created_at')
    def serialize_created_at(self, value: datetime, _info):
        return value.isoformat() if value else None

    @field_serializer('updated_at')
    def serialize_updated_at(self, value: Optional[datetime], _info):
        return value.isoformat() if value else None


class VaultItemEnvelope(BaseModel):
    item: VaultItemResponse


class VaultItemList(BaseModel):
    items: List[VaultItemResponse]


class CategoryList(BaseModel):
    categories: List[str]


# Upper bound of the INTEGER primary key column
MAX_ITEM_ID = 2**31 - 1


def parse_item_id(raw: str) -> int:
    """Path ids must be positive integers that fit the id column; anything else is a 400"""
    try:
        item_id = int(raw)
    except ValueError:
        raise ValidationError("Invalid item id")
    if not 1 <= item_id <= MAX_ITEM_ID:
        raise ValidationError("Invalid item id")
    return item_id


@router.get("", response_model=VaultItemList)
def list_items(
    category: Optional[str] = None,
    search: Optional[str] = None,
    identity: Identity = Depends(get_current_identity),
    store: VaultStore = Depends(get_vault_store),
):
    """List the caller's items, optionally filtered by category or ciphertext search"""
    if search:
        items = store.search(identity, search)
        if category:
            items = [item for item in items if item.category == category]
    else:
        items = store.list(identity, category)
    return {"items": [VaultItemResponse.model_validate(item) for item in items]}


@router.post("", response_model=VaultItemEnvelope, status_code=status.HTTP_201_CREATED)
def create_item(
    fields: VaultItemFields,
    identity: Identity = Depends(get_current_identity),
    store: VaultStore = Depends(get_vault_store),
):
    """Store a new encrypted item"""
    item = store.create(identity, fields.model_dump(exclude_none=True))
    return {"item": VaultItemResponse.model_validate(item)}


@router.get("/categories", response_model=CategoryList)
def list_categories(
    identity: Identity = Depends(get_current_identity),
    store: VaultStore = Depends(get_vault_store),
):
    """Distinct categories in use by the caller"""
    return {"categories": store.categories(identity)}


@router.get("/{item_id}", response_model=VaultItemEnvelope)
def get_item(
    item_id: str,
    identity: Identity = Depends(get_current_identity),
    store: VaultStore = Depends(get_vault_store),
):
    item = store.get(identity, parse_item_id(item_id))
    return {"item": VaultItemResponse.model_validate(item)}


@router.put("/{item_id}", response_model=VaultItemEnvelope)
def update_item(
    item_id: str,
    fields: VaultItemFields,
    identity: Identity = Depends(get_current_identity),
    store: VaultStore = Depends(get_vault_store),
):
    """Partial update; only the fields present in the body change"""
    item = store.update(identity, parse_item_id(item_id), fields.model_dump(exclude_unset=True))
    return {"item": VaultItemResponse.model_validate(item)}


@router.delete("/{item_id}")
def delete_item(
    item_id: str,
    identity: Identity = Depends(get_current_identity),
    store: VaultStore = Depends(get_vault_store),
):
    if not store.delete(identity, parse_item_id(item_id)):
        raise NotFoundError()
    return {"success": True}
