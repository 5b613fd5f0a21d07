from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Boolean
from securevault.core.database import Base

DEFAULT_CATEGORY = "General"
CATEGORY_MAX_LENGTH = 100


class VaultItem(Base):
    """
    One stored secret.

    Every encrypted_* column holds client-produced ciphertext. The server
    stores and returns it verbatim and never attempts to decrypt it.
    """
    __tablename__ = "vault_items"

    id = Column(Integer, primary_key=True, index=True)
    # Owner - every query against this table is filtered on it
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    encrypted_title = Column(Text, nullable=False)
    encrypted_username = Column(Text, nullable=True)
    encrypted_password = Column(Text, nullable=False)
    encrypted_url = Column(Text, nullable=True)
    encrypted_notes = Column(Text, nullable=True)
    category = Column(String(CATEGORY_MAX_LENGTH), default=DEFAULT_CATEGORY)
    is_favorite = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
