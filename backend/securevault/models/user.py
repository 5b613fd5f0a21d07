from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from securevault.core.database import Base


class User(Base):
    """
    User model representing vault owners.

    Stores authentication credentials only. Passwords are stored as bcrypt
    hashes; the master secret that encrypts vault fields never reaches the
    server.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    # Stored lower-cased so uniqueness is case-insensitive
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    last_login = Column(DateTime(timezone=True), nullable=True)
    # Deactivation keeps the row so vault items are not orphaned
    is_active = Column(Boolean, default=True, nullable=False)
