from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.orm import Session
from securevault.core.errors import storage_boundary
from securevault.models.user_session import UserSession


class SessionStore:
    """Server-side mirror of issued tokens, keyed by token fingerprint"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, user_id: int, token_hash: str, expires_at: datetime) -> UserSession:
        record = UserSession(user_id=user_id, token_hash=token_hash, expires_at=expires_at)
        with storage_boundary(self.db):
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        return record

    def find_active(self, token_hash: str) -> Optional[UserSession]:
        """Active, unexpired session for this fingerprint, if any"""
        now = datetime.now(timezone.utc)
        with storage_boundary(self.db):
            return (
                self.db.query(UserSession)
                .filter(
                    UserSession.token_hash == token_hash,
                    UserSession.is_active.is_(True),
                    UserSession.expires_at > now,
                )
                .first()
            )

    def deactivate(self, token_hash: str) -> int:
        with storage_boundary(self.db):
            count = (
                self.db.query(UserSession)
                .filter(UserSession.token_hash == token_hash)
                .update({UserSession.is_active: False}, synchronize_session=False)
            )
            self.db.commit()
        return count

    def deactivate_for_user(self, user_id: int) -> int:
        with storage_boundary(self.db):
            count = (
                self.db.query(UserSession)
                .filter(UserSession.user_id == user_id)
                .update({UserSession.is_active: False}, synchronize_session=False)
            )
            self.db.commit()
        return count

    def cleanup_expired(self) -> int:
        """Delete sessions past their expiry; returns the number removed"""
        now = datetime.now(timezone.utc)
        with storage_boundary(self.db):
            count = (
                self.db.query(UserSession)
                .filter(UserSession.expires_at < now)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        return count
