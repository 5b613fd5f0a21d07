from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.orm import Session
from securevault.core.errors import ConflictError, storage_boundary
from securevault.models.user import User


def normalize_email(email: str) -> str:
    """Emails compare case-insensitively, so they are stored lower-cased"""
    return email.strip().lower()


class CredentialStore:
    """Persistence for user identities and password hashes"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, email: str, password_hash: str) -> User:
        user = User(email=normalize_email(email), password_hash=password_hash)
        # The unique constraint is the final word when two signups race
        with storage_boundary(self.db, on_conflict=ConflictError()):
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)
        return user

    def find_by_email(self, email: str) -> Optional[User]:
        with storage_boundary(self.db):
            return self.db.query(User).filter(User.email == normalize_email(email)).first()

    def find_by_id(self, user_id: int) -> Optional[User]:
        with storage_boundary(self.db):
            return self.db.query(User).filter(User.id == user_id).first()

    def update_last_login(self, user: User) -> None:
        with storage_boundary(self.db):
            user.last_login = datetime.now(timezone.utc)
            self.db.commit()

    def deactivate(self, user_id: int) -> bool:
        """Flip is_active off; the row and its vault items are kept"""
        with storage_boundary(self.db):
            updated = (
                self.db.query(User)
                .filter(User.id == user_id)
                .update(
                    {User.is_active: False, User.updated_at: datetime.now(timezone.utc)},
                    synchronize_session=False,
                )
            )
            self.db.commit()
        return updated > 0
