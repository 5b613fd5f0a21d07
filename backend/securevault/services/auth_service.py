"""
Authentication and session lifecycle.

Passwords are verified against bcrypt hashes; successful logins receive a
signed JWT that carries only the user id and email. With session mirroring
on, a SHA-256 fingerprint of each token is recorded so logout and account
deactivation can revoke tokens before they expire. Without mirroring a
token stays valid until its natural expiry.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.orm import Session

from securevault.core.config import Settings
from securevault.core.errors import AuthenticationError, ConflictError, ValidationError
from securevault.core.security import (
    build_password_context,
    create_access_token,
    decode_access_token,
    get_password_hash,
    hash_token,
    verify_password,
)
from securevault.models.user import User
from securevault.services.credential_store import CredentialStore
from securevault.services.session_store import SessionStore

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
# bcrypt ignores everything past 72 bytes
MAX_PASSWORD_BYTES = 72

_password_contexts = {}
_dummy_hashes = {}


def _password_context(rounds: int):
    # CryptContext is immutable config, safe to share between requests
    if rounds not in _password_contexts:
        context = build_password_context(rounds)
        _password_contexts[rounds] = context
        # Verified against when the email is unknown, so both paths pay for a hash
        _dummy_hashes[rounds] = get_password_hash(context, secrets.token_urlsafe(16))
    return _password_contexts[rounds], _dummy_hashes[rounds]


@dataclass(frozen=True)
class Identity:
    """Verified caller, derived from a valid session token"""
    user_id: int
    email: str
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class LoginResult:
    token: str
    id: int
    email: str
    expires_at: datetime


class AuthService:
    def __init__(self, db: Session, settings: Settings):
        self.settings = settings
        self.credentials = CredentialStore(db)
        self.sessions = SessionStore(db)
        self._pwd_context, self._dummy_hash = _password_context(settings.BCRYPT_ROUNDS)

    @property
    def token_lifetime(self) -> timedelta:
        return timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    def signup(self, email: Optional[str], password: Optional[str]) -> User:
        """Register a new user; raises ValidationError or ConflictError"""
        if not email or not password:
            raise ValidationError("Email and password are required", code="INVALID_INPUT")

        try:
            validate_email(email.strip(), check_deliverability=False)
        except EmailNotValidError:
            raise ValidationError("Invalid email format", code="INVALID_EMAIL_FORMAT")

        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
                code="WEAK_PASSWORD",
            )
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(
                f"Password must be at most {MAX_PASSWORD_BYTES} bytes",
                code="INVALID_INPUT",
            )

        # Explicit check gives the common case a clean error; the unique
        # constraint still catches concurrent signups in create()
        if self.credentials.find_by_email(email) is not None:
            raise ConflictError()

        user = self.credentials.create(email, get_password_hash(self._pwd_context, password))
        logger.info(f"User {user.id} signed up")
        return user

    def login(self, email: Optional[str], password: Optional[str]) -> LoginResult:
        """Verify credentials and issue a session token"""
        if not email or not password:
            raise ValidationError("Email and password are required", code="INVALID_INPUT")

        invalid = AuthenticationError("Invalid email or password", code="INVALID_CREDENTIALS")

        user = self.credentials.find_by_email(email)
        # No stored password is longer than MAX_PASSWORD_BYTES, so a longer one
        # could only match through truncation
        if user is None or len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            # Burn the same bcrypt work as a real check so timing doesn't reveal the email
            verify_password(self._pwd_context, password, self._dummy_hash)
            raise invalid

        if not verify_password(self._pwd_context, password, user.password_hash):
            logger.info(f"Failed login for user {user.id}")
            raise invalid

        if not user.is_active:
            raise AuthenticationError("Account is deactivated", code="ACCOUNT_DEACTIVATED")

        self.credentials.update_last_login(user)
        token, expires_at = self.issue_session(user)
        logger.info(f"User {user.id} logged in")
        return LoginResult(token=token, id=user.id, email=user.email, expires_at=expires_at)

    def issue_session(self, user: User) -> tuple[str, datetime]:
        """Sign a token for the user and mirror its fingerprint when enabled"""
        issued_at = datetime.now(timezone.utc)
        expires_at = issued_at + self.token_lifetime
        token = create_access_token(
            # jti keeps tokens issued in the same second distinct
            {"sub": str(user.id), "email": user.email, "jti": secrets.token_hex(8)},
            secret_key=self.settings.SECRET_KEY,
            algorithm=self.settings.ALGORITHM,
            expires_delta=self.token_lifetime,
            issued_at=issued_at,
        )
        if self.settings.SESSION_MIRRORING:
            self.sessions.create(user.id, hash_token(token), expires_at)
        return token, expires_at

    def verify(self, token: Optional[str]) -> Optional[Identity]:
        """
        Return the identity a token asserts, or None.

        Bad signature, altered payload, expiry, malformed claims and revoked
        sessions all yield None; callers can't tell them apart.
        """
        if not token:
            return None

        payload = decode_access_token(token, self.settings.SECRET_KEY, self.settings.ALGORITHM)
        if payload is None:
            return None

        try:
            user_id = int(payload["sub"])
            email = str(payload["email"])
            issued_at = datetime.fromtimestamp(payload["iat"], tz=timezone.utc)
            expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        except (KeyError, ValueError, TypeError):
            return None

        if self.settings.SESSION_MIRRORING and self.sessions.find_active(hash_token(token)) is None:
            return None

        return Identity(user_id=user_id, email=email, issued_at=issued_at, expires_at=expires_at)

    def logout(self, token: Optional[str]) -> None:
        """Revoke the mirrored session; the caller must also drop the cookie"""
        if token and self.settings.SESSION_MIRRORING:
            self.sessions.deactivate(hash_token(token))

    def deactivate(self, user_id: int) -> bool:
        """Disable an account and revoke all of its sessions"""
        found = self.credentials.deactivate(user_id)
        if found:
            self.sessions.deactivate_for_user(user_id)
            logger.info(f"User {user_id} deactivated")
        return found

    def cleanup_expired_sessions(self) -> int:
        return self.sessions.cleanup_expired()
