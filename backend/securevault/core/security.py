import hashlib
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext


def build_password_context(rounds: int) -> CryptContext:
    """Create a bcrypt hashing context with the given cost factor"""
    # bcrypt is slow by design to prevent brute-force attacks
    # 'deprecated="auto"' lets verify() flag hashes made with weaker settings
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def verify_password(context: CryptContext, plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash using constant-time comparison"""
    return context.verify(plain_password, hashed_password)


def get_password_hash(context: CryptContext, password: str) -> str:
    """Hash a password using bcrypt"""
    # bcrypt generates a salt per hash, so equal passwords hash differently
    return context.hash(password)


def create_access_token(
    data: dict,
    secret_key: str,
    algorithm: str,
    expires_delta: timedelta,
    issued_at: Optional[datetime] = None,
) -> str:
    """Create a signed JWT access token with issue and expiry claims"""
    # Copy data to avoid mutating the original dict
    to_encode = data.copy()

    issued_at = issued_at or datetime.now(timezone.utc)
    # Expiry is part of the signed payload, so it cannot be extended client-side
    to_encode.update({"iat": issued_at, "exp": issued_at + expires_delta})

    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def decode_access_token(token: str, secret_key: str, algorithm: str) -> Optional[dict]:
    """Decode and verify a JWT token"""
    try:
        # Verify signature and expiration automatically
        return jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError:
        # Token is invalid - could be expired, tampered, or wrong secret key
        return None


def hash_token(token: str) -> str:
    """One-way fingerprint of a session token for server-side mirroring"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
