import secrets
from typing import Optional
from fastapi import Depends, Header, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from securevault.core.config import Settings
from securevault.core.database import get_db
from securevault.core.errors import AuthenticationError
from securevault.services.auth_service import AuthService, Identity
from securevault.services.vault_store import VaultStore

# Bearer scheme - lets API clients send the token in the Authorization header
# when they don't carry the session cookie
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login", auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_auth_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> AuthService:
    return AuthService(db, settings)


def get_vault_store(db: Session = Depends(get_db)) -> VaultStore:
    return VaultStore(db)


def get_session_token(
    request: Request,
    bearer: Optional[str] = Depends(oauth2_scheme),
    settings: Settings = Depends(get_settings),
) -> Optional[str]:
    """Session token from the auth cookie, falling back to a bearer header"""
    return request.cookies.get(settings.AUTH_COOKIE_NAME) or bearer


def get_current_identity(
    token: Optional[str] = Depends(get_session_token),
    auth: AuthService = Depends(get_auth_service),
) -> Identity:
    """
    Require a valid session.

    Missing, tampered, expired and revoked tokens all produce the same 401
    so the response reveals nothing about why the token was rejected.
    """
    identity = auth.verify(token)
    if identity is None:
        raise AuthenticationError()
    return identity


def require_admin_token(
    x_admin_token: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Gate operational endpoints when ADMIN_TOKEN is configured"""
    if settings.ADMIN_TOKEN is None:
        return
    if x_admin_token is None or not secrets.compare_digest(x_admin_token, settings.ADMIN_TOKEN):
        raise AuthenticationError()
