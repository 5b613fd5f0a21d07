from typing import Optional
from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from securevault.core.config import Settings
from securevault.services.auth_service import AuthService, Identity
from securevault.api.dependencies import (
    get_auth_service,
    get_current_identity,
    get_session_token,
    get_settings,
)

router = APIRouter(prefix="/auth", tags=["auth"])


class Credentials(BaseModel):
    # Optional so that missing fields reach the service and get INVALID_INPUT
    email: Optional[str] = None
    password: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    email: str


class AuthResponse(BaseModel):
    success: bool
    user: UserResponse


class MeResponse(BaseModel):
    user: UserResponse


def set_auth_cookie(response: Response, token: str, settings: Settings) -> None:
    # httpOnly keeps scripts from reading the token; lax same-site keeps it
    # off cross-site subrequests
    response.set_cookie(
        key=settings.AUTH_COOKIE_NAME,
        value=token,
        max_age=settings.cookie_max_age,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def signup(
    credentials: Credentials,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    """Register a new user and start a session"""
    user = auth.signup(credentials.email, credentials.password)
    token, _ = auth.issue_session(user)
    set_auth_cookie(response, token, settings)
    return {"success": True, "user": {"id": user.id, "email": user.email}}


@router.post("/login", response_model=AuthResponse)
def login(
    credentials: Credentials,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    """Verify credentials and set the session cookie"""
    result = auth.login(credentials.email, credentials.password)
    set_auth_cookie(response, result.token, settings)
    return {"success": True, "user": {"id": result.id, "email": result.email}}


@router.post("/logout")
def logout(
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    """Revoke the current session and clear the cookie"""
    auth.logout(token)
    response.delete_cookie(
        key=settings.AUTH_COOKIE_NAME,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )
    return {"success": True}


@router.get("/me", response_model=MeResponse)
def me(identity: Identity = Depends(get_current_identity)):
    """Identity asserted by the current session"""
    return {"user": {"id": identity.user_id, "email": identity.email}}
