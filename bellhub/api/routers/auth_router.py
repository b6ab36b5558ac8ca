"""Authentication API routes"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from bellhub.api.core.config import Settings, get_settings
from bellhub.api.core.dependencies import (
    get_account_repository,
    get_auth_service,
    get_current_identity,
)
from bellhub.api.services import AuthService, Identity
from bellhub.shared.repositories.settings import AccountRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["authentication"])


# ============================================
# Request / Response Models
# ============================================


class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class IdentityResponse(BaseModel):
    type: str
    name: str
    account_id: int | None = None


class LogoutResponse(BaseModel):
    message: str


# ============================================
# Endpoints
# ============================================


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    accounts: AccountRepository | None = Depends(get_account_repository),
    settings: Settings = Depends(get_settings),
) -> TokenResponse:
    """Exchange root or account credentials for a bearer token"""
    try:
        identity = await auth_service.authenticate(body.username, body.password, accounts)
    except Exception as e:
        logger.exception(f"Login failed: {e}")
        raise HTTPException(status_code=500, detail="Login failed") from None

    if identity is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = auth_service.create_access_token(identity)
    response.set_cookie(
        key="auth_token",
        value=token,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.jwt_expire_days * 24 * 60 * 60,
    )
    logger.info(f"{identity.type} '{identity.name}' logged in")
    return TokenResponse(access_token=token)


@router.get("/me", response_model=IdentityResponse)
async def me(identity: Identity = Depends(get_current_identity)) -> IdentityResponse:
    """Current identity"""
    return IdentityResponse(**identity.to_dict())


@router.post("/logout", response_model=LogoutResponse)
async def logout(response: Response) -> LogoutResponse:
    response.delete_cookie(key="auth_token")
    return LogoutResponse(message="Logged out")
