"""User routes: register, login, refresh, me."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.jwt import create_access_token, create_refresh_token, get_subject_from_refresh
from app.config import get_settings
from app.db.session import get_db
from app.limiter import limiter
from app.users.models import RefreshRequest, TokenPair, User, UserLogin, UserRegister, UserResponse
from app.users.service import authenticate, get_user, register_user

router = APIRouter(prefix="/api", tags=["users"])
log = logging.getLogger(__name__)


def _token_pair(user: User) -> TokenPair:
    settings = get_settings()
    return TokenPair(
        access_token=create_access_token(user.id),
        refresh_token=create_refresh_token(user.id),
        expires_in=settings.access_token_expire_minutes * 60,
    )


@router.post("/auth/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def register(
    request: Request,
    body: UserRegister,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> UserResponse:
    """Create an account. Disabled when SKYVAULT_ALLOW_REGISTRATION is false."""
    if not get_settings().allow_registration:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Registration is disabled")
    try:
        user = await register_user(session, body)
    except ValueError as e:
        detail = str(e)
        code = status.HTTP_409_CONFLICT if "already exists" in detail else status.HTTP_400_BAD_REQUEST
        raise HTTPException(status_code=code, detail=detail)
    return UserResponse.model_validate(user)


@router.post("/auth/login", response_model=TokenPair)
@limiter.limit("10/minute")
async def login(
    request: Request,
    body: UserLogin,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> TokenPair:
    """Login with email and password; returns access and refresh tokens."""
    user = await authenticate(session, body.email, body.password)
    if not user:
        log.warning("Login failed for email=%s", body.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    log.info("Login successful for user=%s", user.id)
    return _token_pair(user)


@router.post("/auth/refresh", response_model=TokenPair)
@limiter.limit("20/minute")
async def refresh(
    request: Request,
    body: RefreshRequest,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> TokenPair:
    """Exchange refresh token for new access and refresh tokens."""
    user_id = get_subject_from_refresh(body.refresh_token)
    if not user_id:
        log.warning("Refresh failed: invalid or expired token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )
    user = await get_user(session, user_id)
    if not user:
        log.warning("Refresh failed: user not found id=%s", user_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return _token_pair(user)


@router.get("/users/me", response_model=UserResponse)
async def me(
    current_user: Annotated[User, Depends(get_current_user)],
) -> UserResponse:
    """Return current authenticated user."""
    return UserResponse.model_validate(current_user)
