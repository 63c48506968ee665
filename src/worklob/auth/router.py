"""Authentication router: all /api/v1/auth/* endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from worklob.auth.dependencies import get_current_email_user, get_current_user
from worklob.auth.jwt import create_access_token
from worklob.auth.password import PasswordStrengthError
from worklob.auth.schemas import (
    AuthResponse,
    ChangePasswordRequest,
    LobTokenBalances,
    LoginRequest,
    RegisterEmailRequest,
    RegisterWalletRequest,
    UserResponse,
    UserStats,
    UserWallet,
)
from worklob.auth.service import (
    DuplicateAccountError,
    InvalidCredentialsError,
    authenticate,
    change_password,
    register_email_user,
    register_wallet_user,
)
from worklob.config import get_settings
from worklob.database import get_session
from worklob.db.models import User
from worklob.redis_client import get_redis

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def user_response(user: User) -> UserResponse:
    """Build a UserResponse from a User model."""
    return UserResponse(
        id=user.id,
        username=user.username,
        auth_method=user.auth_method,
        email=user.email,
        wallet_address=user.wallet_address,
        connected_wallet_address=user.connected_wallet_address,
        role=user.role,
        referral_code=user.referral_code,
        stats=UserStats(
            activity_points=user.activity_points or 0,
            votes_cast=user.votes_cast or 0,
            proposals_submitted=user.proposals_submitted or 0,
            disputes_resolved=user.disputes_resolved or 0,
        ),
        wallet=UserWallet(
            balance=float(user.wallet_balance or 0),
            escrow_balance=float(user.escrow_balance or 0),
        ),
        lob_tokens=LobTokenBalances(
            pending=float(user.lob_pending or 0),
            available=float(user.lob_available or 0),
            withdrawn=float(user.lob_withdrawn or 0),
        ),
        created_at=user.created_at,
        last_seen=user.last_seen,
    )


def _issue_token(user: User) -> AuthResponse:
    settings = get_settings()
    method = user.identity.kind
    return AuthResponse(
        token=create_access_token(user.id, method, username=user.username),
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        login_method=method,
        user=user_response(user),
    )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@router.post("/register-email", response_model=AuthResponse, status_code=201)
async def register_email(
    body: RegisterEmailRequest,
    db: AsyncSession = Depends(get_session),
) -> AuthResponse:
    """Register with username + email + password."""
    try:
        user = await register_email_user(
            db,
            username=body.username,
            email=body.email,
            password=body.password,
            referred_by=body.referred_by,
        )
    except (PasswordStrengthError, DuplicateAccountError) as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e

    await db.commit()
    await db.refresh(user)
    return _issue_token(user)


@router.post("/register-wallet", response_model=AuthResponse, status_code=201)
async def register_wallet(
    body: RegisterWalletRequest,
    db: AsyncSession = Depends(get_session),
) -> AuthResponse:
    """Register with username + wallet address."""
    try:
        user = await register_wallet_user(
            db,
            username=body.username,
            wallet_address=body.wallet_address,
            referred_by=body.referred_by,
        )
    except ValueError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e

    await db.commit()
    await db.refresh(user)
    return _issue_token(user)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
) -> AuthResponse:
    """Login with email + password, or with a registered wallet address."""
    identifier = body.identifier
    if not identifier:
        raise HTTPException(status_code=400, detail="Email or wallet address is required")
    if body.wallet_address is None and not body.password:
        raise HTTPException(status_code=400, detail="Password is required")

    try:
        user = await authenticate(db, redis, identifier, body.password)
    except InvalidCredentialsError as e:
        await db.rollback()
        raise HTTPException(status_code=401, detail=str(e)) from e
    except PermissionError as e:
        await db.rollback()
        detail = str(e)
        if "locked" in detail.lower():
            raise HTTPException(status_code=429, detail=detail) from e
        raise HTTPException(status_code=403, detail=detail) from e

    await db.commit()
    logger.info("user_login", user_id=user.id, method=user.auth_method)
    return _issue_token(user)


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)) -> UserResponse:
    """Current account."""
    return user_response(user)


@router.post("/change-password")
async def change_password_endpoint(
    body: ChangePasswordRequest,
    user: User = Depends(get_current_email_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    """Change password (email accounts only)."""
    try:
        await change_password(db, user, body.current_password, body.new_password)
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    except PasswordStrengthError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return {"status": "password_changed"}
