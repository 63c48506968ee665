"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from worklob.auth.jwt import verify_token
from worklob.auth.service import get_user_by_id
from worklob.database import get_session
from worklob.db.models import User

_bearer = HTTPBearer(auto_error=False)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User | None:
    """Resolve the bearer token if one is sent; anonymous requests get None."""
    if credentials is None:
        return None
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError:
        return None
    user = await get_user_by_id(db, int(payload["sub"]))
    if user is None or not user.is_active:
        return None
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """
    Extract and verify JWT, return User model.

    Works identically for wallet and email accounts.
    Raises 401/403 on failure.
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="No token, authorization denied")
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    user = await get_user_by_id(db, int(payload["sub"]))
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is deactivated")
    return user


async def get_current_email_user(
    user: User = Depends(get_current_user),
) -> User:
    """Same as get_current_user but additionally verifies auth_method='email'."""
    if user.auth_method != "email":
        raise HTTPException(status_code=400, detail="This endpoint is only for email-authenticated users")
    return user


async def get_wallet_user(
    user: User = Depends(get_current_user),
) -> User:
    """Same as get_current_user but requires a wallet address on the account."""
    if not user.wallet_address:
        raise HTTPException(status_code=400, detail="Wallet address not found")
    return user


async def get_admin_user(
    user: User = Depends(get_current_user),
) -> User:
    """Same as get_current_user but requires ``role == "admin"``."""
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
