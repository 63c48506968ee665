"""
Account business logic.

Handles user creation for both identity variants, login, account lockout,
and referral-code bookkeeping at sign-up.
"""

from __future__ import annotations

import secrets
import string
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select

from worklob.auth.address_validation import normalize_wallet_address, validate_wallet_address
from worklob.auth.password import (
    check_needs_rehash,
    hash_password,
    validate_password_strength,
    verify_password,
)
from worklob.config import get_settings
from worklob.db.models import User
from worklob.referral.service import ReferralError, process_referral

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

_CODE_ALPHABET = string.digits + string.ascii_uppercase


class DuplicateAccountError(ValueError):
    """Raised when a username, email or wallet address is already registered."""


class InvalidCredentialsError(ValueError):
    """Raised when login credentials do not match an account."""


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email (case-insensitive)."""
    result = await db.execute(select(User).where(func.lower(User.email) == email.strip().lower()))
    return result.scalar_one_or_none()


async def get_user_by_wallet(db: AsyncSession, wallet_address: str) -> User | None:
    """Fetch a user by wallet address (stored lower-cased)."""
    result = await db.execute(select(User).where(User.wallet_address == normalize_wallet_address(wallet_address)))
    return result.scalar_one_or_none()


async def get_user_by_username(db: AsyncSession, username: str) -> User | None:
    """Fetch a user by username (case-insensitive)."""
    result = await db.execute(select(User).where(User.username_normalized == username.strip().lower()))
    return result.scalar_one_or_none()


def generate_referral_code(username: str) -> str:
    """Username followed by six random upper-case base36 characters."""
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))
    return f"{username}{suffix}"


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


async def _ensure_username_free(db: AsyncSession, username: str) -> None:
    if await get_user_by_username(db, username) is not None:
        msg = "Username already exists"
        raise DuplicateAccountError(msg)


async def _attach_referral(db: AsyncSession, user: User, referred_by: str | None) -> None:
    """Create the pending referral for a new user. Unknown codes are ignored."""
    if not referred_by:
        return
    try:
        async with db.begin_nested():
            referral = await process_referral(db, referred_by.strip(), user.id)
            user.referred_by_id = referral.referrer_id
    except ReferralError as e:
        logger.info("signup_referral_skipped", user_id=user.id, code=referred_by, reason=str(e))


async def register_email_user(
    db: AsyncSession,
    username: str,
    email: str,
    password: str,
    referred_by: str | None = None,
) -> User:
    """
    Register a new user with email + password.

    Raises:
        PasswordStrengthError: If the password is too short or too long.
        DuplicateAccountError: If the username or email is taken.
    """
    validate_password_strength(password)

    username = username.strip()
    email = email.strip().lower()
    await _ensure_username_free(db, username)
    if await get_user_by_email(db, email) is not None:
        msg = "Email already exists"
        raise DuplicateAccountError(msg)

    settings = get_settings()
    user = User(
        username=username,
        username_normalized=username.lower(),
        auth_method="email",
        email=email,
        password_hash=hash_password(password),
        wallet_balance=Decimal(settings.default_wallet_balance),
        referral_code=generate_referral_code(username),
        created_at=datetime.now(timezone.utc),
        last_seen=datetime.now(timezone.utc),
    )
    db.add(user)
    await db.flush()
    logger.info("user_created", user_id=user.id, method="email")

    await _attach_referral(db, user, referred_by)
    return user


async def register_wallet_user(
    db: AsyncSession,
    username: str,
    wallet_address: str,
    referred_by: str | None = None,
) -> User:
    """
    Register a new user identified only by a wallet address.

    Raises:
        ValueError: If the address is malformed.
        DuplicateAccountError: If the username or wallet is taken.
    """
    address = validate_wallet_address(wallet_address)
    username = username.strip()
    await _ensure_username_free(db, username)
    if await get_user_by_wallet(db, address) is not None:
        msg = "Wallet address already registered"
        raise DuplicateAccountError(msg)

    settings = get_settings()
    user = User(
        username=username,
        username_normalized=username.lower(),
        auth_method="wallet",
        wallet_address=address,
        wallet_balance=Decimal(settings.default_wallet_balance),
        referral_code=generate_referral_code(username),
        created_at=datetime.now(timezone.utc),
        last_seen=datetime.now(timezone.utc),
    )
    db.add(user)
    await db.flush()
    logger.info("user_created", user_id=user.id, method="wallet", wallet_address=address)

    await _attach_referral(db, user, referred_by)
    return user


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


async def authenticate(
    db: AsyncSession,
    redis: Redis,
    identifier: str,
    password: str | None = None,
) -> User:
    """
    Authenticate by email + password, or by wallet address alone.

    An identifier starting with ``0x`` is treated as a wallet address.

    Raises:
        InvalidCredentialsError: If credentials are invalid.
        PermissionError: If the account is locked or deactivated.
    """
    identifier = identifier.strip()
    if identifier.lower().startswith("0x"):
        user = await get_user_by_wallet(db, identifier)
        if user is None:
            msg = "Wallet not registered"
            raise InvalidCredentialsError(msg)
        if not user.is_active:
            msg = "Account is deactivated"
            raise PermissionError(msg)
    else:
        user = await _authenticate_email(db, redis, identifier, password or "")

    user.last_seen = datetime.now(timezone.utc)
    await db.flush()
    return user


async def _authenticate_email(db: AsyncSession, redis: Redis, email: str, password: str) -> User:
    user = await get_user_by_email(db, email)
    if user is None or user.auth_method != "email":
        msg = "Invalid email or password"
        raise InvalidCredentialsError(msg)

    if await check_account_lockout(redis, user.id):
        msg = "Account temporarily locked. Try again later."
        raise PermissionError(msg)

    if not user.is_active:
        msg = "Account is deactivated"
        raise PermissionError(msg)

    if not verify_password(password, user.password_hash or ""):
        await increment_failed_login(redis, user.id)
        msg = "Invalid email or password"
        raise InvalidCredentialsError(msg)

    await clear_failed_login(redis, user.id)

    if user.password_hash and check_needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        logger.info("password_rehashed", user_id=user.id)

    return user


async def change_password(db: AsyncSession, user: User, current_password: str, new_password: str) -> None:
    """
    Change an email account's password.

    Raises:
        InvalidCredentialsError: If the current password is wrong.
        PasswordStrengthError: If the new password is too short or too long.
    """
    if not verify_password(current_password, user.password_hash or ""):
        msg = "Current password is incorrect"
        raise InvalidCredentialsError(msg)
    validate_password_strength(new_password)
    user.password_hash = hash_password(new_password)
    await db.flush()
    logger.info("password_changed", user_id=user.id)


# ---------------------------------------------------------------------------
# Account lockout
# ---------------------------------------------------------------------------


async def check_account_lockout(redis: Redis, user_id: int) -> bool:
    """Check if the account is locked due to too many failed login attempts."""
    settings = get_settings()
    count_str = await redis.get(f"login_attempts:{user_id}")
    if count_str is None:
        return False
    return int(count_str) >= settings.account_lockout_threshold


async def increment_failed_login(redis: Redis, user_id: int) -> int:
    """Increment failed login counter. Returns the new count."""
    settings = get_settings()
    key = f"login_attempts:{user_id}"
    count = await redis.incr(key)
    if count == 1:
        await redis.expire(key, settings.account_lockout_duration_minutes * 60)
    return int(count)


async def clear_failed_login(redis: Redis, user_id: int) -> None:
    """Clear the failed login counter after a successful login."""
    await redis.delete(f"login_attempts:{user_id}")
