"""Referral rewards: pending referrals, approval by activity, LOB token withdrawal.

Token movements on ``users`` happen only through SQL update operators. A
referral's tokens move ``lob_pending -> lob_available`` in the same statement
batch that flips its status from ``pending`` to ``approved``, guarded by
``status = 'pending'``, so repeated reads can never move them twice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError

from worklob.config import get_settings
from worklob.config_store.service import get_value, get_values
from worklob.db.models import Referral, User
from worklob.ledger.service import record_transaction
from worklob.notifications.service import create_notification

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

ZERO = Decimal("0")


class ReferralError(ValueError):
    """Base class for referral rule violations (-> 400)."""


class ReferralNotFoundError(ReferralError):
    """Unknown referral code or user (-> 404)."""


class InsufficientTokensError(ReferralError):
    """Withdrawal larger than the available LOB balance."""


@dataclass
class ReferralStats:
    total_referrals: int = 0
    pending_referrals: int = 0
    approved_referrals: int = 0
    total_bonus: float = 0.0
    pending_bonus: float = 0.0
    approved_bonus: float = 0.0
    lob_tokens: dict[str, float] = field(default_factory=dict)


@dataclass
class ReferralOverview:
    referral_code: str
    referral_link: str
    stats: ReferralStats
    referrals: list[Referral]


async def get_user_by_referral_code(db: AsyncSession, code: str) -> User | None:
    result = await db.execute(select(User).where(User.referral_code == code))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


async def process_referral(db: AsyncSession, referral_code: str, referred_user_id: int) -> Referral:
    """
    Create a pending referral and add its tokens to the referrer's pending balance.

    Raises:
        ReferralNotFoundError: Unknown code or referred user.
        ReferralError: Self-referral or duplicate referral.
    """
    referrer = await get_user_by_referral_code(db, referral_code)
    if referrer is None:
        msg = "Invalid referral code"
        raise ReferralNotFoundError(msg)

    if referrer.id == referred_user_id:
        msg = "Cannot refer yourself"
        raise ReferralError(msg)

    referred = await db.get(User, referred_user_id)
    if referred is None:
        msg = "Referred user not found"
        raise ReferralNotFoundError(msg)

    existing = await db.execute(
        select(Referral.id).where(
            Referral.referrer_id == referrer.id,
            Referral.referred_user_id == referred_user_id,
        )
    )
    if existing.first() is not None:
        msg = "Referral already exists"
        raise ReferralError(msg)

    amounts = await get_values(db, ["referral_lob_tokens", "referral_activity_points", "referral_bonus"])
    lob_tokens = Decimal(str(amounts["referral_lob_tokens"]))

    referral = Referral(
        referrer_id=referrer.id,
        referred_user_id=referred_user_id,
        bonus_earned=Decimal(str(amounts["referral_bonus"])),
        lob_tokens=lob_tokens,
        activity_points=int(amounts["referral_activity_points"]),
        status="pending",
        created_at=datetime.now(timezone.utc),
    )
    db.add(referral)
    try:
        await db.flush()
    except IntegrityError as e:
        msg = "Referral already exists"
        raise ReferralError(msg) from e

    await db.execute(
        update(User)
        .where(User.id == referrer.id)
        .values(lob_pending=User.lob_pending + lob_tokens)
        .execution_options(synchronize_session=False)
    )
    logger.info(
        "referral_created",
        referral_id=referral.id,
        referrer_id=referrer.id,
        referred_user_id=referred_user_id,
        lob_tokens=str(lob_tokens),
    )
    return referral


# ---------------------------------------------------------------------------
# Approval
# ---------------------------------------------------------------------------


async def refresh_approvals(db: AsyncSession, referrer: User) -> int:
    """
    Approve every pending referral whose referred user reached the threshold.

    Returns the number of referrals approved by this call. Caller commits.
    """
    threshold = int(await get_value(db, "referral_approval_activity_points"))
    result = await db.execute(
        select(Referral.id, Referral.lob_tokens, Referral.activity_points)
        .join(User, User.id == Referral.referred_user_id)
        .where(
            Referral.referrer_id == referrer.id,
            Referral.status == "pending",
            User.activity_points >= threshold,
        )
        .order_by(Referral.created_at)
    )
    candidates = result.all()

    approved = 0
    for referral_id, lob_tokens, activity_points in candidates:
        flipped = await db.execute(
            update(Referral)
            .where(Referral.id == referral_id, Referral.status == "pending")
            .values(status="approved", approved_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount != 1:
            continue

        await db.execute(
            update(User)
            .where(User.id == referrer.id)
            .values(
                lob_pending=case(
                    (User.lob_pending - lob_tokens < 0, ZERO),
                    else_=User.lob_pending - lob_tokens,
                ),
                lob_available=User.lob_available + lob_tokens,
                activity_points=User.activity_points + activity_points,
            )
            .execution_options(synchronize_session=False)
        )
        approved += 1
        logger.info("referral_approved", referral_id=referral_id, referrer_id=referrer.id, lob_tokens=str(lob_tokens))
        await create_notification(
            db,
            referrer.id,
            "referral",
            "Referral approved",
            f"{float(lob_tokens):g} LOB tokens are now available to withdraw.",
        )

    if approved:
        await db.refresh(referrer)
    return approved


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


async def list_referrals(db: AsyncSession, referrer_id: int) -> list[Referral]:
    result = await db.execute(
        select(Referral)
        .where(Referral.referrer_id == referrer_id)
        .order_by(Referral.created_at.desc(), Referral.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


def build_stats(user: User, referrals: list[Referral]) -> ReferralStats:
    pending = [r for r in referrals if r.status == "pending"]
    approved = [r for r in referrals if r.status == "approved"]
    return ReferralStats(
        total_referrals=len(referrals),
        pending_referrals=len(pending),
        approved_referrals=len(approved),
        total_bonus=float(sum((r.bonus_earned or ZERO for r in referrals), ZERO)),
        pending_bonus=float(sum((r.bonus_earned or ZERO for r in pending), ZERO)),
        approved_bonus=float(sum((r.bonus_earned or ZERO for r in approved), ZERO)),
        lob_tokens={
            "pending": float(user.lob_pending or 0),
            "available": float(user.lob_available or 0),
            "withdrawn": float(user.lob_withdrawn or 0),
        },
    )


async def get_referral_overview(db: AsyncSession, user: User) -> ReferralOverview:
    """Approve what is due, then return the code, link, stats and rows."""
    await refresh_approvals(db, user)
    referrals = await list_referrals(db, user.id)
    settings = get_settings()
    return ReferralOverview(
        referral_code=user.referral_code,
        referral_link=f"{settings.client_url}/register?ref={user.referral_code}",
        stats=build_stats(user, referrals),
        referrals=referrals,
    )


# ---------------------------------------------------------------------------
# Withdrawal
# ---------------------------------------------------------------------------


async def withdraw_tokens(db: AsyncSession, user: User, amount: Decimal) -> User:
    """
    Move ``amount`` LOB tokens from available to withdrawn.

    Approved referrals are consumed oldest first. A referral that is only
    partly consumed keeps status ``approved`` and records the consumed part
    in ``tokens_withdrawn``.

    Raises:
        ReferralError: Non-positive amount.
        InsufficientTokensError: Amount exceeds the available balance.
    """
    if amount <= 0:
        msg = "Amount must be greater than 0"
        raise ReferralError(msg)

    result = await db.execute(
        update(User)
        .where(User.id == user.id, User.lob_available >= amount)
        .values(
            lob_available=User.lob_available - amount,
            lob_withdrawn=User.lob_withdrawn + amount,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.refresh(user)
        msg = f"Insufficient LOB tokens. Available: {float(user.lob_available or 0):g}"
        raise InsufficientTokensError(msg)

    await _consume_approved_referrals(db, user.id, amount)

    await record_transaction(
        db,
        type="referral",
        amount=amount,
        description=f"Withdrawn {float(amount):g} LOB tokens from referral rewards",
        to_user_id=user.id,
        currency="LOB",
        direction="credit",
        details={"action": "withdraw", "tokens": float(amount)},
    )
    await db.refresh(user)
    logger.info("referral_tokens_withdrawn", user_id=user.id, amount=str(amount))
    return user


async def _consume_approved_referrals(db: AsyncSession, referrer_id: int, amount: Decimal) -> None:
    result = await db.execute(
        select(Referral)
        .where(Referral.referrer_id == referrer_id, Referral.status == "approved")
        .order_by(Referral.approved_at, Referral.id)
        .execution_options(populate_existing=True)
    )
    remaining = amount
    now = datetime.now(timezone.utc)
    for referral in result.scalars().all():
        if remaining <= 0:
            break
        left = (referral.lob_tokens or ZERO) - (referral.tokens_withdrawn or ZERO)
        if left <= 0:
            continue
        take = min(left, remaining)
        referral.tokens_withdrawn = (referral.tokens_withdrawn or ZERO) + take
        if take == left:
            referral.status = "withdrawn"
            referral.withdrawn_at = now
        remaining -= take
    await db.flush()


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------


async def validate_code(db: AsyncSession, code: str) -> User:
    """Raises ReferralNotFoundError for unknown codes."""
    user = await get_user_by_referral_code(db, code)
    if user is None:
        msg = "Invalid referral code"
        raise ReferralNotFoundError(msg)
    return user


async def leaderboard(db: AsyncSession, limit: int = 10) -> list[dict[str, object]]:
    """Referrers ranked by referral count."""
    total_referrals = func.count(Referral.id).label("total_referrals")
    result = await db.execute(
        select(
            User.id,
            User.username,
            total_referrals,
            func.coalesce(func.sum(Referral.bonus_earned), 0).label("total_bonus"),
        )
        .select_from(Referral)
        .join(User, User.id == Referral.referrer_id)
        .group_by(User.id, User.username)
        .order_by(total_referrals.desc(), User.id)
        .limit(limit)
    )
    return [
        {
            "user_id": row.id,
            "username": row.username,
            "total_referrals": row.total_referrals,
            "total_bonus": float(row.total_bonus or 0),
        }
        for row in result.all()
    ]
