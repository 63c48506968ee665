"""Off-chain mirror of on-chain staking events.

The client reports stakes, unstakes and claims after its own contract call
succeeds; nothing here verifies the chain. Per-wallet aggregates on
``stakers`` change only through SQL update operators, in the same
transaction as the detail row they summarize.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Literal

import structlog
from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from worklob.db.models import Staker, Staking
from worklob.pagination import paginate

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from sqlalchemy.ext.asyncio import AsyncSession

    from worklob.schemas import PaginationInfo

logger = structlog.get_logger()

STAKE_ID_KEY = "staking:next_stake_id"
ZERO = Decimal("0")


class StakingError(ValueError):
    """Invalid staking request (-> 400)."""


class StakeNotFoundError(LookupError):
    """No stake with that id for that wallet (-> 404)."""


@dataclass
class StakingStats:
    total_stakers: int
    total_staked: Decimal
    total_locked: Decimal
    active_stakes: int


# ---------------------------------------------------------------------------
# Stake ids
# ---------------------------------------------------------------------------


async def _max_stake_id(db: AsyncSession) -> int:
    result = await db.execute(select(func.coalesce(func.max(Staking.stake_id), 0)))
    return int(result.scalar_one())


async def next_stake_id(db: AsyncSession, redis: Redis) -> int:
    """
    Allocate a stake id from the Redis counter.

    The counter is seeded from the current maximum on first use. Ids already
    taken by client-supplied stake ids are skipped.
    """
    await redis.set(STAKE_ID_KEY, await _max_stake_id(db), nx=True)
    while True:
        candidate = int(await redis.incr(STAKE_ID_KEY))
        taken = await db.execute(select(Staking.id).where(Staking.stake_id == candidate))
        if taken.first() is None:
            return candidate


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


async def get_staker(db: AsyncSession, wallet_address: str) -> Staker | None:
    result = await db.execute(
        select(Staker).where(Staker.wallet_address == wallet_address).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_or_create_staker(db: AsyncSession, wallet_address: str) -> Staker:
    staker = await get_staker(db, wallet_address)
    if staker is not None:
        return staker
    try:
        async with db.begin_nested():
            staker = Staker(wallet_address=wallet_address, last_synced_at=datetime.now(timezone.utc))
            db.add(staker)
    except IntegrityError:
        # Another request created it first.
        staker = await get_staker(db, wallet_address)
        if staker is None:
            raise
    return staker


async def get_stake_by_tx(db: AsyncSession, tx_hash: str) -> Staking | None:
    result = await db.execute(select(Staking).where(Staking.tx_hash == tx_hash))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


async def record_stake(  # noqa: PLR0913
    db: AsyncSession,
    redis: Redis,
    wallet_address: str | None,
    amount: Decimal,
    tx_hash: str | None,
    stake_id: int | None = None,
    is_locked: bool = False,
    lock_days: int | None = None,
) -> tuple[Staking, bool]:
    """
    Record a stake. Returns (stake, created).

    Repeating a request with the same tx hash returns the original stake
    and changes nothing.

    Raises:
        StakingError: Missing wallet, non-positive amount, missing tx hash,
            or a tx hash already recorded for another wallet.
    """
    if not wallet_address:
        msg = "Wallet address not found"
        raise StakingError(msg)
    if not tx_hash:
        msg = "Missing required fields: amount and txHash are required"
        raise StakingError(msg)
    if amount is None or amount <= 0:
        msg = "Invalid amount"
        raise StakingError(msg)

    existing = await get_stake_by_tx(db, tx_hash)
    if existing is not None:
        if existing.wallet_address != wallet_address:
            msg = "Transaction hash already recorded"
            raise StakingError(msg)
        return existing, False

    if stake_id is not None:
        clash = await db.execute(select(Staking.id).where(Staking.stake_id == stake_id))
        if clash.first() is not None:
            stake_id = None
    if stake_id is None:
        stake_id = await next_stake_id(db, redis)

    now = datetime.now(timezone.utc)
    stake = Staking(
        stake_id=stake_id,
        wallet_address=wallet_address,
        amount=amount,
        staked_at=now,
        unlock_time=now + timedelta(days=lock_days) if is_locked and lock_days else None,
        is_locked=bool(is_locked),
        is_active=True,
        tx_hash=tx_hash,
    )
    try:
        async with db.begin_nested():
            db.add(stake)
    except IntegrityError as e:
        replay = await get_stake_by_tx(db, tx_hash)
        if replay is not None and replay.wallet_address == wallet_address:
            return replay, False
        msg = "Stake could not be recorded"
        raise StakingError(msg) from e

    await get_or_create_staker(db, wallet_address)
    await db.execute(
        update(Staker)
        .where(Staker.wallet_address == wallet_address)
        .values(
            total_staked=Staker.total_staked + amount,
            total_locked=Staker.total_locked + (amount if is_locked else ZERO),
            last_synced_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    logger.info(
        "stake_recorded",
        stake_id=stake_id,
        wallet_address=wallet_address,
        amount=str(amount),
        is_locked=bool(is_locked),
        tx_hash=tx_hash,
    )
    return stake, True


async def record_unstake(
    db: AsyncSession,
    wallet_address: str | None,
    stake_id: int,
    tx_hash: str | None = None,
) -> Staking:
    """
    Deactivate a stake and subtract it from the wallet's aggregate.

    Raises:
        StakingError: Missing wallet, or the stake is already inactive.
        StakeNotFoundError: No such stake for this wallet. Nothing is changed.
    """
    if not wallet_address:
        msg = "Wallet address not found"
        raise StakingError(msg)

    result = await db.execute(
        select(Staking).where(Staking.stake_id == stake_id, Staking.wallet_address == wallet_address)
    )
    stake = result.scalar_one_or_none()
    if stake is None:
        msg = "Stake not found"
        raise StakeNotFoundError(msg)

    now = datetime.now(timezone.utc)
    flipped = await db.execute(
        update(Staking)
        .where(Staking.id == stake.id, Staking.is_active.is_(True))
        .values(is_active=False, unstaked_at=now, unstake_tx_hash=tx_hash)
        .execution_options(synchronize_session=False)
    )
    if flipped.rowcount != 1:
        msg = "Stake already unstaked"
        raise StakingError(msg)

    await db.execute(
        update(Staker)
        .where(Staker.wallet_address == wallet_address)
        .values(
            total_staked=Staker.total_staked - stake.amount,
            total_locked=Staker.total_locked - (stake.amount if stake.is_locked else ZERO),
            last_synced_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    await db.refresh(stake)
    logger.info("unstake_recorded", stake_id=stake_id, wallet_address=wallet_address, tx_hash=tx_hash)
    return stake


async def record_claim(
    db: AsyncSession,
    wallet_address: str | None,
    amount: Decimal,
    tx_hash: str | None = None,
) -> Staker | None:
    """
    Subtract a claimed reward from ``claimable_rewards``, never below zero.

    Raises:
        StakingError: Missing wallet or non-positive amount.
    """
    if not wallet_address:
        msg = "Wallet address not found"
        raise StakingError(msg)
    if amount is None or amount <= 0:
        msg = "Invalid amount"
        raise StakingError(msg)

    await db.execute(
        update(Staker)
        .where(Staker.wallet_address == wallet_address)
        .values(
            claimable_rewards=case(
                (Staker.claimable_rewards - amount < 0, ZERO),
                else_=Staker.claimable_rewards - amount,
            ),
            last_synced_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    logger.info("claim_recorded", wallet_address=wallet_address, amount=str(amount), tx_hash=tx_hash)
    return await get_staker(db, wallet_address)


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


async def user_stakes(db: AsyncSession, wallet_address: str) -> tuple[Staker, list[Staking]]:
    """Aggregate (created on first access) plus active stakes, newest first."""
    staker = await get_or_create_staker(db, wallet_address)
    result = await db.execute(
        select(Staking)
        .where(Staking.wallet_address == wallet_address, Staking.is_active.is_(True))
        .order_by(Staking.staked_at.desc(), Staking.id.desc())
    )
    return staker, list(result.scalars().all())


async def all_stakes(
    db: AsyncSession,
    page: int = 1,
    limit: int = 50,
    status: Literal["locked", "unlocked"] | None = None,
) -> tuple[list[Staking], PaginationInfo]:
    """Active stakes across all wallets."""
    now = datetime.now(timezone.utc)
    query = select(Staking).where(Staking.is_active.is_(True))
    if status == "locked":
        query = query.where(Staking.is_locked.is_(True), Staking.unlock_time > now)
    elif status == "unlocked":
        query = query.where(or_(Staking.is_locked.is_(False), Staking.unlock_time <= now))
    query = query.order_by(Staking.staked_at.desc(), Staking.id.desc())
    return await paginate(db, query, page, limit)


async def sync_staker(db: AsyncSession, wallet_address: str) -> Staker | None:
    """Touch ``last_synced_at`` and return the aggregate, or None for an unknown wallet."""
    await db.execute(
        update(Staker)
        .where(Staker.wallet_address == wallet_address)
        .values(last_synced_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return await get_staker(db, wallet_address)


def pool_info() -> dict[str, float]:
    """Pool parameters live on-chain; the API exposes a zeroed placeholder."""
    return {"total_staked": 0, "reward_rate": 0, "apy": 0, "period_finish": 0, "pool_balance": 0}


async def staking_stats(db: AsyncSession) -> StakingStats:
    aggregates = await db.execute(
        select(
            func.count(Staker.id).filter(Staker.total_staked > 0),
            func.coalesce(func.sum(Staker.total_staked), 0),
            func.coalesce(func.sum(Staker.total_locked), 0),
        )
    )
    total_stakers, total_staked, total_locked = aggregates.one()
    active = await db.execute(select(func.count()).select_from(Staking).where(Staking.is_active.is_(True)))
    return StakingStats(
        total_stakers=int(total_stakers),
        total_staked=Decimal(str(total_staked)),
        total_locked=Decimal(str(total_locked)),
        active_stakes=int(active.scalar_one()),
    )
