"""Staking API endpoints: /api/v1/staking/*."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from worklob.auth.dependencies import get_wallet_user
from worklob.database import get_session
from worklob.db.models import User
from worklob.redis_client import get_redis
from worklob.staking.schemas import (
    AllStakesResponse,
    PoolInfoResponse,
    RecordClaimRequest,
    RecordClaimResponse,
    RecordStakeRequest,
    RecordStakeResponse,
    RecordUnstakeRequest,
    RecordUnstakeResponse,
    StakeResponse,
    StakerResponse,
    StakingStatsResponse,
    UserStakesResponse,
)
from worklob.staking.service import (
    StakeNotFoundError,
    StakingError,
    all_stakes,
    pool_info,
    record_claim,
    record_stake,
    record_unstake,
    staking_stats,
    sync_staker,
    user_stakes,
)

router = APIRouter(prefix="/api/v1/staking", tags=["Staking"])


@router.get("/pool-info", response_model=PoolInfoResponse)
async def get_pool_info() -> PoolInfoResponse:
    return PoolInfoResponse(**pool_info())


@router.get("/user-stakes", response_model=UserStakesResponse)
async def get_user_stakes(
    user: User = Depends(get_wallet_user),
    db: AsyncSession = Depends(get_session),
) -> UserStakesResponse:
    """The caller's aggregate and active stakes."""
    staker, stakes = await user_stakes(db, user.wallet_address)  # type: ignore[arg-type]
    await db.commit()
    return UserStakesResponse(
        staker=StakerResponse.model_validate(staker),
        stakes=[StakeResponse.model_validate(s) for s in stakes],
    )


@router.get("/all-stakes", response_model=AllStakesResponse)
async def get_all_stakes(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    status: Literal["locked", "unlocked"] | None = Query(None),
    db: AsyncSession = Depends(get_session),
) -> AllStakesResponse:
    """Active stakes across all wallets."""
    stakes, pagination = await all_stakes(db, page, limit, status)
    return AllStakesResponse(
        stakes=[StakeResponse.model_validate(s) for s in stakes],
        total=pagination.total,
        page=pagination.page,
        limit=pagination.limit,
        total_pages=pagination.pages,
    )


@router.post("/record-stake", response_model=RecordStakeResponse)
async def post_record_stake(
    body: RecordStakeRequest,
    user: User = Depends(get_wallet_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
) -> RecordStakeResponse:
    """Record a stake the client already sent on-chain. Idempotent on txHash."""
    try:
        stake, created = await record_stake(
            db,
            redis,
            user.wallet_address,
            body.amount,  # type: ignore[arg-type]
            body.tx_hash,
            stake_id=body.stake_id,
            is_locked=body.is_locked,
            lock_days=body.lock_days,
        )
    except StakingError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    message = "Stake recorded successfully" if created else "Stake already recorded"
    return RecordStakeResponse(message=message, stake=StakeResponse.model_validate(stake))


@router.post("/record-unstake", response_model=RecordUnstakeResponse)
async def post_record_unstake(
    body: RecordUnstakeRequest,
    user: User = Depends(get_wallet_user),
    db: AsyncSession = Depends(get_session),
) -> RecordUnstakeResponse:
    try:
        stake = await record_unstake(db, user.wallet_address, body.stake_id, body.tx_hash)
    except StakeNotFoundError as e:
        await db.rollback()
        raise HTTPException(status_code=404, detail=str(e)) from e
    except StakingError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return RecordUnstakeResponse(stake=StakeResponse.model_validate(stake))


@router.post("/record-claim", response_model=RecordClaimResponse)
async def post_record_claim(
    body: RecordClaimRequest,
    user: User = Depends(get_wallet_user),
    db: AsyncSession = Depends(get_session),
) -> RecordClaimResponse:
    try:
        staker = await record_claim(db, user.wallet_address, body.amount, body.tx_hash)  # type: ignore[arg-type]
    except StakingError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return RecordClaimResponse(staker=StakerResponse.model_validate(staker) if staker else None)


@router.post("/sync-staker", response_model=StakerResponse)
async def post_sync_staker(
    user: User = Depends(get_wallet_user),
    db: AsyncSession = Depends(get_session),
) -> StakerResponse:
    """Current aggregate; zeros for a wallet that never staked."""
    staker = await sync_staker(db, user.wallet_address)  # type: ignore[arg-type]
    await db.commit()
    if staker is None:
        return StakerResponse(wallet_address=user.wallet_address)  # type: ignore[arg-type]
    return StakerResponse.model_validate(staker)


@router.get("/stats", response_model=StakingStatsResponse)
async def get_stats(db: AsyncSession = Depends(get_session)) -> StakingStatsResponse:
    stats = await staking_stats(db)
    return StakingStatsResponse(
        total_stakers=stats.total_stakers,
        total_staked=float(stats.total_staked),
        total_locked=float(stats.total_locked),
        active_stakes=stats.active_stakes,
    )
