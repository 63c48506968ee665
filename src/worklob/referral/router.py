"""Referral API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from worklob.auth.dependencies import get_current_user
from worklob.database import get_session
from worklob.db.models import Referral, User
from worklob.referral.schemas import (
    LeaderboardEntry,
    LobTokens,
    ProcessReferralRequest,
    ProcessReferralResponse,
    ReferralItem,
    ReferralOverviewResponse,
    ReferralStatsResponse,
    ReferredUser,
    ReferrerInfo,
    ValidateCodeResponse,
    WithdrawRequest,
    WithdrawResponse,
)
from worklob.referral.service import (
    ReferralError,
    ReferralNotFoundError,
    get_referral_overview,
    leaderboard,
    process_referral,
    validate_code,
    withdraw_tokens,
)

router = APIRouter(prefix="/api/v1/referral", tags=["Referral"])


def _item(referral: Referral) -> ReferralItem:
    referred = referral.referred_user
    return ReferralItem(
        id=referral.id,
        referred_user=ReferredUser(
            id=referred.id,
            username=referred.username,
            created_at=referred.created_at,
            activity_points=referred.activity_points or 0,
        ),
        status=referral.status,
        lob_tokens=float(referral.lob_tokens or 0),
        tokens_withdrawn=float(referral.tokens_withdrawn or 0),
        activity_points=referral.activity_points or 0,
        current_activity_points=referred.activity_points or 0,
        bonus_earned=float(referral.bonus_earned or 0),
        approved_at=referral.approved_at,
        withdrawn_at=referral.withdrawn_at,
        created_at=referral.created_at,
    )


@router.get("", response_model=ReferralOverviewResponse)
async def get_referrals(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ReferralOverviewResponse:
    """Referral code, link and stats. Approves referrals that became eligible."""
    overview = await get_referral_overview(db, user)
    await db.commit()
    stats = overview.stats
    return ReferralOverviewResponse(
        referral_code=overview.referral_code,
        referral_link=overview.referral_link,
        stats=ReferralStatsResponse(
            total_referrals=stats.total_referrals,
            pending_referrals=stats.pending_referrals,
            approved_referrals=stats.approved_referrals,
            total_bonus=stats.total_bonus,
            pending_bonus=stats.pending_bonus,
            approved_bonus=stats.approved_bonus,
            lob_tokens=LobTokens(**stats.lob_tokens),
        ),
        referrals=[_item(r) for r in overview.referrals],
    )


@router.post("/withdraw", response_model=WithdrawResponse)
async def withdraw(
    body: WithdrawRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> WithdrawResponse:
    """Withdraw available LOB tokens."""
    try:
        user = await withdraw_tokens(db, user, body.amount)
    except ReferralError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return WithdrawResponse(
        message="LOB tokens withdrawn successfully",
        amount=float(body.amount),
        available=float(user.lob_available or 0),
        withdrawn=float(user.lob_withdrawn or 0),
    )


@router.post("/process", response_model=ProcessReferralResponse)
async def process(
    body: ProcessReferralRequest,
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ProcessReferralResponse:
    """Record a referral for an already registered user."""
    try:
        referral = await process_referral(db, body.referral_code, body.referred_user_id)
    except ReferralNotFoundError as e:
        await db.rollback()
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ReferralError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return ProcessReferralResponse(
        message="Referral processed successfully",
        referral_id=referral.id,
        status=referral.status,
        lob_tokens=float(referral.lob_tokens),
    )


@router.get("/validate/{code}", response_model=ValidateCodeResponse)
async def validate(code: str, db: AsyncSession = Depends(get_session)) -> ValidateCodeResponse:
    """Public: check that a referral code belongs to a user."""
    try:
        referrer = await validate_code(db, code)
    except ReferralNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return ValidateCodeResponse(valid=True, referrer=ReferrerInfo(id=referrer.id, username=referrer.username))


@router.get("/leaderboard", response_model=list[LeaderboardEntry])
async def get_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> list[LeaderboardEntry]:
    """Public: top referrers by referral count."""
    rows = await leaderboard(db, limit)
    return [LeaderboardEntry(**row) for row in rows]
