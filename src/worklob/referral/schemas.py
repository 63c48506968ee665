"""Referral request/response schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import Field

from worklob.schemas import CamelModel


class ReferredUser(CamelModel):
    id: int
    username: str
    created_at: datetime | None = None
    activity_points: int = 0


class ReferralItem(CamelModel):
    id: int
    referred_user: ReferredUser
    status: str
    lob_tokens: float
    tokens_withdrawn: float = 0
    activity_points: int
    current_activity_points: int
    bonus_earned: float
    approved_at: datetime | None = None
    withdrawn_at: datetime | None = None
    created_at: datetime


class LobTokens(CamelModel):
    pending: float = 0
    available: float = 0
    withdrawn: float = 0


class ReferralStatsResponse(CamelModel):
    total_referrals: int
    pending_referrals: int
    approved_referrals: int
    total_bonus: float
    pending_bonus: float
    approved_bonus: float
    lob_tokens: LobTokens


class ReferralOverviewResponse(CamelModel):
    referral_code: str
    referral_link: str
    stats: ReferralStatsResponse
    referrals: list[ReferralItem]


class WithdrawRequest(CamelModel):
    amount: Decimal = Field(..., gt=0, decimal_places=8)


class WithdrawResponse(CamelModel):
    message: str
    amount: float
    available: float
    withdrawn: float


class ProcessReferralRequest(CamelModel):
    referral_code: str = Field(..., min_length=1)
    referred_user_id: int = Field(..., gt=0)


class ProcessReferralResponse(CamelModel):
    message: str
    referral_id: int
    status: str
    lob_tokens: float


class ReferrerInfo(CamelModel):
    id: int
    username: str


class ValidateCodeResponse(CamelModel):
    valid: bool
    referrer: ReferrerInfo


class LeaderboardEntry(CamelModel):
    user_id: int
    username: str
    total_referrals: int
    total_bonus: float
