"""Staking request/response schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import Field, field_serializer

from worklob.schemas import CamelModel


class RecordStakeRequest(CamelModel):
    stake_id: int | None = Field(None, ge=1)
    amount: Decimal | None = Field(None, decimal_places=8)
    is_locked: bool = False
    lock_days: int | None = Field(None, ge=0, le=3650)
    tx_hash: str | None = Field(None, max_length=128)


class RecordUnstakeRequest(CamelModel):
    stake_id: int
    tx_hash: str | None = Field(None, max_length=128)


class RecordClaimRequest(CamelModel):
    amount: Decimal | None = Field(None, decimal_places=8)
    tx_hash: str | None = Field(None, max_length=128)


class StakeResponse(CamelModel):
    id: int
    stake_id: int
    wallet_address: str
    amount: Decimal
    staked_at: datetime
    unlock_time: datetime | None = None
    is_locked: bool
    is_active: bool
    unstaked_at: datetime | None = None
    tx_hash: str
    unstake_tx_hash: str | None = None

    @field_serializer("amount")
    def _amount(self, v: Decimal) -> float:
        return float(v)


class StakerResponse(CamelModel):
    wallet_address: str
    total_staked: Decimal = Decimal("0")
    total_locked: Decimal = Decimal("0")
    claimable_rewards: Decimal = Decimal("0")
    last_synced_at: datetime | None = None

    @field_serializer("total_staked", "total_locked", "claimable_rewards")
    def _money(self, v: Decimal) -> float:
        return float(v)


class UserStakesResponse(CamelModel):
    staker: StakerResponse
    stakes: list[StakeResponse]


class RecordStakeResponse(CamelModel):
    success: bool = True
    message: str
    stake: StakeResponse


class RecordUnstakeResponse(CamelModel):
    success: bool = True
    message: str = "Unstake recorded successfully"
    stake: StakeResponse


class RecordClaimResponse(CamelModel):
    success: bool = True
    message: str = "Claim recorded successfully"
    staker: StakerResponse | None = None


class AllStakesResponse(CamelModel):
    stakes: list[StakeResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class PoolInfoResponse(CamelModel):
    total_staked: float
    reward_rate: float
    apy: float
    period_finish: int
    pool_balance: float


class StakingStatsResponse(CamelModel):
    total_stakers: int
    total_staked: float
    total_locked: float
    active_stakes: int
