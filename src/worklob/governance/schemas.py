"""Governance request/response schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import Field

from worklob.schemas import CamelModel, PaginationInfo


class ProposalData(CamelModel):
    description: str | None = None
    impact: str | None = None
    implementation: str | None = None
    timeline: str | None = None


class DisputeParties(CamelModel):
    client_id: int
    talent_id: int
    amount: Decimal | None = Field(None, ge=0, decimal_places=8)


class CreateProposalRequest(CamelModel):
    title: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=10, max_length=5000)
    category: Literal["conflict", "policy", "platform", "feature", "bug"]
    proposal_data: ProposalData | None = None
    dispute: DisputeParties | None = None


class VoteRequest(CamelModel):
    vote: Literal["yes", "no", "abstain"]


class ImplementRequest(CamelModel):
    description: str | None = Field(None, max_length=5000)
    actions: list[str] = Field(default_factory=list)


class SettlementRequest(CamelModel):
    talent_amount: Decimal | None = Field(None, ge=0, decimal_places=8)
    client_amount: Decimal | None = Field(None, ge=0, decimal_places=8)


class VoteStats(CamelModel):
    total_votes: int
    yes_votes: int
    no_votes: int
    abstain_votes: int
    required_quorum: int


class VoteInfo(CamelModel):
    user_id: int
    vote: str
    activity_points: int
    created_at: datetime


class SettlementInfo(CamelModel):
    talent_amount: float
    client_amount: float
    talent_approved: bool = False
    client_approved: bool = False
    settled_by_agreement: bool = False
    settled_by: int | None = None
    resolved_by: int | None = None
    resolved_at: datetime | None = None
    updated_at: datetime | None = None


class DisputeInfo(CamelModel):
    client_id: int | None
    talent_id: int | None
    amount: float | None = None
    settlement: SettlementInfo | None = None


class ProposalResponse(CamelModel):
    id: int
    title: str
    description: str
    category: str
    initiator_id: int
    status: str
    proposal_data: dict[str, Any] | None = None
    vote_stats: VoteStats
    voting_starts_at: datetime
    voting_ends_at: datetime
    is_voting_active: bool
    resolution: dict[str, Any] | None = None
    dispute: DisputeInfo | None = None
    created_at: datetime


class ProposalDetailResponse(ProposalResponse):
    votes: list[VoteInfo] = Field(default_factory=list)


class ProposalListResponse(CamelModel):
    proposals: list[ProposalResponse]
    pagination: PaginationInfo


class VoteResponse(CamelModel):
    success: bool = True
    message: str
    proposal: ProposalResponse
    points_awarded: int


class SettlementResponse(CamelModel):
    success: bool = True
    message: str
    proposal: ProposalResponse


class LeaderboardMember(CamelModel):
    user_id: int
    username: str
    activity_points: int
    votes_cast: int
    proposals_submitted: int
    disputes_resolved: int
    joined_at: datetime


class LeaderboardResponse(CamelModel):
    leaderboard: list[LeaderboardMember]
    pagination: PaginationInfo
