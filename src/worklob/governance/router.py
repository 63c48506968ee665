"""Governance API endpoints: /api/v1/governance/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from worklob.auth.dependencies import get_current_user
from worklob.database import get_session
from worklob.db.models import GovernanceProposal, User
from worklob.governance.schemas import (
    CreateProposalRequest,
    DisputeInfo,
    ImplementRequest,
    LeaderboardMember,
    LeaderboardResponse,
    ProposalDetailResponse,
    ProposalListResponse,
    ProposalResponse,
    SettlementInfo,
    SettlementRequest,
    SettlementResponse,
    VoteInfo,
    VoteRequest,
    VoteResponse,
    VoteStats,
)
from worklob.governance.service import (
    CATEGORIES,
    LEADERBOARD_SORTS,
    STATUSES,
    GovernanceError,
    ProposalNotFoundError,
    add_vote,
    approve_settlement,
    create_proposal,
    dao_leaderboard,
    get_proposal,
    is_voting_active,
    list_proposals,
    list_votes,
    mark_implementation,
    propose_settlement,
    resolve_settlement,
)

router = APIRouter(prefix="/api/v1/governance", tags=["Governance"])


def _dispute_info(proposal: GovernanceProposal) -> DisputeInfo | None:
    if proposal.dispute_client_id is None and proposal.dispute_talent_id is None:
        return None
    return DisputeInfo(
        client_id=proposal.dispute_client_id,
        talent_id=proposal.dispute_talent_id,
        amount=float(proposal.disputed_amount) if proposal.disputed_amount is not None else None,
        settlement=SettlementInfo.model_validate(proposal.settlement) if proposal.settlement else None,
    )


def _proposal_response(proposal: GovernanceProposal) -> ProposalResponse:
    return ProposalResponse(
        id=proposal.id,
        title=proposal.title,
        description=proposal.description,
        category=proposal.category,
        initiator_id=proposal.initiator_id,
        status=proposal.status,
        proposal_data=proposal.proposal_data,
        vote_stats=VoteStats(
            total_votes=proposal.total_votes or 0,
            yes_votes=proposal.yes_votes or 0,
            no_votes=proposal.no_votes or 0,
            abstain_votes=proposal.abstain_votes or 0,
            required_quorum=proposal.required_quorum,
        ),
        voting_starts_at=proposal.voting_starts_at,
        voting_ends_at=proposal.voting_ends_at,
        is_voting_active=is_voting_active(proposal),
        resolution=proposal.resolution,
        dispute=_dispute_info(proposal),
        created_at=proposal.created_at,
    )


@router.post("", response_model=ProposalResponse, status_code=201)
async def create(
    body: CreateProposalRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ProposalResponse:
    """Open a proposal. Requires the proposal activity-point minimum."""
    data = body.proposal_data.model_dump(by_alias=True, exclude_none=True) if body.proposal_data else None
    dispute = body.dispute.model_dump() if body.dispute else None
    try:
        proposal = await create_proposal(db, user, body.title, body.description, body.category, data, dispute)
    except PermissionError as e:
        await db.rollback()
        raise HTTPException(status_code=403, detail=str(e)) from e
    except GovernanceError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return _proposal_response(proposal)


@router.get("", response_model=ProposalListResponse)
async def get_proposals(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    status: str | None = Query(None),
    category: str | None = Query(None),
    db: AsyncSession = Depends(get_session),
) -> ProposalListResponse:
    if status is not None and status not in STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    if category is not None and category not in CATEGORIES:
        raise HTTPException(status_code=400, detail="Invalid category")
    proposals, pagination = await list_proposals(db, page, limit, status, category)
    return ProposalListResponse(proposals=[_proposal_response(p) for p in proposals], pagination=pagination)


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: str = Query("votesCast", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    db: AsyncSession = Depends(get_session),
) -> LeaderboardResponse:
    """Public: DAO members ranked by votes, points, proposals or resolved disputes."""
    if sort_by not in LEADERBOARD_SORTS:
        raise HTTPException(status_code=400, detail="Invalid sortBy")
    if sort_order not in ("asc", "desc"):
        raise HTTPException(status_code=400, detail="Invalid sortOrder")
    members, pagination = await dao_leaderboard(db, page, limit, sort_by, sort_order == "desc")
    return LeaderboardResponse(
        leaderboard=[
            LeaderboardMember(
                user_id=m.id,
                username=m.username,
                activity_points=m.activity_points or 0,
                votes_cast=m.votes_cast or 0,
                proposals_submitted=m.proposals_submitted or 0,
                disputes_resolved=m.disputes_resolved or 0,
                joined_at=m.created_at,
            )
            for m in members
        ],
        pagination=pagination,
    )


@router.get("/{proposal_id}", response_model=ProposalDetailResponse)
async def get_one(proposal_id: int, db: AsyncSession = Depends(get_session)) -> ProposalDetailResponse:
    try:
        proposal = await get_proposal(db, proposal_id)
    except ProposalNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    votes = await list_votes(db, proposal.id)
    return ProposalDetailResponse(
        **_proposal_response(proposal).model_dump(),
        votes=[VoteInfo.model_validate(v) for v in votes],
    )


@router.post("/{proposal_id}/vote", response_model=VoteResponse)
async def vote(
    proposal_id: int,
    body: VoteRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> VoteResponse:
    """Cast or change a vote. Requires the voting activity-point minimum."""
    try:
        result = await add_vote(db, proposal_id, user, body.vote)
    except ProposalNotFoundError as e:
        await db.rollback()
        raise HTTPException(status_code=404, detail=str(e)) from e
    except PermissionError as e:
        await db.rollback()
        raise HTTPException(status_code=403, detail=str(e)) from e
    except GovernanceError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return VoteResponse(
        message="Vote recorded" if result.first_vote else "Vote updated",
        proposal=_proposal_response(result.proposal),
        points_awarded=result.points_awarded,
    )


@router.post("/{proposal_id}/implement", response_model=ProposalResponse)
async def implement(
    proposal_id: int,
    body: ImplementRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ProposalResponse:
    """Move a passed proposal to implementation (initiator only)."""
    try:
        proposal = await mark_implementation(db, proposal_id, user, body.description, body.actions)
    except ProposalNotFoundError as e:
        await db.rollback()
        raise HTTPException(status_code=404, detail=str(e)) from e
    except PermissionError as e:
        await db.rollback()
        raise HTTPException(status_code=403, detail=str(e)) from e
    except GovernanceError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return _proposal_response(proposal)


@router.post("/{proposal_id}/settlement", response_model=SettlementResponse)
async def settlement(
    proposal_id: int,
    body: SettlementRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SettlementResponse:
    """
    Propose a dispute split. DAO members only, never the parties.

    Missing amounts are filled from the disputed amount using the
    ``dispute_settlement_percentage`` config value.
    """
    try:
        proposal = await propose_settlement(db, proposal_id, user, body.talent_amount, body.client_amount)
    except ProposalNotFoundError as e:
        await db.rollback()
        raise HTTPException(status_code=404, detail=str(e)) from e
    except PermissionError as e:
        await db.rollback()
        raise HTTPException(status_code=403, detail=str(e)) from e
    except GovernanceError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return SettlementResponse(message="Settlement amounts updated", proposal=_proposal_response(proposal))


@router.post("/{proposal_id}/settlement/approve", response_model=SettlementResponse)
async def settlement_approve(
    proposal_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SettlementResponse:
    """Approve the proposed split (client or talent only)."""
    try:
        proposal, side = await approve_settlement(db, proposal_id, user)
    except ProposalNotFoundError as e:
        await db.rollback()
        raise HTTPException(status_code=404, detail=str(e)) from e
    except PermissionError as e:
        await db.rollback()
        raise HTTPException(status_code=403, detail=str(e)) from e
    except GovernanceError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return SettlementResponse(
        message=f"{side.capitalize()} approved settlement", proposal=_proposal_response(proposal)
    )


@router.post("/{proposal_id}/settlement/resolve", response_model=SettlementResponse)
async def settlement_resolve(
    proposal_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SettlementResponse:
    """Resolve a dispute both parties agreed on. DAO members only."""
    try:
        proposal = await resolve_settlement(db, proposal_id, user)
    except ProposalNotFoundError as e:
        await db.rollback()
        raise HTTPException(status_code=404, detail=str(e)) from e
    except PermissionError as e:
        await db.rollback()
        raise HTTPException(status_code=403, detail=str(e)) from e
    except GovernanceError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return SettlementResponse(message="Dispute resolved by mutual agreement", proposal=_proposal_response(proposal))
