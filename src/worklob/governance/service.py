"""DAO proposals and the vote tally.

A user holds at most one vote row per proposal; voting again replaces it.
Quorum is measured in the summed activity points of the voters, not in
the number of votes. Once quorum is met while voting is open the proposal
resolves to ``passed`` (yes > no) or ``rejected`` (everything else,
including a tie). A proposal that never reaches quorum stays in
``voting``; there is no expiry job.

A conflict proposal that names its parties can instead close on a
settlement: a DAO member proposes the split, both parties approve it
(which ends voting) and a DAO member marks it ``resolved``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_DOWN, Decimal
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from worklob.config import get_settings
from worklob.config_store.service import get_value
from worklob.db.models import GovernanceProposal, GovernanceVote, User
from worklob.notifications.service import create_notification
from worklob.pagination import paginate

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from worklob.schemas import PaginationInfo

logger = structlog.get_logger()

CATEGORIES = ("conflict", "policy", "platform", "feature", "bug")
STATUSES = ("draft", "voting", "passed", "rejected", "implementation", "resolved")
VOTE_CHOICES = ("yes", "no", "abstain")

_PLACES = Decimal("0.00000001")


class ProposalNotFoundError(LookupError):
    """Unknown proposal id."""


class GovernanceError(ValueError):
    """Request not valid for the proposal's current state."""


class NotEligibleError(PermissionError):
    """User lacks the activity points for this action."""


@dataclass
class VoteTally:
    yes: int = 0
    no: int = 0
    abstain: int = 0
    activity_points: int = 0

    @property
    def total(self) -> int:
        return self.yes + self.no + self.abstain


@dataclass
class VoteResult:
    proposal: GovernanceProposal
    first_vote: bool
    points_awarded: int


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def is_voting_active(proposal: GovernanceProposal, now: datetime | None = None) -> bool:
    """Status is ``voting`` and ``now`` falls inside the voting window."""
    now = now or datetime.now(timezone.utc)
    if proposal.status != "voting":
        return False
    if proposal.settlement and proposal.settlement.get("settledByAgreement"):
        return False
    return _as_utc(proposal.voting_starts_at) <= now <= _as_utc(proposal.voting_ends_at)


def decide_outcome(tally: VoteTally, required_quorum: int) -> str | None:
    """
    Resolve a tally against the quorum.

    Returns "passed" or "rejected" once the voters' summed activity points
    reach ``required_quorum``, else None.
    """
    if tally.activity_points < required_quorum:
        return None
    return "passed" if tally.yes > tally.no else "rejected"


async def get_proposal(db: AsyncSession, proposal_id: int, *, for_update: bool = False) -> GovernanceProposal:
    query = select(GovernanceProposal).where(GovernanceProposal.id == proposal_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    proposal = result.scalar_one_or_none()
    if proposal is None:
        msg = "Proposal not found"
        raise ProposalNotFoundError(msg)
    return proposal


async def list_votes(db: AsyncSession, proposal_id: int) -> list[GovernanceVote]:
    result = await db.execute(
        select(GovernanceVote)
        .where(GovernanceVote.proposal_id == proposal_id)
        .order_by(GovernanceVote.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def list_proposals(
    db: AsyncSession,
    page: int = 1,
    limit: int = 20,
    status: str | None = None,
    category: str | None = None,
) -> tuple[list[GovernanceProposal], PaginationInfo]:
    query = select(GovernanceProposal)
    if status:
        query = query.where(GovernanceProposal.status == status)
    if category:
        query = query.where(GovernanceProposal.category == category)
    query = query.order_by(GovernanceProposal.created_at.desc(), GovernanceProposal.id.desc())
    return await paginate(db, query, page, limit)


async def _check_dispute_parties(db: AsyncSession, category: str, dispute: dict[str, Any]) -> None:
    if category != "conflict":
        msg = "Dispute parties can only be set on conflict proposals"
        raise GovernanceError(msg)
    client_id, talent_id = dispute["client_id"], dispute["talent_id"]
    if client_id == talent_id:
        msg = "Client and talent must be different users"
        raise GovernanceError(msg)
    result = await db.execute(select(func.count(User.id)).where(User.id.in_([client_id, talent_id])))
    if result.scalar_one() != 2:
        msg = "Dispute party not found"
        raise GovernanceError(msg)


async def create_proposal(
    db: AsyncSession,
    user: User,
    title: str,
    description: str,
    category: str,
    proposal_data: dict[str, Any] | None = None,
    dispute: dict[str, Any] | None = None,
) -> GovernanceProposal:
    """
    Open a proposal for voting.

    ``dispute`` (``client_id``, ``talent_id``, ``amount``) names the parties
    of a conflict proposal so it can be settled by agreement.

    Raises:
        NotEligibleError: User is below the proposal activity-point minimum.
        GovernanceError: Unknown category or invalid dispute parties.
    """
    settings = get_settings()
    if (user.activity_points or 0) < settings.governance_min_proposal_points:
        msg = f"At least {settings.governance_min_proposal_points} activity points are required to create a proposal"
        raise NotEligibleError(msg)
    if category not in CATEGORIES:
        msg = f"Category must be one of: {', '.join(CATEGORIES)}"
        raise GovernanceError(msg)
    if dispute is not None:
        await _check_dispute_parties(db, category, dispute)

    now = datetime.now(timezone.utc)
    proposal = GovernanceProposal(
        title=title,
        description=description,
        category=category,
        initiator_id=user.id,
        status="voting",
        proposal_data=proposal_data,
        dispute_client_id=dispute["client_id"] if dispute else None,
        dispute_talent_id=dispute["talent_id"] if dispute else None,
        disputed_amount=dispute.get("amount") if dispute else None,
        required_quorum=settings.governance_default_quorum,
        voting_starts_at=now,
        voting_ends_at=now + timedelta(days=settings.governance_voting_days),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(proposal)
    await db.execute(
        update(User)
        .where(User.id == user.id)
        .values(proposals_submitted=User.proposals_submitted + 1)
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    await db.refresh(proposal)
    logger.info("proposal_created", proposal_id=proposal.id, initiator_id=user.id, category=category)
    return proposal


async def _tally(db: AsyncSession, proposal_id: int) -> VoteTally:
    result = await db.execute(
        select(
            GovernanceVote.vote,
            func.count(GovernanceVote.id),
            func.coalesce(func.sum(GovernanceVote.activity_points), 0),
        )
        .where(GovernanceVote.proposal_id == proposal_id)
        .group_by(GovernanceVote.vote)
    )
    tally = VoteTally()
    for choice, count, points in result.all():
        setattr(tally, choice, int(count))
        tally.activity_points += int(points)
    return tally


async def _upsert_vote(db: AsyncSession, proposal_id: int, user_id: int, vote: str, points: int) -> bool:
    """Write the user's vote row. Returns True when no earlier vote existed."""
    now = datetime.now(timezone.utc)
    replaced = await db.execute(
        update(GovernanceVote)
        .where(GovernanceVote.proposal_id == proposal_id, GovernanceVote.user_id == user_id)
        .values(vote=vote, activity_points=points, created_at=now)
        .execution_options(synchronize_session=False)
    )
    if replaced.rowcount:
        return False
    try:
        async with db.begin_nested():
            db.add(
                GovernanceVote(
                    proposal_id=proposal_id,
                    user_id=user_id,
                    vote=vote,
                    activity_points=points,
                    created_at=now,
                )
            )
    except IntegrityError:
        # A concurrent request inserted the row first; last write wins.
        await db.execute(
            update(GovernanceVote)
            .where(GovernanceVote.proposal_id == proposal_id, GovernanceVote.user_id == user_id)
            .values(vote=vote, activity_points=points, created_at=now)
            .execution_options(synchronize_session=False)
        )
        return False
    return True


async def add_vote(db: AsyncSession, proposal_id: int, user: User, vote: str) -> VoteResult:
    """
    Cast or replace ``user``'s vote and re-tally the proposal.

    The proposal row is locked for the duration of the tally. A user's
    first vote on a proposal earns the configured reward points.

    Raises:
        ProposalNotFoundError: Unknown proposal.
        NotEligibleError: User is below the voting activity-point minimum.
        GovernanceError: Invalid choice or voting is not open.
    """
    if vote not in VOTE_CHOICES:
        msg = f"Vote must be one of: {', '.join(VOTE_CHOICES)}"
        raise GovernanceError(msg)

    settings = get_settings()
    points = user.activity_points or 0
    if points < settings.governance_min_vote_points:
        msg = f"At least {settings.governance_min_vote_points} activity points are required to vote"
        raise NotEligibleError(msg)

    proposal = await get_proposal(db, proposal_id, for_update=True)
    if not is_voting_active(proposal):
        msg = "Voting is not open for this proposal"
        raise GovernanceError(msg)

    first_vote = await _upsert_vote(db, proposal.id, user.id, vote, points)
    tally = await _tally(db, proposal.id)
    proposal.total_votes = tally.total
    proposal.yes_votes = tally.yes
    proposal.no_votes = tally.no
    proposal.abstain_votes = tally.abstain

    outcome = decide_outcome(tally, proposal.required_quorum)
    if outcome is not None:
        proposal.status = outcome
        logger.info(
            "proposal_resolved",
            proposal_id=proposal.id,
            outcome=outcome,
            yes=tally.yes,
            no=tally.no,
            activity_points=tally.activity_points,
        )

    awarded = 0
    if first_vote:
        awarded = int(await get_value(db, "governance_vote_reward_points"))
        await db.execute(
            update(User)
            .where(User.id == user.id)
            .values(activity_points=User.activity_points + awarded, votes_cast=User.votes_cast + 1)
            .execution_options(synchronize_session=False)
        )

    await db.flush()
    if outcome is not None:
        await create_notification(
            db,
            proposal.initiator_id,
            "governance",
            f"Proposal {outcome}",
            f'Your proposal "{proposal.title}" was {outcome}.',
        )
    await db.refresh(proposal)
    logger.info("vote_cast", proposal_id=proposal.id, user_id=user.id, vote=vote, first_vote=first_vote)
    return VoteResult(proposal=proposal, first_vote=first_vote, points_awarded=awarded)


async def mark_implementation(
    db: AsyncSession,
    proposal_id: int,
    user: User,
    description: str | None = None,
    actions: list[str] | None = None,
) -> GovernanceProposal:
    """
    Move a passed proposal into implementation.

    Raises:
        ProposalNotFoundError: Unknown proposal.
        PermissionError: Caller is not the initiator.
        GovernanceError: Proposal has not passed.
    """
    proposal = await get_proposal(db, proposal_id, for_update=True)
    if proposal.initiator_id != user.id:
        msg = "Only the initiator can mark a proposal for implementation"
        raise PermissionError(msg)
    if proposal.status != "passed":
        msg = "Only passed proposals can move to implementation"
        raise GovernanceError(msg)

    proposal.status = "implementation"
    proposal.resolution = {
        "description": description or "",
        "actions": actions or [],
        "implementedAt": datetime.now(timezone.utc).isoformat(),
    }
    await db.flush()
    await db.refresh(proposal)
    logger.info("proposal_implementation", proposal_id=proposal.id)
    return proposal


# ---------------------------------------------------------------------------
# Dispute settlement
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _get_dispute(db: AsyncSession, proposal_id: int) -> GovernanceProposal:
    proposal = await get_proposal(db, proposal_id, for_update=True)
    if proposal.category != "conflict" or proposal.dispute_client_id is None:
        msg = "Settlement is only available for dispute proposals"
        raise GovernanceError(msg)
    return proposal


def _require_vote_points(user: User, action: str) -> None:
    minimum = get_settings().governance_min_vote_points
    if (user.activity_points or 0) < minimum:
        msg = f"At least {minimum} activity points are required to {action}"
        raise NotEligibleError(msg)


async def split_amounts(
    db: AsyncSession,
    disputed: Decimal | None,
    talent_amount: Decimal | None,
    client_amount: Decimal | None,
) -> tuple[Decimal, Decimal]:
    """
    Fill in missing settlement amounts from the disputed amount.

    With neither side given, the talent gets ``dispute_settlement_percentage``
    percent and the client the rest. With one side given, the other side
    gets the remainder.

    Raises:
        GovernanceError: Nothing to split from, or a side exceeds the disputed amount.
    """
    if talent_amount is not None and client_amount is not None:
        return talent_amount, client_amount
    if disputed is None:
        msg = "Both settlement amounts are required when no disputed amount is recorded"
        raise GovernanceError(msg)

    if talent_amount is None and client_amount is None:
        percentage = Decimal(str(await get_value(db, "dispute_settlement_percentage")))
        talent_amount = (disputed * percentage / 100).quantize(_PLACES, rounding=ROUND_DOWN)
        return talent_amount, disputed - talent_amount

    given = talent_amount if talent_amount is not None else client_amount
    if given > disputed:
        msg = "Settlement amount exceeds the disputed amount"
        raise GovernanceError(msg)
    if talent_amount is not None:
        return talent_amount, disputed - talent_amount
    return disputed - client_amount, client_amount


async def propose_settlement(
    db: AsyncSession,
    proposal_id: int,
    user: User,
    talent_amount: Decimal | None = None,
    client_amount: Decimal | None = None,
) -> GovernanceProposal:
    """
    Set the settlement split of a dispute.

    Any DAO member with voting rights may propose amounts except the two
    parties. New amounts clear earlier approvals.

    Raises:
        ProposalNotFoundError: Unknown proposal.
        NotEligibleError: User is below the voting activity-point minimum.
        PermissionError: User is the client or the talent.
        GovernanceError: Not a dispute, already agreed, or the amounts do not split.
    """
    _require_vote_points(user, "set settlement amounts")
    proposal = await _get_dispute(db, proposal_id)
    if user.id in (proposal.dispute_client_id, proposal.dispute_talent_id):
        msg = "Client and talent cannot set settlement amounts"
        raise PermissionError(msg)
    if proposal.settlement and proposal.settlement.get("settledByAgreement"):
        msg = "Settlement already agreed"
        raise GovernanceError(msg)

    talent, client = await split_amounts(db, proposal.disputed_amount, talent_amount, client_amount)
    proposal.settlement = {
        "talentAmount": str(talent),
        "clientAmount": str(client),
        "talentApproved": False,
        "clientApproved": False,
        "settledByAgreement": False,
        "settledBy": user.id,
        "updatedAt": _now_iso(),
    }
    await db.flush()
    await db.refresh(proposal)
    logger.info("settlement_proposed", proposal_id=proposal.id, talent=str(talent), client=str(client))
    return proposal


async def approve_settlement(db: AsyncSession, proposal_id: int, user: User) -> tuple[GovernanceProposal, str]:
    """
    Record the client's or talent's approval of the proposed split.

    Once both sides approve, voting closes. Returns the proposal and which
    side approved.

    Raises:
        ProposalNotFoundError: Unknown proposal.
        PermissionError: User is neither party.
        GovernanceError: Not a dispute, or no amounts proposed yet.
    """
    proposal = await _get_dispute(db, proposal_id)
    if user.id == proposal.dispute_client_id:
        side = "client"
    elif user.id == proposal.dispute_talent_id:
        side = "talent"
    else:
        msg = "Only the client or talent can approve settlement"
        raise PermissionError(msg)
    if not proposal.settlement:
        msg = "Settlement amounts must be set first"
        raise GovernanceError(msg)

    # JSON columns only persist on reassignment.
    settlement = dict(proposal.settlement)
    settlement[f"{side}Approved"] = True
    settlement["updatedAt"] = _now_iso()
    if settlement["clientApproved"] and settlement["talentApproved"]:
        settlement["settledByAgreement"] = True
        proposal.voting_ends_at = datetime.now(timezone.utc)
    proposal.settlement = settlement
    await db.flush()
    await db.refresh(proposal)
    logger.info("settlement_approved", proposal_id=proposal.id, side=side)
    return proposal, side


async def resolve_settlement(db: AsyncSession, proposal_id: int, user: User) -> GovernanceProposal:
    """
    Close a dispute on the split both parties approved.

    The proposal becomes ``resolved`` with outcome ``split_funds`` and the
    resolver's ``disputes_resolved`` counter goes up.

    Raises:
        ProposalNotFoundError: Unknown proposal.
        NotEligibleError: User is below the voting activity-point minimum.
        GovernanceError: Not a dispute, not approved by both, or already resolved.
    """
    _require_vote_points(user, "resolve disputes")
    proposal = await _get_dispute(db, proposal_id)
    settlement = proposal.settlement
    if not settlement:
        msg = "Settlement must be configured first"
        raise GovernanceError(msg)
    if not (settlement["clientApproved"] and settlement["talentApproved"]):
        msg = "Both parties must approve before resolving"
        raise GovernanceError(msg)
    if proposal.status == "resolved":
        msg = "Dispute already resolved"
        raise GovernanceError(msg)

    resolved_at = _now_iso()
    proposal.status = "resolved"
    proposal.settlement = {**settlement, "resolvedBy": user.id, "resolvedAt": resolved_at}
    proposal.resolution = {
        "outcome": "split_funds",
        "resolvedBy": user.id,
        "resolvedAt": resolved_at,
        "summary": (
            f"Dispute resolved by mutual agreement. "
            f"Talent: {settlement['talentAmount']}, Client: {settlement['clientAmount']}"
        ),
    }
    await db.execute(
        update(User)
        .where(User.id == user.id)
        .values(disputes_resolved=User.disputes_resolved + 1)
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    for party_id in (proposal.dispute_client_id, proposal.dispute_talent_id):
        if party_id is None:
            continue
        await create_notification(
            db, party_id, "governance", "Dispute resolved", f'The dispute "{proposal.title}" was settled.'
        )
    await db.refresh(proposal)
    logger.info("dispute_resolved", proposal_id=proposal.id, resolver_id=user.id)
    return proposal


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------

LEADERBOARD_SORTS = {
    "votesCast": User.votes_cast,
    "activityPoints": User.activity_points,
    "proposalsSubmitted": User.proposals_submitted,
    "disputesResolved": User.disputes_resolved,
}


async def dao_leaderboard(
    db: AsyncSession,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "votesCast",
    descending: bool = True,
) -> tuple[list[User], PaginationInfo]:
    """DAO members (voting points or more) ranked by one of their stats, ties by activity points."""
    column = LEADERBOARD_SORTS[sort_by]
    query = select(User).where(User.activity_points >= get_settings().governance_min_vote_points)
    order = [column.desc() if descending else column.asc()]
    if column is not User.activity_points:
        order.append(User.activity_points.desc())
    return await paginate(db, query.order_by(*order, User.id), page, limit)
