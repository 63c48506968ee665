"""Tests for proposal outcome and voting window rules."""

from datetime import datetime, timedelta, timezone

from worklob.db.models import GovernanceProposal
from worklob.governance.service import VoteTally, decide_outcome, is_voting_active


def _proposal(status="voting", starts=-1, ends=1, naive=False, category="policy"):
    now = datetime.now(timezone.utc)
    if naive:
        now = now.replace(tzinfo=None)
    return GovernanceProposal(
        title="Lower fees",
        description="Lower the platform fee",
        category=category,
        initiator_id=1,
        status=status,
        required_quorum=10,
        voting_starts_at=now + timedelta(hours=starts),
        voting_ends_at=now + timedelta(hours=ends),
    )


class TestDecideOutcome:
    def test_below_quorum_stays_open(self):
        assert decide_outcome(VoteTally(yes=1, activity_points=9), 10) is None

    def test_quorum_counts_points_not_votes(self):
        assert decide_outcome(VoteTally(yes=5, activity_points=5), 10) is None
        assert decide_outcome(VoteTally(yes=1, activity_points=10), 10) == "passed"

    def test_majority_yes_passes(self):
        assert decide_outcome(VoteTally(yes=2, no=1, activity_points=30), 10) == "passed"

    def test_tie_rejects(self):
        assert decide_outcome(VoteTally(yes=1, no=1, activity_points=30), 10) == "rejected"

    def test_abstain_does_not_count_as_yes(self):
        assert decide_outcome(VoteTally(abstain=3, activity_points=30), 10) == "rejected"

    def test_total(self):
        assert VoteTally(yes=1, no=2, abstain=3).total == 6


class TestIsVotingActive:
    def test_open_window(self):
        assert is_voting_active(_proposal()) is True

    def test_naive_datetimes_treated_as_utc(self):
        assert is_voting_active(_proposal(naive=True)) is True

    def test_window_ended(self):
        assert is_voting_active(_proposal(starts=-48, ends=-1)) is False

    def test_window_not_started(self):
        assert is_voting_active(_proposal(starts=1, ends=48)) is False

    def test_resolved_proposal_closed(self):
        assert is_voting_active(_proposal(status="passed")) is False

    def test_agreed_settlement_closes_voting(self):
        proposal = _proposal(category="conflict")
        proposal.settlement = {"settledByAgreement": True}
        assert is_voting_active(proposal) is False
