"""Tests for proposals, voting and implementation."""

import pytest
from httpx import AsyncClient

PROPOSAL = {
    "title": "Lower the platform fee",
    "description": "Reduce the fee charged on completed jobs from 5% to 3%.",
    "category": "policy",
    "proposalData": {"impact": "Cheaper jobs", "timeline": "Next quarter"},
}


@pytest.fixture
def member(register_user, update_user):
    """Register a user holding ``points`` activity points."""

    async def _member(username: str, points: int):
        account = await register_user(username)
        await update_user(account["id"], activity_points=points)
        return account

    return _member


async def _create(client: AsyncClient, headers, **overrides):
    return await client.post("/api/v1/governance", json={**PROPOSAL, **overrides}, headers=headers)


async def _vote(client: AsyncClient, proposal_id: int, headers, vote: str):
    return await client.post(f"/api/v1/governance/{proposal_id}/vote", json={"vote": vote}, headers=headers)


class TestCreateProposal:
    async def test_create(self, client: AsyncClient, member):
        alice = await member("alice", 10)
        response = await _create(client, alice["headers"])
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "voting"
        assert data["initiatorId"] == alice["id"]
        assert data["isVotingActive"] is True
        assert data["proposalData"] == {"impact": "Cheaper jobs", "timeline": "Next quarter"}
        assert data["voteStats"] == {
            "totalVotes": 0,
            "yesVotes": 0,
            "noVotes": 0,
            "abstainVotes": 0,
            "requiredQuorum": 10,
        }

        me = (await client.get("/api/v1/auth/me", headers=alice["headers"])).json()
        assert me["stats"]["proposalsSubmitted"] == 1

    async def test_not_enough_points(self, client: AsyncClient, member):
        alice = await member("alice", 9)
        response = await _create(client, alice["headers"])
        assert response.status_code == 403

    async def test_invalid_category(self, client: AsyncClient, member):
        alice = await member("alice", 10)
        response = await _create(client, alice["headers"], category="gossip")
        assert response.status_code == 400

    async def test_short_description(self, client: AsyncClient, member):
        alice = await member("alice", 10)
        response = await _create(client, alice["headers"], description="Too short")
        assert response.status_code == 400


class TestListAndRead:
    async def test_list_and_filter(self, client: AsyncClient, member):
        alice = await member("alice", 10)
        await _create(client, alice["headers"])
        await _create(client, alice["headers"], title="Add dark mode", category="feature")

        everything = (await client.get("/api/v1/governance")).json()
        assert everything["pagination"]["total"] == 2

        features = (await client.get("/api/v1/governance", params={"category": "feature"})).json()
        assert [p["title"] for p in features["proposals"]] == ["Add dark mode"]

        passed = (await client.get("/api/v1/governance", params={"status": "passed"})).json()
        assert passed["proposals"] == []

    async def test_invalid_filters(self, client: AsyncClient):
        assert (await client.get("/api/v1/governance", params={"status": "open"})).status_code == 400
        assert (await client.get("/api/v1/governance", params={"category": "gossip"})).status_code == 400

    async def test_unknown_proposal(self, client: AsyncClient):
        assert (await client.get("/api/v1/governance/999")).status_code == 404


class TestVoting:
    async def test_first_vote_below_quorum(self, client: AsyncClient, member):
        alice = await member("alice", 10)
        bob = await member("bob", 9)
        proposal_id = (await _create(client, alice["headers"])).json()["id"]

        response = await _vote(client, proposal_id, bob["headers"], "yes")
        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Vote recorded"
        assert data["pointsAwarded"] == 5
        assert data["proposal"]["status"] == "voting"
        assert data["proposal"]["voteStats"]["yesVotes"] == 1

        me = (await client.get("/api/v1/auth/me", headers=bob["headers"])).json()
        assert me["stats"]["activityPoints"] == 14
        assert me["stats"]["votesCast"] == 1

    async def test_changing_vote_replaces_it(self, client: AsyncClient, member):
        alice = await member("alice", 10)
        bob = await member("bob", 9)
        proposal_id = (await _create(client, alice["headers"])).json()["id"]
        await _vote(client, proposal_id, bob["headers"], "yes")

        response = await _vote(client, proposal_id, bob["headers"], "abstain")
        data = response.json()
        assert data["message"] == "Vote updated"
        assert data["pointsAwarded"] == 0
        assert data["proposal"]["voteStats"]["totalVotes"] == 1
        assert data["proposal"]["voteStats"]["yesVotes"] == 0
        assert data["proposal"]["voteStats"]["abstainVotes"] == 1

        me = (await client.get("/api/v1/auth/me", headers=bob["headers"])).json()
        assert me["stats"]["votesCast"] == 1

    async def test_quorum_reached_passes(self, client: AsyncClient, member):
        alice = await member("alice", 10)
        bob = await member("bob", 12)
        proposal_id = (await _create(client, alice["headers"])).json()["id"]

        data = (await _vote(client, proposal_id, bob["headers"], "yes")).json()
        assert data["proposal"]["status"] == "passed"
        assert data["proposal"]["isVotingActive"] is False

        notifications = (await client.get("/api/v1/notifications", headers=alice["headers"])).json()
        assert [n["title"] for n in notifications["notifications"]] == ["Proposal passed"]

    async def test_tie_at_quorum_rejects(self, client: AsyncClient, member):
        alice = await member("alice", 10)
        bob = await member("bob", 9)
        carol = await member("carol", 9)
        proposal_id = (await _create(client, alice["headers"])).json()["id"]

        await _vote(client, proposal_id, bob["headers"], "yes")
        data = (await _vote(client, proposal_id, carol["headers"], "no")).json()
        assert data["proposal"]["status"] == "rejected"

    async def test_vote_after_resolution_rejected(self, client: AsyncClient, member):
        alice = await member("alice", 10)
        bob = await member("bob", 12)
        carol = await member("carol", 9)
        proposal_id = (await _create(client, alice["headers"])).json()["id"]
        await _vote(client, proposal_id, bob["headers"], "yes")

        response = await _vote(client, proposal_id, carol["headers"], "no")
        assert response.status_code == 400
        assert response.json()["detail"] == "Voting is not open for this proposal"

    async def test_not_enough_points_to_vote(self, client: AsyncClient, member):
        alice = await member("alice", 10)
        bob = await member("bob", 8)
        proposal_id = (await _create(client, alice["headers"])).json()["id"]
        response = await _vote(client, proposal_id, bob["headers"], "yes")
        assert response.status_code == 403

    async def test_invalid_choice(self, client: AsyncClient, member):
        alice = await member("alice", 10)
        proposal_id = (await _create(client, alice["headers"])).json()["id"]
        response = await _vote(client, proposal_id, alice["headers"], "maybe")
        assert response.status_code == 400

    async def test_unknown_proposal(self, client: AsyncClient, member):
        bob = await member("bob", 9)
        response = await _vote(client, 999, bob["headers"], "yes")
        assert response.status_code == 404

    async def test_detail_lists_votes_with_points(self, client: AsyncClient, member):
        alice = await member("alice", 10)
        bob = await member("bob", 9)
        proposal_id = (await _create(client, alice["headers"])).json()["id"]
        await _vote(client, proposal_id, bob["headers"], "no")

        detail = (await client.get(f"/api/v1/governance/{proposal_id}")).json()
        assert [(v["userId"], v["vote"], v["activityPoints"]) for v in detail["votes"]] == [(bob["id"], "no", 9)]


class TestImplementation:
    async def _passed_proposal(self, client: AsyncClient, member) -> tuple[dict, int]:
        alice = await member("alice", 10)
        bob = await member("bob", 12)
        proposal_id = (await _create(client, alice["headers"])).json()["id"]
        await _vote(client, proposal_id, bob["headers"], "yes")
        return alice, proposal_id

    async def test_initiator_marks_implementation(self, client: AsyncClient, member):
        alice, proposal_id = await self._passed_proposal(client, member)
        response = await client.post(
            f"/api/v1/governance/{proposal_id}/implement",
            json={"description": "Fee lowered", "actions": ["update contract"]},
            headers=alice["headers"],
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "implementation"
        assert data["resolution"]["description"] == "Fee lowered"
        assert data["resolution"]["actions"] == ["update contract"]
        assert "implementedAt" in data["resolution"]

    async def test_only_initiator(self, client: AsyncClient, member):
        _, proposal_id = await self._passed_proposal(client, member)
        carol = await member("carol", 50)
        response = await client.post(
            f"/api/v1/governance/{proposal_id}/implement", json={}, headers=carol["headers"]
        )
        assert response.status_code == 403

    async def test_must_have_passed(self, client: AsyncClient, member):
        alice = await member("alice", 10)
        proposal_id = (await _create(client, alice["headers"])).json()["id"]
        response = await client.post(
            f"/api/v1/governance/{proposal_id}/implement", json={}, headers=alice["headers"]
        )
        assert response.status_code == 400


class TestLeaderboard:
    async def test_ranks_dao_members_only(self, client: AsyncClient, member, update_user):
        alice = await member("alice", 30)
        bob = await member("bob", 12)
        await member("carol", 8)
        await update_user(bob["id"], votes_cast=4)
        await update_user(alice["id"], votes_cast=1)

        data = (await client.get("/api/v1/governance/leaderboard")).json()
        assert [m["username"] for m in data["leaderboard"]] == ["bob", "alice"]
        assert data["pagination"]["total"] == 2
        assert data["leaderboard"][0]["votesCast"] == 4
        assert data["leaderboard"][0]["disputesResolved"] == 0

    async def test_sort_by_points_ascending(self, client: AsyncClient, member):
        await member("alice", 30)
        await member("bob", 12)
        data = (
            await client.get(
                "/api/v1/governance/leaderboard", params={"sortBy": "activityPoints", "sortOrder": "asc"}
            )
        ).json()
        assert [m["username"] for m in data["leaderboard"]] == ["bob", "alice"]

    @pytest.mark.parametrize("params", [{"sortBy": "karma"}, {"sortOrder": "up"}])
    async def test_invalid_sort(self, client: AsyncClient, params):
        response = await client.get("/api/v1/governance/leaderboard", params=params)
        assert response.status_code == 400
