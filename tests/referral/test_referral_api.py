"""Tests for referral signup, approval, withdrawal and the public endpoints."""

from httpx import AsyncClient


async def _referrer_and_friend(register_user):
    alice = await register_user("alice")
    bob = await register_user("bob", referred_by=alice["user"]["referralCode"])
    return alice, bob


class TestSignupReferral:
    async def test_signup_creates_pending_referral(self, client: AsyncClient, register_user):
        alice, bob = await _referrer_and_friend(register_user)

        response = await client.get("/api/v1/referral", headers=alice["headers"])
        assert response.status_code == 200
        data = response.json()
        assert data["referralCode"] == alice["user"]["referralCode"]
        assert data["referralLink"].endswith(f"/register?ref={data['referralCode']}")
        assert data["stats"]["totalReferrals"] == 1
        assert data["stats"]["pendingReferrals"] == 1
        assert data["stats"]["lobTokens"] == {"pending": 100, "available": 0, "withdrawn": 0}

        referral = data["referrals"][0]
        assert referral["status"] == "pending"
        assert referral["referredUser"]["id"] == bob["id"]
        assert referral["lobTokens"] == 100
        assert referral["bonusEarned"] == 10

    async def test_wallet_signup_with_referral(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        await register_user("walt", wallet="0x" + "1" * 40, referred_by=alice["user"]["referralCode"])
        data = (await client.get("/api/v1/referral", headers=alice["headers"])).json()
        assert data["stats"]["totalReferrals"] == 1

    async def test_unknown_code_is_ignored(self, client: AsyncClient, register_user):
        bob = await register_user("bob", referred_by="NOPE123")
        data = (await client.get("/api/v1/referral", headers=bob["headers"])).json()
        assert data["stats"]["totalReferrals"] == 0


class TestApproval:
    async def test_approved_once_friend_is_active(self, client: AsyncClient, register_user, update_user):
        alice, bob = await _referrer_and_friend(register_user)
        await update_user(bob["id"], activity_points=20)

        data = (await client.get("/api/v1/referral", headers=alice["headers"])).json()
        assert data["stats"]["approvedReferrals"] == 1
        assert data["stats"]["lobTokens"] == {"pending": 0, "available": 100, "withdrawn": 0}
        assert data["referrals"][0]["status"] == "approved"
        assert data["referrals"][0]["currentActivityPoints"] == 20

        me = (await client.get("/api/v1/auth/me", headers=alice["headers"])).json()
        assert me["stats"]["activityPoints"] == 5

    async def test_approval_happens_once(self, client: AsyncClient, register_user, update_user):
        alice, bob = await _referrer_and_friend(register_user)
        await update_user(bob["id"], activity_points=50)
        await client.get("/api/v1/referral", headers=alice["headers"])
        data = (await client.get("/api/v1/referral", headers=alice["headers"])).json()
        assert data["stats"]["lobTokens"]["available"] == 100

        me = (await client.get("/api/v1/auth/me", headers=alice["headers"])).json()
        assert me["stats"]["activityPoints"] == 5

    async def test_below_threshold_stays_pending(self, client: AsyncClient, register_user, update_user):
        alice, bob = await _referrer_and_friend(register_user)
        await update_user(bob["id"], activity_points=19)
        data = (await client.get("/api/v1/referral", headers=alice["headers"])).json()
        assert data["stats"]["pendingReferrals"] == 1

    async def test_approval_notifies_referrer(self, client: AsyncClient, register_user, update_user):
        alice, bob = await _referrer_and_friend(register_user)
        await update_user(bob["id"], activity_points=20)
        await client.get("/api/v1/referral", headers=alice["headers"])
        notifications = (await client.get("/api/v1/notifications", headers=alice["headers"])).json()
        assert [n["title"] for n in notifications["notifications"]] == ["Referral approved"]


class TestWithdraw:
    async def test_partial_then_full_withdrawal(self, client: AsyncClient, register_user, update_user):
        alice, bob = await _referrer_and_friend(register_user)
        await update_user(bob["id"], activity_points=20)
        await client.get("/api/v1/referral", headers=alice["headers"])

        response = await client.post("/api/v1/referral/withdraw", json={"amount": 40}, headers=alice["headers"])
        assert response.status_code == 200
        assert response.json() == {
            "message": "LOB tokens withdrawn successfully",
            "amount": 40,
            "available": 60,
            "withdrawn": 40,
        }
        data = (await client.get("/api/v1/referral", headers=alice["headers"])).json()
        assert data["referrals"][0]["status"] == "approved"
        assert data["referrals"][0]["tokensWithdrawn"] == 40

        response = await client.post("/api/v1/referral/withdraw", json={"amount": 60}, headers=alice["headers"])
        assert response.json()["available"] == 0
        data = (await client.get("/api/v1/referral", headers=alice["headers"])).json()
        assert data["referrals"][0]["status"] == "withdrawn"

    async def test_withdraw_more_than_available(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        response = await client.post("/api/v1/referral/withdraw", json={"amount": 1}, headers=alice["headers"])
        assert response.status_code == 400
        assert response.json()["detail"].startswith("Insufficient LOB tokens")

    async def test_over_withdraw_with_balance_changes_nothing(
        self, client: AsyncClient, register_user, update_user
    ):
        alice, bob = await _referrer_and_friend(register_user)
        await update_user(bob["id"], activity_points=20)
        await client.get("/api/v1/referral", headers=alice["headers"])
        await client.post("/api/v1/referral/withdraw", json={"amount": 30}, headers=alice["headers"])

        response = await client.post("/api/v1/referral/withdraw", json={"amount": 71}, headers=alice["headers"])
        assert response.status_code == 400
        assert response.json()["detail"].startswith("Insufficient LOB tokens")

        data = (await client.get("/api/v1/referral", headers=alice["headers"])).json()
        assert data["stats"]["lobTokens"] == {"pending": 0, "available": 70, "withdrawn": 30}
        assert data["referrals"][0]["status"] == "approved"
        assert data["referrals"][0]["tokensWithdrawn"] == 30

    async def test_withdraw_rejects_sub_unit_precision(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        response = await client.post(
            "/api/v1/referral/withdraw", json={"amount": "0.000000001"}, headers=alice["headers"]
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Validation error"

    async def test_withdrawal_recorded_in_wallet_history(
        self, client: AsyncClient, register_user, update_user
    ):
        alice, bob = await _referrer_and_friend(register_user)
        await update_user(bob["id"], activity_points=20)
        await client.get("/api/v1/referral", headers=alice["headers"])
        await client.post("/api/v1/referral/withdraw", json={"amount": 100}, headers=alice["headers"])

        history = (await client.get("/api/v1/wallet/transactions", headers=alice["headers"])).json()
        assert [t["type"] for t in history["transactions"]] == ["referral"]
        assert history["transactions"][0]["currency"] == "LOB"
        assert history["transactions"][0]["metadata"]["action"] == "withdraw"


class TestProcess:
    async def test_process_existing_user(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        bob = await register_user("bob")
        response = await client.post(
            "/api/v1/referral/process",
            json={"referralCode": alice["user"]["referralCode"], "referredUserId": bob["id"]},
            headers=bob["headers"],
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "pending"
        assert data["lobTokens"] == 100

    async def test_duplicate_referral(self, client: AsyncClient, register_user):
        alice, bob = await _referrer_and_friend(register_user)
        response = await client.post(
            "/api/v1/referral/process",
            json={"referralCode": alice["user"]["referralCode"], "referredUserId": bob["id"]},
            headers=bob["headers"],
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Referral already exists"

    async def test_self_referral(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        response = await client.post(
            "/api/v1/referral/process",
            json={"referralCode": alice["user"]["referralCode"], "referredUserId": alice["id"]},
            headers=alice["headers"],
        )
        assert response.status_code == 400

    async def test_unknown_code(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        response = await client.post(
            "/api/v1/referral/process",
            json={"referralCode": "NOPE123", "referredUserId": alice["id"]},
            headers=alice["headers"],
        )
        assert response.status_code == 404


class TestPublic:
    async def test_validate_code(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        response = await client.get(f"/api/v1/referral/validate/{alice['user']['referralCode']}")
        assert response.status_code == 200
        assert response.json() == {"valid": True, "referrer": {"id": alice["id"], "username": "alice"}}

    async def test_validate_unknown_code(self, client: AsyncClient):
        response = await client.get("/api/v1/referral/validate/NOPE123")
        assert response.status_code == 404

    async def test_leaderboard(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        carol = await register_user("carol")
        await register_user("bob", referred_by=alice["user"]["referralCode"])
        await register_user("dave", referred_by=alice["user"]["referralCode"])
        await register_user("erin", referred_by=carol["user"]["referralCode"])

        response = await client.get("/api/v1/referral/leaderboard")
        assert response.status_code == 200
        assert response.json() == [
            {"userId": alice["id"], "username": "alice", "totalReferrals": 2, "totalBonus": 20},
            {"userId": carol["id"], "username": "carol", "totalReferrals": 1, "totalBonus": 10},
        ]
