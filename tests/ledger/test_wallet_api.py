"""Tests for wallet balances, transaction history and wallet mutations."""

import pytest
from httpx import AsyncClient

WALLET = "0x" + "c3" * 20


class TestWallet:
    async def test_new_account_balances(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        response = await client.get("/api/v1/wallet", headers=alice["headers"])
        assert response.status_code == 200
        assert response.json() == {
            "wallet": {
                "balance": 1000,
                "escrowBalance": 0,
                "totalBalance": 1000,
                "currency": "USD",
                "connectedWalletAddress": None,
            },
            "lobTokens": {"pending": 0, "available": 0, "withdrawn": 0},
        }

    async def test_total_includes_escrow(self, client: AsyncClient, register_user, update_user):
        alice = await register_user("alice")
        await update_user(alice["id"], wallet_balance=400, escrow_balance=250)
        wallet = (await client.get("/api/v1/wallet", headers=alice["headers"])).json()["wallet"]
        assert wallet["totalBalance"] == 650

    async def test_requires_auth(self, client: AsyncClient):
        assert (await client.get("/api/v1/wallet")).status_code == 401


class TestTransactions:
    async def test_empty_history(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        data = (await client.get("/api/v1/wallet/transactions", headers=alice["headers"])).json()
        assert data["transactions"] == []
        assert data["pagination"]["total"] == 0

    async def test_history_is_per_user_and_filterable(
        self, client: AsyncClient, register_user, update_user
    ):
        alice = await register_user("alice")
        bob = await register_user("bob", referred_by=alice["user"]["referralCode"])
        await update_user(bob["id"], activity_points=20)
        await client.get("/api/v1/referral", headers=alice["headers"])
        for amount in (10, 20, 30):
            await client.post("/api/v1/referral/withdraw", json={"amount": amount}, headers=alice["headers"])

        page = (
            await client.get("/api/v1/wallet/transactions", params={"limit": 2}, headers=alice["headers"])
        ).json()
        assert page["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
        assert [t["amount"] for t in page["transactions"]] == [30, 20]

        filtered = (
            await client.get(
                "/api/v1/wallet/transactions", params={"type": "blog_withdrawal"}, headers=alice["headers"]
            )
        ).json()
        assert filtered["transactions"] == []

        others = (await client.get("/api/v1/wallet/transactions", headers=bob["headers"])).json()
        assert others["pagination"]["total"] == 0


async def _balances(client: AsyncClient, headers) -> dict:
    return (await client.get("/api/v1/wallet/balance", headers=headers)).json()["wallet"]


class TestDepositAndWithdraw:
    async def test_deposit_credits_and_logs(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        response = await client.post(
            "/api/v1/wallet/deposit", json={"amount": 250, "paymentMethod": "card"}, headers=alice["headers"]
        )
        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Deposit successful"
        assert data["newBalance"] == 1250
        assert data["transaction"]["type"] == "deposit"
        assert data["transaction"]["status"] == "completed"
        assert data["transaction"]["description"] == "Deposit via card"
        assert data["transaction"]["toUserId"] == alice["id"]

    @pytest.mark.parametrize("amount", [0, 0.5, "1.000000001"])
    async def test_deposit_amount_validated(self, client: AsyncClient, register_user, amount):
        alice = await register_user("alice")
        response = await client.post("/api/v1/wallet/deposit", json={"amount": amount}, headers=alice["headers"])
        assert response.status_code == 400
        assert (await _balances(client, alice["headers"]))["balance"] == 1000

    async def test_withdraw_is_pending_debit(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        response = await client.post(
            "/api/v1/wallet/withdraw", json={"amount": 300, "bankAccount": "NL00BANK0123"}, headers=alice["headers"]
        )
        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Withdrawal request submitted"
        assert data["newBalance"] == 700
        assert data["transaction"]["status"] == "pending"
        assert data["transaction"]["direction"] == "debit"

    async def test_overdraw_rejected_without_mutation(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        response = await client.post(
            "/api/v1/wallet/withdraw", json={"amount": 1000.01, "bankAccount": "NL00"}, headers=alice["headers"]
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Insufficient balance"
        assert (await _balances(client, alice["headers"]))["balance"] == 1000

        history = (await client.get("/api/v1/wallet/transactions", headers=alice["headers"])).json()
        assert history["transactions"] == []

    async def test_withdraw_requires_bank_account(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        response = await client.post("/api/v1/wallet/withdraw", json={"amount": 10}, headers=alice["headers"])
        assert response.status_code == 400


class TestTransfer:
    async def test_transfer_moves_funds(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        bob = await register_user("bob")
        response = await client.post(
            "/api/v1/wallet/transfer", json={"toUser": bob["id"], "amount": 150}, headers=alice["headers"]
        )
        assert response.status_code == 200
        data = response.json()
        assert data["newBalance"] == 850
        assert data["transaction"]["description"] == "Transfer to bob"
        assert (await _balances(client, bob["headers"]))["balance"] == 1150

        received = (await client.get("/api/v1/wallet/transactions", headers=bob["headers"])).json()
        assert [t["type"] for t in received["transactions"]] == ["transfer"]

    async def test_insufficient_balance_leaves_both_wallets(
        self, client: AsyncClient, register_user, update_user
    ):
        alice = await register_user("alice")
        bob = await register_user("bob")
        await update_user(alice["id"], wallet_balance=40)
        response = await client.post(
            "/api/v1/wallet/transfer", json={"toUser": bob["id"], "amount": 50}, headers=alice["headers"]
        )
        assert response.status_code == 400
        assert (await _balances(client, alice["headers"]))["balance"] == 40
        assert (await _balances(client, bob["headers"]))["balance"] == 1000

    async def test_unknown_recipient(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        response = await client.post(
            "/api/v1/wallet/transfer", json={"toUser": 999, "amount": 5}, headers=alice["headers"]
        )
        assert response.status_code == 404

    async def test_transfer_to_self(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        response = await client.post(
            "/api/v1/wallet/transfer", json={"toUser": alice["id"], "amount": 5}, headers=alice["headers"]
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot transfer to yourself"


class TestEscrow:
    async def test_deposit_then_release(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        locked = await client.post(
            "/api/v1/wallet/escrow",
            json={"amount": 200, "action": "deposit", "jobId": "job-7"},
            headers=alice["headers"],
        )
        assert locked.status_code == 200
        assert locked.json()["message"] == "Escrow deposit successful"
        assert locked.json()["newBalance"] == 800
        assert locked.json()["newEscrowBalance"] == 200
        assert locked.json()["transaction"]["metadata"] == {"jobId": "job-7"}

        released = await client.post(
            "/api/v1/wallet/escrow", json={"amount": 50, "action": "release"}, headers=alice["headers"]
        )
        assert released.json()["newBalance"] == 850
        assert released.json()["newEscrowBalance"] == 150

        details = (await client.get("/api/v1/wallet/escrow/details", headers=alice["headers"])).json()
        assert details["totalEscrow"] == 150
        assert details["count"] == 2
        assert [t["type"] for t in details["escrowDetails"]] == ["escrow_release", "escrow_deposit"]

    async def test_release_more_than_escrow(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        response = await client.post(
            "/api/v1/wallet/escrow", json={"amount": 1, "action": "release"}, headers=alice["headers"]
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Insufficient escrow balance"

    async def test_unknown_action(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        response = await client.post(
            "/api/v1/wallet/escrow", json={"amount": 1, "action": "burn"}, headers=alice["headers"]
        )
        assert response.status_code == 400


class TestOnchain:
    async def test_direction_from_wallet_account(self, client: AsyncClient, register_user):
        walt = await register_user("walt", wallet=WALLET)
        response = await client.post(
            "/api/v1/wallet/transactions/onchain",
            json={
                "txHash": "0xabc",
                "amount": "1.123456789",
                "type": "transfer",
                "tokenSymbol": "LOB",
                "fromAddress": WALLET.upper().replace("0X", "0x"),
                "toAddress": "0x" + "d4" * 20,
                "gasPrice": 0,
            },
            headers=walt["headers"],
        )
        assert response.status_code == 201
        tx = response.json()["transaction"]
        assert tx["direction"] == "debit"
        assert tx["fromUserId"] == walt["id"]
        assert tx["isOnChain"] is True
        assert tx["currency"] == "LOB"
        assert tx["amount"] == 1.12345678

    async def test_duplicate_hash_rejected(self, client: AsyncClient, register_user):
        walt = await register_user("walt", wallet=WALLET)
        body = {"txHash": "0xdup", "amount": 1, "type": "deposit", "toAddress": WALLET}
        first = await client.post("/api/v1/wallet/transactions/onchain", json=body, headers=walt["headers"])
        assert first.status_code == 201
        again = await client.post("/api/v1/wallet/transactions/onchain", json=body, headers=walt["headers"])
        assert again.status_code == 400
        assert again.json()["detail"] == "Transaction already exists"

    async def test_connected_wallet_used_for_email_account(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        await client.post("/api/v1/wallet/connect", json={"walletAddress": WALLET}, headers=alice["headers"])
        response = await client.post(
            "/api/v1/wallet/transactions/onchain",
            json={"txHash": "0xin", "amount": 5, "type": "deposit", "toAddress": WALLET},
            headers=alice["headers"],
        )
        tx = response.json()["transaction"]
        assert tx["direction"] == "credit"
        assert tx["toUserId"] == alice["id"]
        assert tx["currency"] == "ETH"


class TestConnectWallet:
    async def test_connect_and_disconnect(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        response = await client.post(
            "/api/v1/wallet/connect", json={"walletAddress": WALLET.replace("c3", "C3")}, headers=alice["headers"]
        )
        assert response.status_code == 200
        assert response.json()["connectedWalletAddress"] == WALLET
        assert (await _balances(client, alice["headers"]))["connectedWalletAddress"] == WALLET

        response = await client.post("/api/v1/wallet/disconnect", headers=alice["headers"])
        assert response.json() == {"message": "Wallet disconnected successfully"}
        me = (await client.get("/api/v1/auth/me", headers=alice["headers"])).json()
        assert me["connectedWalletAddress"] is None

    async def test_wallet_account_cannot_connect(self, client: AsyncClient, register_user):
        walt = await register_user("walt", wallet=WALLET)
        response = await client.post(
            "/api/v1/wallet/connect", json={"walletAddress": "0x" + "d4" * 20}, headers=walt["headers"]
        )
        assert response.status_code == 400

    async def test_address_of_other_account_rejected(self, client: AsyncClient, register_user):
        await register_user("walt", wallet=WALLET)
        alice = await register_user("alice")
        response = await client.post("/api/v1/wallet/connect", json={"walletAddress": WALLET}, headers=alice["headers"])
        assert response.status_code == 400
        assert "another account" in response.json()["detail"]

    async def test_malformed_address(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        response = await client.post("/api/v1/wallet/connect", json={"walletAddress": "0x12"}, headers=alice["headers"])
        assert response.status_code == 400
