"""Tests for admin moderation, saved blogs and blogger follows."""

import pytest
from httpx import AsyncClient


def blog_body(title, status="published"):
    return {
        "title": title,
        "thumbnail": "https://img.example.com/thumb.png",
        "category": "Business",
        "sections": [{"type": "text", "content": "Body"}],
        "status": status,
    }


async def _create_blog(client: AsyncClient, headers, title, status="published") -> int:
    response = await client.post("/api/v1/blogs", json=blog_body(title, status), headers=headers)
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
async def admin(register_user, update_user):
    account = await register_user("moderator")
    await update_user(account["id"], role="admin")
    return account


class TestAdminGate:
    @pytest.mark.parametrize(
        ("method", "path"),
        [
            ("get", "/api/v1/blogs/admin/all"),
            ("put", "/api/v1/blogs/admin/1/feature"),
            ("put", "/api/v1/blogs/admin/1/sponsor"),
            ("delete", "/api/v1/blogs/admin/1"),
        ],
    )
    async def test_non_admin_forbidden(self, client: AsyncClient, register_user, method, path):
        alice = await register_user("alice")
        response = await getattr(client, method)(path, headers=alice["headers"])
        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"

    async def test_priority_requires_admin(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        blog_id = await _create_blog(client, alice["headers"], "Mine")
        response = await client.put(
            f"/api/v1/blogs/admin/{blog_id}/priority", json={"priority": 5}, headers=alice["headers"]
        )
        assert response.status_code == 403

    async def test_anonymous_unauthorized(self, client: AsyncClient):
        response = await client.get("/api/v1/blogs/admin/all")
        assert response.status_code == 401


class TestFeatureAndSponsor:
    async def test_featured_filter_orders_by_priority(self, client: AsyncClient, register_user, admin):
        alice = await register_user("alice")
        low = await _create_blog(client, alice["headers"], "Low priority")
        high = await _create_blog(client, alice["headers"], "High priority")
        await _create_blog(client, alice["headers"], "Not featured")

        for blog_id in (low, high):
            response = await client.put(f"/api/v1/blogs/admin/{blog_id}/feature", headers=admin["headers"])
            assert response.status_code == 200
            assert response.json() == {"success": True, "featured": True}
        response = await client.put(
            f"/api/v1/blogs/admin/{high}/priority", json={"priority": 90}, headers=admin["headers"]
        )
        assert response.json() == {"success": True, "priority": 90}

        listing = (await client.get("/api/v1/blogs", params={"filter": "featured"})).json()
        assert [b["id"] for b in listing["blogs"]] == [high, low]
        assert listing["blogs"][0]["priority"] == 90
        assert listing["blogs"][0]["featured"] is True

    async def test_feature_toggles_off(self, client: AsyncClient, register_user, admin):
        alice = await register_user("alice")
        blog_id = await _create_blog(client, alice["headers"], "Toggled")
        await client.put(f"/api/v1/blogs/admin/{blog_id}/feature", headers=admin["headers"])
        again = await client.put(f"/api/v1/blogs/admin/{blog_id}/feature", headers=admin["headers"])
        assert again.json()["featured"] is False

        listing = (await client.get("/api/v1/blogs", params={"filter": "featured"})).json()
        assert listing["blogs"] == []

    async def test_sponsored_filter(self, client: AsyncClient, register_user, admin):
        alice = await register_user("alice")
        sponsored = await _create_blog(client, alice["headers"], "Sponsored")
        await _create_blog(client, alice["headers"], "Plain")

        response = await client.put(f"/api/v1/blogs/admin/{sponsored}/sponsor", headers=admin["headers"])
        assert response.json() == {"success": True, "sponsored": True}

        listing = (await client.get("/api/v1/blogs", params={"filter": "sponsored"})).json()
        assert [b["id"] for b in listing["blogs"]] == [sponsored]
        assert listing["blogs"][0]["sponsored"] is True

    async def test_unknown_blog_not_found(self, client: AsyncClient, admin):
        for path in ("/api/v1/blogs/admin/999/feature", "/api/v1/blogs/admin/999/sponsor"):
            response = await client.put(path, headers=admin["headers"])
            assert response.status_code == 404

    @pytest.mark.parametrize("priority", [-1, 101])
    async def test_priority_out_of_range(self, client: AsyncClient, register_user, admin, priority):
        alice = await register_user("alice")
        blog_id = await _create_blog(client, alice["headers"], "Ranged")
        response = await client.put(
            f"/api/v1/blogs/admin/{blog_id}/priority", json={"priority": priority}, headers=admin["headers"]
        )
        assert response.status_code == 400


class TestAdminListing:
    async def test_lists_every_status(self, client: AsyncClient, register_user, admin):
        alice = await register_user("alice")
        await _create_blog(client, alice["headers"], "Published one")
        draft = await _create_blog(client, alice["headers"], "Draft one", status="draft")

        everything = (await client.get("/api/v1/blogs/admin/all", headers=admin["headers"])).json()
        assert everything["pagination"]["total"] == 2
        assert everything["pagination"]["limit"] == 50

        drafts = (
            await client.get("/api/v1/blogs/admin/all", params={"status": "draft"}, headers=admin["headers"])
        ).json()
        assert [b["id"] for b in drafts["blogs"]] == [draft]

    async def test_search_matches_author(self, client: AsyncClient, register_user, admin):
        alice = await register_user("alice")
        bob = await register_user("bob")
        await _create_blog(client, alice["headers"], "Alpha")
        bob_blog = await _create_blog(client, bob["headers"], "Beta")

        found = (
            await client.get("/api/v1/blogs/admin/all", params={"search": "bob"}, headers=admin["headers"])
        ).json()
        assert [b["id"] for b in found["blogs"]] == [bob_blog]

    async def test_view_range(self, client: AsyncClient, register_user, admin):
        alice = await register_user("alice")
        await _create_blog(client, alice["headers"], "Quiet")
        response = await client.get(
            "/api/v1/blogs/admin/all", params={"minViews": 1}, headers=admin["headers"]
        )
        assert response.json()["blogs"] == []

    async def test_invalid_status(self, client: AsyncClient, admin):
        response = await client.get(
            "/api/v1/blogs/admin/all", params={"status": "deleted"}, headers=admin["headers"]
        )
        assert response.status_code == 400


class TestAdminDelete:
    async def test_deletes_any_blog(self, client: AsyncClient, register_user, admin):
        alice = await register_user("alice")
        bob = await register_user("bob")
        blog_id = await _create_blog(client, alice["headers"], "Doomed")
        await client.post(f"/api/v1/blogs/{blog_id}/like", headers=bob["headers"])
        await client.post(f"/api/v1/blogs/{blog_id}/save", headers=bob["headers"])

        response = await client.delete(f"/api/v1/blogs/admin/{blog_id}", headers=admin["headers"])
        assert response.status_code == 200
        assert response.json()["success"] is True

        assert (await client.get(f"/api/v1/blogs/{blog_id}")).status_code == 404
        saved = (await client.get("/api/v1/blogs/user/saved", headers=bob["headers"])).json()
        assert saved["blogs"] == []

    async def test_unknown_blog(self, client: AsyncClient, admin):
        response = await client.delete("/api/v1/blogs/admin/999", headers=admin["headers"])
        assert response.status_code == 404


class TestSaves:
    async def test_save_toggle_and_list(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        bob = await register_user("bob")
        blog_id = await _create_blog(client, alice["headers"], "Keeper")

        first = await client.post(f"/api/v1/blogs/{blog_id}/save", headers=bob["headers"])
        assert first.json() == {"success": True, "isSaved": True}

        detail = (await client.get(f"/api/v1/blogs/{blog_id}", headers=bob["headers"])).json()
        assert detail["isSaved"] is True
        assert (await client.get(f"/api/v1/blogs/{blog_id}")).json()["isSaved"] is False

        saved = (await client.get("/api/v1/blogs/user/saved", headers=bob["headers"])).json()
        assert [b["id"] for b in saved["blogs"]] == [blog_id]
        assert saved["blogs"][0]["isSaved"] is True

        second = await client.post(f"/api/v1/blogs/{blog_id}/save", headers=bob["headers"])
        assert second.json()["isSaved"] is False
        saved = (await client.get("/api/v1/blogs/user/saved", headers=bob["headers"])).json()
        assert saved["pagination"]["total"] == 0

    async def test_save_unknown_blog(self, client: AsyncClient, register_user):
        bob = await register_user("bob")
        response = await client.post("/api/v1/blogs/999/save", headers=bob["headers"])
        assert response.status_code == 404

    async def test_save_requires_auth(self, client: AsyncClient):
        response = await client.post("/api/v1/blogs/1/save")
        assert response.status_code == 401


class TestFollows:
    async def test_follow_feeds_following_list(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        bob = await register_user("bob")
        carol = await register_user("carol")
        alice_blog = await _create_blog(client, alice["headers"], "From alice")
        await _create_blog(client, carol["headers"], "From carol")
        await _create_blog(client, alice["headers"], "Alice draft", status="draft")

        response = await client.post(f"/api/v1/blogs/user/follow/{alice['id']}", headers=bob["headers"])
        assert response.json() == {"success": True, "isFollowing": True}

        feed = (await client.get("/api/v1/blogs/user/following", headers=bob["headers"])).json()
        assert [b["id"] for b in feed["blogs"]] == [alice_blog]

        notifications = (await client.get("/api/v1/notifications", headers=alice["headers"])).json()
        assert notifications["notifications"][0]["title"] == "New Follower"
        assert "bob" in notifications["notifications"][0]["message"]

    async def test_unfollow(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        bob = await register_user("bob")
        await _create_blog(client, alice["headers"], "From alice")

        await client.post(f"/api/v1/blogs/user/follow/{alice['id']}", headers=bob["headers"])
        again = await client.post(f"/api/v1/blogs/user/follow/{alice['id']}", headers=bob["headers"])
        assert again.json()["isFollowing"] is False

        feed = (await client.get("/api/v1/blogs/user/following", headers=bob["headers"])).json()
        assert feed["blogs"] == []

    async def test_cannot_follow_self(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        response = await client.post(f"/api/v1/blogs/user/follow/{alice['id']}", headers=alice["headers"])
        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot follow yourself"

    async def test_unknown_user(self, client: AsyncClient, register_user):
        bob = await register_user("bob")
        response = await client.post("/api/v1/blogs/user/follow/999", headers=bob["headers"])
        assert response.status_code == 404
