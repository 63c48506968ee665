"""Tests for the notification inbox."""

from httpx import AsyncClient


async def _liked_blog(client: AsyncClient, register_user):
    alice = await register_user("alice")
    bob = await register_user("bob")
    blog = await client.post(
        "/api/v1/blogs",
        json={
            "title": "Notify me please",
            "thumbnail": "https://img.example.com/t.png",
            "category": "Culture",
            "sections": [],
            "status": "published",
        },
        headers=alice["headers"],
    )
    blog_id = blog.json()["id"]
    await client.post(f"/api/v1/blogs/{blog_id}/like", headers=bob["headers"])
    await client.post(f"/api/v1/blogs/{blog_id}/comment", json={"content": "Hi"}, headers=bob["headers"])
    return alice, bob


class TestNotifications:
    async def test_list(self, client: AsyncClient, register_user):
        alice, _ = await _liked_blog(client, register_user)
        response = await client.get("/api/v1/notifications", headers=alice["headers"])
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["unread"] == 2
        assert data["page"] == 1
        assert data["perPage"] == 20
        assert {n["title"] for n in data["notifications"]} == {"Blog Liked", "New Comment"}
        assert all(n["type"] == "blog" and n["isRead"] is False for n in data["notifications"])

    async def test_pagination(self, client: AsyncClient, register_user):
        alice, _ = await _liked_blog(client, register_user)
        data = (
            await client.get("/api/v1/notifications", params={"perPage": 1, "page": 2}, headers=alice["headers"])
        ).json()
        assert len(data["notifications"]) == 1
        assert data["total"] == 2

    async def test_mark_read(self, client: AsyncClient, register_user):
        alice, _ = await _liked_blog(client, register_user)
        notification_id = (await client.get("/api/v1/notifications", headers=alice["headers"])).json()[
            "notifications"
        ][0]["id"]

        response = await client.post(f"/api/v1/notifications/{notification_id}/read", headers=alice["headers"])
        assert response.status_code == 200

        data = (
            await client.get("/api/v1/notifications", params={"unreadOnly": "true"}, headers=alice["headers"])
        ).json()
        assert data["unread"] == 1
        assert [n["id"] for n in data["notifications"]] != [notification_id]
        assert len(data["notifications"]) == 1

    async def test_cannot_read_someone_elses(self, client: AsyncClient, register_user):
        alice, bob = await _liked_blog(client, register_user)
        notification_id = (await client.get("/api/v1/notifications", headers=alice["headers"])).json()[
            "notifications"
        ][0]["id"]
        response = await client.post(f"/api/v1/notifications/{notification_id}/read", headers=bob["headers"])
        assert response.status_code == 404

    async def test_requires_auth(self, client: AsyncClient):
        assert (await client.get("/api/v1/notifications")).status_code == 401
