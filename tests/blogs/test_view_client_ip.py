"""Which address a view is attributed to."""

from httpx import AsyncClient


async def _published_blog(client: AsyncClient, headers) -> int:
    response = await client.post(
        "/api/v1/blogs",
        json={
            "title": "Counting honestly",
            "thumbnail": "https://img.example.com/thumb.png",
            "category": "News",
            "sections": [{"type": "text", "content": "Body"}],
            "status": "published",
        },
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()["id"]


class TestForwardedHeaderIgnoredByDefault:
    async def test_rotating_forwarded_for_counts_once(self, client: AsyncClient, register_user):
        alice = await register_user("alice")
        blog_id = await _published_blog(client, alice["headers"])

        counted = 0
        for n in range(5):
            response = await client.post(
                f"/api/v1/blogs/{blog_id}/view", headers={"X-Forwarded-For": f"1.2.3.{n}"}
            )
            assert response.status_code == 200
            counted += response.json()["success"]
        assert counted == 1

        blog = (await client.get(f"/api/v1/blogs/{blog_id}")).json()
        assert blog["views"] == 1

    async def test_cooldown_keyed_on_socket_peer(self, client: AsyncClient, register_user, fake_redis):
        alice = await register_user("alice")
        blog_id = await _published_blog(client, alice["headers"])
        await client.post(f"/api/v1/blogs/{blog_id}/impression", headers={"X-Forwarded-For": "9.9.9.9"})
        assert await fake_redis.get(f"blog:{blog_id}:impression:ip:127.0.0.1") == "1"
        assert await fake_redis.get(f"blog:{blog_id}:impression:ip:9.9.9.9") is None


class TestBehindTrustedProxy:
    async def test_client_prepended_hop_is_ignored(
        self, client: AsyncClient, register_user, fake_redis, trusted_proxy
    ):
        alice = await register_user("alice")
        blog_id = await _published_blog(client, alice["headers"])

        for forged in ("1.1.1.1", "2.2.2.2"):
            await client.post(
                f"/api/v1/blogs/{blog_id}/view",
                headers={"X-Forwarded-For": f"{forged}, 203.0.113.5, 10.0.0.1"},
            )
        blog = (await client.get(f"/api/v1/blogs/{blog_id}")).json()
        assert blog["views"] == 1
        assert await fake_redis.get(f"blog:{blog_id}:view:ip:203.0.113.5") == "1"
