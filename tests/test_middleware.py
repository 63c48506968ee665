"""Middleware tests: request ID, rate limiting, CORS, error handling."""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import IntegrityError

from worklob.middleware.error_handler import setup_error_handlers
from worklob.middleware.rate_limit import RateLimitMiddleware
from worklob.redis_client import use_redis


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient) -> None:
    """Request ID is auto-generated when not provided."""
    response = await client.get("/health")
    assert "x-request-id" in response.headers
    assert len(response.headers["x-request-id"]) == 36  # UUID format


@pytest.mark.asyncio
async def test_request_id_preserved(client: AsyncClient) -> None:
    """Custom request ID is echoed back in response."""
    response = await client.get("/health", headers={"X-Request-Id": "test-abc-123"})
    assert response.headers["x-request-id"] == "test-abc-123"


@pytest.mark.asyncio
async def test_rate_limit_headers(client: AsyncClient) -> None:
    """Rate limit headers are present on non-exempt endpoints."""
    response = await client.get("/api/v1/blogs")
    assert response.headers["x-ratelimit-limit"] == "10000"
    assert response.headers["x-ratelimit-remaining"] == "9999"


@pytest.mark.asyncio
async def test_health_not_rate_limited(client: AsyncClient) -> None:
    response = await client.get("/version")
    assert "x-ratelimit-limit" not in response.headers


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient) -> None:
    """CORS preflight returns access-control-allow-origin for configured origin."""
    response = await client.options(
        "/api/v1/blogs",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "GET",
        },
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


@pytest.mark.asyncio
async def test_404_returns_json(client: AsyncClient) -> None:
    """Unknown paths return 404 with JSON body."""
    response = await client.get("/nonexistent-path")
    assert response.status_code == 404
    assert response.json()["detail"] == "Not Found"


def _small_app() -> FastAPI:
    app = FastAPI()
    setup_error_handlers(app)
    app.add_middleware(RateLimitMiddleware, requests_per_window=3, window_seconds=60)

    @app.get("/ping")
    async def ping() -> dict[str, str]:
        return {"status": "pong"}

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/boom")
    async def boom() -> None:
        raise RuntimeError("kaboom")

    @app.get("/conflict")
    async def conflict() -> None:
        raise IntegrityError("INSERT INTO users", {}, Exception("duplicate key"))

    return app


@pytest.fixture
async def small_client(fake_redis):
    use_redis(fake_redis)
    transport = ASGITransport(app=_small_app(), raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestRateLimit:
    async def test_blocks_excess(self, small_client: AsyncClient) -> None:
        """Fourth request in the window returns 429 with Retry-After header."""
        for expected_remaining in ("2", "1", "0"):
            response = await small_client.get("/ping")
            assert response.status_code == 200
            assert response.headers["x-ratelimit-remaining"] == expected_remaining
        response = await small_client.get("/ping")
        assert response.status_code == 429
        assert response.headers["retry-after"] == "60"
        assert "detail" in response.json()

    async def test_limit_is_per_ip(self, small_client: AsyncClient, trusted_proxy) -> None:
        for _ in range(4):
            await small_client.get("/ping", headers={"X-Forwarded-For": "198.51.100.1"})
        response = await small_client.get("/ping", headers={"X-Forwarded-For": "198.51.100.2"})
        assert response.status_code == 200

    async def test_forged_forwarded_for_shares_peer_limit(self, small_client: AsyncClient) -> None:
        """Without a trusted proxy a rotating header does not buy fresh buckets."""
        for n in range(3):
            response = await small_client.get("/ping", headers={"X-Forwarded-For": f"198.51.100.{n}"})
            assert response.status_code == 200
        response = await small_client.get("/ping", headers={"X-Forwarded-For": "198.51.100.99"})
        assert response.status_code == 429

    async def test_health_exempt(self, small_client: AsyncClient) -> None:
        for _ in range(10):
            response = await small_client.get("/health")
            assert response.status_code == 200


class TestErrorHandlers:
    async def test_500_returns_json(self, small_client: AsyncClient) -> None:
        response = await small_client.get("/boom")
        assert response.status_code == 500
        assert response.json() == {"detail": "Internal server error"}

    async def test_integrity_error_is_400(self, small_client: AsyncClient) -> None:
        response = await small_client.get("/conflict")
        assert response.status_code == 400
        assert response.json() == {"detail": "Request conflicts with existing data"}

    async def test_validation_error_shape(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/auth/login", json={"email": 5})
        assert response.status_code == 400
        data = response.json()
        assert data["detail"] == "Validation error"
        assert data["errors"][0]["field"] == "email"
