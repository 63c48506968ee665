"""Shared test fixtures."""

from __future__ import annotations

import os
import tempfile
import time
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

DEPLOYER_WALLET = "0x" + "d" * 40

os.environ["WORKLOB_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["WORKLOB_RATE_LIMIT_REQUESTS"] = "10000"
os.environ["WORKLOB_LOG_FORMAT"] = "console"
os.environ["WORKLOB_LOG_LEVEL"] = "WARNING"
os.environ["WORKLOB_DEPLOYER_WALLET_ADDRESS"] = DEPLOYER_WALLET


def _ensure_test_keys() -> None:
    """Generate an RSA key pair in a temp directory and point settings at it."""
    tmpdir = tempfile.mkdtemp(prefix="worklob_test_keys_")
    private_path = os.path.join(tmpdir, "jwt_private.pem")
    public_path = os.path.join(tmpdir, "jwt_public.pem")

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    with open(private_path, "wb") as f:
        f.write(
            key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            )
        )
    with open(public_path, "wb") as f:
        f.write(
            key.public_key().public_bytes(
                serialization.Encoding.PEM,
                serialization.PublicFormat.SubjectPublicKeyInfo,
            )
        )

    os.environ["WORKLOB_JWT_PRIVATE_KEY_PATH"] = private_path
    os.environ["WORKLOB_JWT_PUBLIC_KEY_PATH"] = public_path


_ensure_test_keys()

from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import update  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from worklob.auth.jwt import reset_keys  # noqa: E402
from worklob.config import get_settings  # noqa: E402
from worklob.database import close_db, get_engine, get_session, init_db  # noqa: E402
from worklob.db.base import Base  # noqa: E402
from worklob.db.models import User  # noqa: E402
from worklob.main import create_app  # noqa: E402
from worklob.redis_client import use_redis  # noqa: E402

get_settings.cache_clear()
reset_keys()


class FakePipeline:
    """Queues commands and runs them against the owning FakeRedis on execute()."""

    def __init__(self, redis: FakeRedis) -> None:
        self._redis = redis
        self._ops: list[tuple[str, tuple[Any, ...]]] = []

    def incr(self, key: str) -> FakePipeline:
        self._ops.append(("incr", (key,)))
        return self

    def expire(self, key: str, seconds: int) -> FakePipeline:
        self._ops.append(("expire", (key, seconds)))
        return self

    async def execute(self) -> list[Any]:
        results = [await getattr(self._redis, name)(*args) for name, args in self._ops]
        self._ops = []
        return results


class FakeRedis:
    """In-process stand-in for the redis.asyncio commands the app uses."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._expires: dict[str, float] = {}

    def _purge(self, key: str) -> None:
        deadline = self._expires.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self._data.pop(key, None)
            self._expires.pop(key, None)

    async def get(self, key: str) -> str | None:
        self._purge(key)
        return self._data.get(key)

    async def set(self, key: str, value: Any, nx: bool = False, ex: int | None = None) -> bool | None:
        self._purge(key)
        if nx and key in self._data:
            return None
        self._data[key] = str(value)
        if ex:
            self._expires[key] = time.monotonic() + ex
        else:
            self._expires.pop(key, None)
        return True

    async def incr(self, key: str) -> int:
        self._purge(key)
        value = int(self._data.get(key, "0")) + 1
        self._data[key] = str(value)
        return value

    async def expire(self, key: str, seconds: int) -> bool:
        self._purge(key)
        if key not in self._data:
            return False
        self._expires[key] = time.monotonic() + seconds
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._data.pop(key, None) is not None:
                removed += 1
            self._expires.pop(key, None)
        return removed

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self._data.clear()
        self._expires.clear()

    def pipeline(self) -> FakePipeline:
        return FakePipeline(self)

    def expire_now(self, key: str) -> None:
        """Drop a key as if its TTL had run out."""
        self._data.pop(key, None)
        self._expires.pop(key, None)

    def ttl_of(self, key: str) -> float | None:
        deadline = self._expires.get(key)
        return None if deadline is None else deadline - time.monotonic()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest_asyncio.fixture
async def client(fake_redis: FakeRedis) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against a fresh in-memory database and a FakeRedis."""
    settings = get_settings()
    await init_db(settings.database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    use_redis(fake_redis)  # type: ignore[arg-type]

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await close_db()


@asynccontextmanager
async def _open_session() -> AsyncIterator[AsyncSession]:
    sessions = get_session()
    session = await anext(sessions)
    try:
        yield session
        await session.commit()
    finally:
        await sessions.aclose()


@pytest.fixture
def db_session(client: AsyncClient) -> Callable[[], Any]:
    """Factory for a short-lived session. Close it before the next HTTP call."""
    return _open_session


@pytest.fixture
def update_user(client: AsyncClient) -> Callable[..., Awaitable[None]]:
    """Set columns on a user row directly (activity points, balances)."""

    async def _update(user_id: int, **values: Any) -> None:
        async with _open_session() as session:
            await session.execute(update(User).where(User.id == user_id).values(**values))

    return _update


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register_user(client: AsyncClient) -> Callable[..., Awaitable[dict[str, Any]]]:
    """
    Register an account through the API.

    Returns a dict with ``id``, ``token``, ``headers`` and the ``user`` payload.
    ``wallet`` registers a wallet account, otherwise an email account.
    """

    async def _register(
        username: str,
        *,
        wallet: str | None = None,
        email: str | None = None,
        password: str = "secret123",
        referred_by: str | None = None,
    ) -> dict[str, Any]:
        if wallet is not None:
            body: dict[str, Any] = {"username": username, "walletAddress": wallet}
            path = "/api/v1/auth/register-wallet"
        else:
            body = {"username": username, "email": email or f"{username}@example.com", "password": password}
            path = "/api/v1/auth/register-email"
        if referred_by is not None:
            body["referredBy"] = referred_by

        response = await client.post(path, json=body)
        assert response.status_code == 201, response.text
        data = response.json()
        return {
            "id": data["user"]["id"],
            "token": data["token"],
            "headers": auth_headers(data["token"]),
            "user": data["user"],
        }

    return _register


@pytest.fixture
def deployer_wallet() -> str:
    return DEPLOYER_WALLET


@pytest.fixture
def trusted_proxy(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Treat the test client's peer and 10/8 as proxies so X-Forwarded-For picks the client."""
    proxies = ["127.0.0.1", "10.0.0.0/8"]
    monkeypatch.setattr(get_settings(), "trusted_proxies", proxies)
    return proxies
