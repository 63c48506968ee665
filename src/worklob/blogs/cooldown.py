"""Per-IP and per-user cooldown for blog view/impression events.

Each (blog, kind, ip) and (blog, kind, user) pair is a Redis key created
with ``SET NX EX``; the key expiring is what ends the cooldown.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

import structlog

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = structlog.get_logger()

EventKind = Literal["view", "impression"]


def ip_key(blog_id: int, kind: EventKind, ip: str) -> str:
    return f"blog:{blog_id}:{kind}:ip:{ip}"


def user_key(blog_id: int, kind: EventKind, user_id: int) -> str:
    return f"blog:{blog_id}:{kind}:user:{user_id}"


async def claim_event_slot(
    redis: Redis,
    blog_id: int,
    kind: EventKind,
    ip: str,
    user_id: int | None,
    window_seconds: int,
) -> bool:
    """
    Claim the cooldown slot for one event.

    Returns False when the same IP, or the same authenticated user, already
    produced an event of this kind for this blog within the window. A
    rejected event leaves no key behind.
    """
    first_ip = await redis.set(ip_key(blog_id, kind, ip), "1", nx=True, ex=window_seconds)
    if not first_ip:
        logger.debug("blog_event_cooldown", blog_id=blog_id, kind=kind, reason="ip")
        return False

    if user_id is not None:
        first_user = await redis.set(user_key(blog_id, kind, user_id), "1", nx=True, ex=window_seconds)
        if not first_user:
            await redis.delete(ip_key(blog_id, kind, ip))
            logger.debug("blog_event_cooldown", blog_id=blog_id, kind=kind, reason="user")
            return False

    return True


async def release_event_slot(
    redis: Redis,
    blog_id: int,
    kind: EventKind,
    ip: str,
    user_id: int | None,
) -> None:
    """Drop the keys ``claim_event_slot`` set for an event that was never stored."""
    keys = [ip_key(blog_id, kind, ip)]
    if user_id is not None:
        keys.append(user_key(blog_id, kind, user_id))
    await redis.delete(*keys)
    logger.info("blog_event_slot_released", blog_id=blog_id, kind=kind)
