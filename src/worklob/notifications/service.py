"""In-app notifications.

Creating a notification is always a side effect of some other operation, so
``create_notification`` runs in a savepoint and never raises.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from worklob.db.models import Notification

logger = structlog.get_logger()

VALID_TYPES = {"payment", "referral", "governance", "blog", "blog_follow", "staking", "system"}


async def create_notification(
    db: AsyncSession,
    user_id: int,
    type_: str,
    title: str,
    message: str = "",
) -> Notification | None:
    """Persist a notification. Returns None (and logs) if it could not be stored."""
    if type_ not in VALID_TYPES:
        logger.warning("notification_type_invalid", type=type_, user_id=user_id)
        return None

    try:
        async with db.begin_nested():
            notification = Notification(
                user_id=user_id,
                type=type_,
                title=title,
                message=message,
                created_at=datetime.now(timezone.utc),
            )
            db.add(notification)
            await db.flush()
    except Exception:
        logger.exception("notification_create_failed", user_id=user_id, type=type_)
        return None
    return notification


async def get_notifications(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 20,
    unread_only: bool = False,
) -> tuple[list[Notification], int]:
    """Get user's notifications (paginated, most recent first)."""
    offset = (page - 1) * per_page
    conditions = [Notification.user_id == user_id]
    if unread_only:
        conditions.append(Notification.is_read.is_(False))

    total_result = await db.execute(select(func.count()).select_from(Notification).where(*conditions))
    total = total_result.scalar_one()

    result = await db.execute(
        select(Notification)
        .where(*conditions)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(offset)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def mark_as_read(db: AsyncSession, user_id: int, notification_id: int) -> bool:
    """Mark a single notification as read. Returns True if found."""
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .values(is_read=True)
    )
    await db.flush()
    return result.rowcount > 0


async def get_unread_count(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
    )
    return result.scalar_one()
