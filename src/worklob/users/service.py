"""User profile queries."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, select

from worklob.db.models import Blog, User

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


async def get_public_profile(db: AsyncSession, username: str) -> tuple[User, int] | None:
    """Active user by username (case-insensitive) plus their published blog count."""
    result = await db.execute(
        select(User).where(User.username_normalized == username.strip().lower(), User.is_active.is_(True))
    )
    user = result.scalar_one_or_none()
    if user is None:
        return None

    blog_count = await db.execute(
        select(func.count()).select_from(Blog).where(Blog.author_id == user.id, Blog.status == "published")
    )
    return user, blog_count.scalar_one()
