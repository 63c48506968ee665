"""Blog publishing, engagement tracking and earnings withdrawal.

Counters (views, impressions, likes) and earnings are only changed with SQL
update operators so that concurrent events never overwrite each other.
Every earnings write keeps ``earnings_total == earnings_available +
earnings_withdrawn``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Literal

import structlog
from sqlalchemy import String, case, cast, delete, func, or_, select, update

from worklob.blogs.cooldown import EventKind, claim_event_slot, release_event_slot
from worklob.blogs.earnings import marginal_earning
from worklob.config import get_settings
from worklob.config_store.service import BlogEarningsConfig, get_blog_earnings_config
from worklob.db.models import Blog, BlogComment, BlogEarning, BlogFollow, BlogLike, BlogSave, User
from worklob.ledger.service import record_transaction_best_effort
from worklob.notifications.service import create_notification
from worklob.pagination import paginate

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from sqlalchemy.ext.asyncio import AsyncSession

    from worklob.schemas import PaginationInfo

logger = structlog.get_logger()

CATEGORIES = (
    "Recruiting",
    "News",
    "Sport",
    "Business",
    "Innovation",
    "Health",
    "Culture",
    "Arts",
    "Travel",
    "Earth",
    "Technology",
    "Education",
    "Entertainment",
)
STATUSES = ("draft", "published", "archived")
LIST_FILTERS = ("home", "trending", "featured", "sponsored")

_NON_SLUG = re.compile(r"[^a-z0-9]+")


class BlogNotFoundError(LookupError):
    """No blog with that id or slug is visible to the caller."""


class InsufficientEarningsError(ValueError):
    """Withdrawal larger than the author's available earnings."""


class BloggerNotFoundError(LookupError):
    """Follow target does not exist."""


class FollowError(ValueError):
    """Follow request that cannot be applied."""


@dataclass
class EventResult:
    success: bool
    count: int
    blog: Blog
    earned: Decimal = Decimal(0)
    message: str | None = None


@dataclass
class WithdrawalResult:
    amount: Decimal
    new_balance: Decimal
    tx_hash: str | None


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


def slugify(title: str) -> str:
    slug = _NON_SLUG.sub("-", title.lower()).strip("-")
    return slug or "blog"


async def _unique_slug(db: AsyncSession, title: str, exclude_id: int | None = None) -> str:
    base = slugify(title)
    slug = base
    counter = 1
    while True:
        query = select(Blog.id).where(Blog.slug == slug)
        if exclude_id is not None:
            query = query.where(Blog.id != exclude_id)
        if (await db.execute(query)).first() is None:
            return slug
        slug = f"{base}-{counter}"
        counter += 1


async def get_blog_by_id(db: AsyncSession, blog_id: int) -> Blog:
    """Raises BlogNotFoundError."""
    blog = await db.get(Blog, blog_id)
    if blog is None:
        msg = "Blog not found"
        raise BlogNotFoundError(msg)
    return blog


async def get_visible_blog(db: AsyncSession, id_or_slug: str, viewer: User | None) -> Blog:
    """Published blogs are visible to anyone; drafts only to their author."""
    if id_or_slug.isdigit():
        query = select(Blog).where(Blog.id == int(id_or_slug))
    else:
        query = select(Blog).where(Blog.slug == id_or_slug)
    blog = (await db.execute(query)).unique().scalar_one_or_none()

    if blog is None or (blog.status != "published" and (viewer is None or viewer.id != blog.author_id)):
        msg = "Blog not found"
        raise BlogNotFoundError(msg)
    return blog


async def liked_blog_ids(db: AsyncSession, user_id: int, blog_ids: list[int]) -> set[int]:
    if not blog_ids:
        return set()
    result = await db.execute(
        select(BlogLike.blog_id).where(BlogLike.user_id == user_id, BlogLike.blog_id.in_(blog_ids))
    )
    return set(result.scalars().all())


async def list_comments(db: AsyncSession, blog_id: int) -> list[BlogComment]:
    result = await db.execute(
        select(BlogComment).where(BlogComment.blog_id == blog_id).order_by(BlogComment.created_at, BlogComment.id)
    )
    return list(result.unique().scalars().all())


# ---------------------------------------------------------------------------
# Authoring
# ---------------------------------------------------------------------------


async def create_blog(db: AsyncSession, author: User, data: dict[str, Any]) -> Blog:
    """Create a blog. ``data`` holds validated snake_case fields. Caller commits."""
    status = data.get("status") or "draft"
    now = datetime.now(timezone.utc)
    blog = Blog(
        title=data["title"],
        slug=await _unique_slug(db, data["title"]),
        excerpt=data.get("excerpt"),
        thumbnail=data["thumbnail"],
        author_id=author.id,
        category=data["category"],
        tags=data.get("tags") or [],
        sections=data.get("sections") or [],
        status=status,
        action_button=data.get("action_button") or {},
        published_at=now if status == "published" else None,
        created_at=now,
        updated_at=now,
    )
    db.add(blog)
    await db.flush()
    await db.refresh(blog)
    logger.info("blog_created", blog_id=blog.id, author_id=author.id, status=status)
    return blog


async def update_blog(db: AsyncSession, blog_id: int, user: User, changes: dict[str, Any]) -> Blog:
    """
    Apply the provided fields to the author's own blog.

    Raises:
        BlogNotFoundError: Unknown blog.
        PermissionError: Caller is not the author.
    """
    blog = await get_blog_by_id(db, blog_id)
    if blog.author_id != user.id:
        msg = "Not authorized to update this blog"
        raise PermissionError(msg)

    title = changes.get("title")
    if title and title != blog.title:
        blog.title = title
        blog.slug = await _unique_slug(db, title, exclude_id=blog.id)

    for field in ("excerpt", "thumbnail", "category", "tags", "sections", "action_button"):
        if field in changes and changes[field] is not None:
            setattr(blog, field, changes[field])

    status = changes.get("status")
    if status:
        blog.status = status
        if status == "published" and blog.published_at is None:
            blog.published_at = datetime.now(timezone.utc)

    await db.flush()
    await db.refresh(blog)
    logger.info("blog_updated", blog_id=blog.id, fields=sorted(changes))
    return blog


async def delete_blog(db: AsyncSession, blog_id: int, user: User) -> None:
    """Raises BlogNotFoundError or PermissionError."""
    blog = await get_blog_by_id(db, blog_id)
    if blog.author_id != user.id:
        msg = "Not authorized to delete this blog"
        raise PermissionError(msg)

    await _purge_blog(db, blog)
    logger.info("blog_deleted", blog_id=blog_id, author_id=user.id)


async def _purge_blog(db: AsyncSession, blog: Blog) -> None:
    for model in (BlogLike, BlogComment, BlogEarning, BlogSave):
        await db.execute(delete(model).where(model.blog_id == blog.id))
    await db.delete(blog)
    await db.flush()


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


async def list_blogs(  # noqa: PLR0913
    db: AsyncSession,
    page: int = 1,
    limit: int = 20,
    category: str | None = None,
    list_filter: str | None = None,
    search: str | None = None,
    author_id: int | None = None,
) -> tuple[list[Blog], PaginationInfo]:
    """Published blogs, newest first unless a trending/featured filter applies."""
    query = select(Blog).where(Blog.status == "published")
    if category:
        query = query.where(Blog.category == category)
    if author_id is not None:
        query = query.where(Blog.author_id == author_id)
    if list_filter == "featured":
        query = query.where(Blog.featured.is_(True))
    elif list_filter == "sponsored":
        query = query.where(Blog.sponsored.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(
            or_(
                Blog.title.ilike(pattern),
                Blog.excerpt.ilike(pattern),
                cast(Blog.tags, String).ilike(pattern),
            )
        )

    if list_filter == "trending":
        query = query.order_by(Blog.views.desc(), Blog.impressions.desc(), Blog.created_at.desc())
    elif list_filter in ("featured", "sponsored"):
        query = query.order_by(Blog.priority.desc(), Blog.created_at.desc())
    else:
        query = query.order_by(Blog.created_at.desc(), Blog.id.desc())

    return await paginate(db, query, page, limit)


async def list_author_blogs(
    db: AsyncSession,
    author_id: int,
    status: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Blog], PaginationInfo]:
    query = select(Blog).where(Blog.author_id == author_id).order_by(Blog.created_at.desc(), Blog.id.desc())
    if status:
        query = query.where(Blog.status == status)
    return await paginate(db, query, page, limit)


# ---------------------------------------------------------------------------
# Engagement
# ---------------------------------------------------------------------------


async def track_event(
    db: AsyncSession,
    redis: Redis,
    blog_id: int,
    kind: EventKind,
    ip: str,
    user_id: int | None,
) -> EventResult:
    """
    Count one view or impression and credit any earning it produces.

    The cooldown keys are released again if the write fails, so a lost
    event does not lock the reader out.

    Raises:
        BlogNotFoundError: Unknown blog.
    """
    blog = await get_blog_by_id(db, blog_id)
    counter = Blog.views if kind == "view" else Blog.impressions

    window = get_settings().view_cooldown_hours * 3600
    if not await claim_event_slot(redis, blog_id, kind, ip, user_id, window):
        return EventResult(
            success=False,
            count=getattr(blog, counter.key),
            blog=blog,
            message=f"{kind.capitalize()} already counted recently. Please wait before counting again.",
        )

    try:
        return await _store_event(db, blog, kind, counter)
    except Exception:
        await release_event_slot(redis, blog_id, kind, ip, user_id)
        raise


async def _store_event(db: AsyncSession, blog: Blog, kind: EventKind, counter: Any) -> EventResult:  # noqa: ANN401
    blog_id = blog.id
    result = await db.execute(
        update(Blog)
        .where(Blog.id == blog_id)
        .values({counter: counter + 1})
        .returning(counter)
        .execution_options(synchronize_session=False)
    )
    new_count = int(result.scalar_one())

    config = await get_blog_earnings_config(db)
    earned = marginal_earning(new_count, *_threshold_rate(config, kind))
    if earned > 0:
        await db.execute(
            update(Blog)
            .where(Blog.id == blog_id)
            .values(
                earnings_total=Blog.earnings_total + earned,
                earnings_available=Blog.earnings_available + earned,
            )
            .execution_options(synchronize_session=False)
        )
        db.add(
            BlogEarning(
                user_id=blog.author_id,
                blog_id=blog_id,
                type=kind,
                amount=earned,
                status="available",
                created_at=datetime.now(timezone.utc),
            )
        )
        logger.info("blog_earning_credited", blog_id=blog_id, kind=kind, count=new_count, amount=str(earned))

    await db.flush()
    await db.refresh(blog)
    return EventResult(success=True, count=new_count, blog=blog, earned=earned)


def _threshold_rate(config: BlogEarningsConfig, kind: EventKind) -> tuple[int, float]:
    if kind == "view":
        return config.views_threshold, config.views_rate
    return config.impressions_threshold, config.impressions_rate


async def toggle_like(db: AsyncSession, blog_id: int, user: User) -> tuple[bool, int]:
    """Like or unlike. Returns (is_liked, likes)."""
    blog = await get_blog_by_id(db, blog_id)
    existing = await db.execute(select(BlogLike).where(BlogLike.blog_id == blog_id, BlogLike.user_id == user.id))
    like = existing.scalar_one_or_none()

    if like is not None:
        await db.delete(like)
        delta = case((Blog.likes > 0, Blog.likes - 1), else_=0)
        liked = False
    else:
        db.add(BlogLike(blog_id=blog_id, user_id=user.id, created_at=datetime.now(timezone.utc)))
        delta = Blog.likes + 1
        liked = True
    await db.flush()

    result = await db.execute(
        update(Blog)
        .where(Blog.id == blog_id)
        .values(likes=delta)
        .returning(Blog.likes)
        .execution_options(synchronize_session=False)
    )
    likes = int(result.scalar_one())

    if liked and blog.author_id != user.id:
        await create_notification(
            db, blog.author_id, "blog", "Blog Liked", f'{user.username} liked your blog: "{blog.title}"'
        )
    return liked, likes


async def add_comment(db: AsyncSession, blog_id: int, user: User, content: str) -> BlogComment:
    blog = await get_blog_by_id(db, blog_id)
    comment = BlogComment(blog_id=blog_id, user_id=user.id, content=content, created_at=datetime.now(timezone.utc))
    db.add(comment)
    await db.flush()
    await db.refresh(comment)

    if blog.author_id != user.id:
        await create_notification(
            db, blog.author_id, "blog", "New Comment", f'{user.username} commented on your blog: "{blog.title}"'
        )
    return comment


# ---------------------------------------------------------------------------
# Saves and follows
# ---------------------------------------------------------------------------


async def saved_blog_ids(db: AsyncSession, user_id: int, blog_ids: list[int]) -> set[int]:
    if not blog_ids:
        return set()
    result = await db.execute(
        select(BlogSave.blog_id).where(BlogSave.user_id == user_id, BlogSave.blog_id.in_(blog_ids))
    )
    return set(result.scalars().all())


async def toggle_save(db: AsyncSession, blog_id: int, user: User) -> bool:
    """Save or unsave. Returns whether the blog is now saved."""
    await get_blog_by_id(db, blog_id)
    existing = await db.execute(select(BlogSave).where(BlogSave.blog_id == blog_id, BlogSave.user_id == user.id))
    save = existing.scalar_one_or_none()
    if save is not None:
        await db.delete(save)
    else:
        db.add(BlogSave(blog_id=blog_id, user_id=user.id, created_at=datetime.now(timezone.utc)))
    await db.flush()
    return save is None


async def list_saved_blogs(
    db: AsyncSession, user_id: int, page: int = 1, limit: int = 20
) -> tuple[list[Blog], PaginationInfo]:
    """Published blogs the user saved, most recently saved first."""
    query = (
        select(Blog)
        .join(BlogSave, BlogSave.blog_id == Blog.id)
        .where(BlogSave.user_id == user_id, Blog.status == "published")
        .order_by(BlogSave.created_at.desc(), BlogSave.id.desc())
    )
    return await paginate(db, query, page, limit)


async def toggle_follow(db: AsyncSession, follower: User, following_id: int) -> bool:
    """
    Follow or unfollow a blogger. Returns whether the follower now follows them.

    Raises:
        BloggerNotFoundError: Unknown user.
        FollowError: Following yourself.
    """
    target = await db.get(User, following_id)
    if target is None:
        msg = "User not found"
        raise BloggerNotFoundError(msg)
    if target.id == follower.id:
        msg = "Cannot follow yourself"
        raise FollowError(msg)

    existing = await db.execute(
        select(BlogFollow).where(BlogFollow.follower_id == follower.id, BlogFollow.following_id == following_id)
    )
    follow = existing.scalar_one_or_none()
    if follow is not None:
        await db.delete(follow)
        await db.flush()
        return False

    db.add(BlogFollow(follower_id=follower.id, following_id=following_id, created_at=datetime.now(timezone.utc)))
    await db.flush()
    await create_notification(
        db, following_id, "blog_follow", "New Follower", f"{follower.username} started following you"
    )
    return True


async def list_following_blogs(
    db: AsyncSession, user_id: int, page: int = 1, limit: int = 20
) -> tuple[list[Blog], PaginationInfo]:
    """Published blogs by authors the user follows, newest first."""
    followed = select(BlogFollow.following_id).where(BlogFollow.follower_id == user_id)
    query = (
        select(Blog)
        .where(Blog.author_id.in_(followed), Blog.status == "published")
        .order_by(Blog.created_at.desc(), Blog.id.desc())
    )
    return await paginate(db, query, page, limit)


# ---------------------------------------------------------------------------
# Earnings
# ---------------------------------------------------------------------------


async def _author_blogs(db: AsyncSession, author_id: int) -> list[Blog]:
    result = await db.execute(
        select(Blog)
        .where(Blog.author_id == author_id)
        .order_by(Blog.created_at, Blog.id)
        .execution_options(populate_existing=True)
    )
    return list(result.unique().scalars().all())


async def earnings_summary(db: AsyncSession, user: User) -> dict[str, Any]:
    """Totals and per-blog breakdown of the author's earnings."""
    blogs = await _author_blogs(db, user.id)
    config = await get_blog_earnings_config(db)
    return {
        "total_earned": float(sum((b.earnings_total for b in blogs), Decimal(0))),
        "available": float(sum((b.earnings_available for b in blogs), Decimal(0))),
        "withdrawn": float(sum((b.earnings_withdrawn for b in blogs), Decimal(0))),
        "earnings_by_blog": [
            {
                "blog_id": b.id,
                "title": b.title,
                "total_earned": float(b.earnings_total),
                "available": float(b.earnings_available),
                "withdrawn": float(b.earnings_withdrawn),
            }
            for b in blogs
        ],
        "config": config.as_dict(),
    }


async def blog_stats(db: AsyncSession, user: User) -> dict[str, Any]:
    """Aggregate counters across the author's blogs."""
    result = await db.execute(
        select(
            func.count(Blog.id),
            func.coalesce(func.sum(case((Blog.status == "published", 1), else_=0)), 0),
            func.coalesce(func.sum(Blog.views), 0),
            func.coalesce(func.sum(Blog.impressions), 0),
            func.coalesce(func.sum(Blog.likes), 0),
            func.coalesce(func.sum(Blog.earnings_total), 0),
            func.coalesce(func.sum(Blog.earnings_available), 0),
            func.coalesce(func.sum(Blog.earnings_withdrawn), 0),
        ).where(Blog.author_id == user.id)
    )
    total, published, views, impressions, likes, earned, available, withdrawn = result.one()
    config = await get_blog_earnings_config(db)
    return {
        "total_blogs": int(total),
        "published_blogs": int(published),
        "total_views": int(views),
        "total_impressions": int(impressions),
        "total_likes": int(likes),
        "total_earned": float(earned),
        "available": float(available),
        "withdrawn": float(withdrawn),
        "config": config.as_dict(),
    }


async def withdraw_earnings(
    db: AsyncSession,
    user: User,
    amount: Decimal,
    tx_hash: str | None = None,
) -> WithdrawalResult:
    """
    Move ``amount`` of the author's available blog earnings into LOB tokens.

    Blogs are drained oldest first. The user's ``lob_available`` and
    ``lob_withdrawn`` both grow by ``amount``. Caller commits, or rolls back
    on error.

    Raises:
        InsufficientEarningsError: Non-positive amount, or more than available.
    """
    if amount <= 0:
        msg = "Invalid withdrawal amount"
        raise InsufficientEarningsError(msg)

    blogs = await _author_blogs(db, user.id)
    total_available = sum((b.earnings_available for b in blogs), Decimal(0))
    if amount > total_available:
        msg = "Insufficient available earnings"
        raise InsufficientEarningsError(msg)

    remaining = amount
    for blog in blogs:
        if remaining <= 0:
            break
        take = min(blog.earnings_available, remaining)
        if take <= 0:
            continue
        result = await db.execute(
            update(Blog)
            .where(Blog.id == blog.id, Blog.earnings_available >= take)
            .values(
                earnings_available=Blog.earnings_available - take,
                earnings_withdrawn=Blog.earnings_withdrawn + take,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            msg = "Insufficient available earnings"
            raise InsufficientEarningsError(msg)
        remaining -= take

    await db.execute(
        update(User)
        .where(User.id == user.id)
        .values(lob_available=User.lob_available + amount, lob_withdrawn=User.lob_withdrawn + amount)
        .execution_options(synchronize_session=False)
    )

    await record_transaction_best_effort(
        db,
        type="blog_withdrawal",
        amount=amount,
        description=f"Blog earnings withdrawal: {float(amount):g} LOB tokens",
        to_user_id=user.id,
        currency="LOB",
        direction="credit",
        tx_hash=tx_hash or None,
        to_address=user.wallet_address,
    )

    await db.refresh(user)
    logger.info("blog_earnings_withdrawn", user_id=user.id, amount=str(amount), tx_hash=tx_hash)
    return WithdrawalResult(amount=amount, new_balance=user.lob_available, tx_hash=tx_hash)


# ---------------------------------------------------------------------------
# Moderation (admin)
# ---------------------------------------------------------------------------


async def list_all_blogs(  # noqa: PLR0913
    db: AsyncSession,
    page: int = 1,
    limit: int = 50,
    status: str | None = None,
    category: str | None = None,
    min_views: int | None = None,
    max_views: int | None = None,
    search: str | None = None,
) -> tuple[list[Blog], PaginationInfo]:
    """Blogs in every status. ``search`` also matches the author's username or email."""
    query = select(Blog)
    if status:
        query = query.where(Blog.status == status)
    if category:
        query = query.where(Blog.category == category)
    if min_views is not None:
        query = query.where(Blog.views >= min_views)
    if max_views is not None:
        query = query.where(Blog.views <= max_views)
    if search:
        pattern = f"%{search.strip()}%"
        authors = select(User.id).where(or_(User.username.ilike(pattern), User.email.ilike(pattern)))
        query = query.where(
            or_(
                Blog.title.ilike(pattern),
                Blog.excerpt.ilike(pattern),
                cast(Blog.tags, String).ilike(pattern),
                Blog.author_id.in_(authors),
            )
        )
    return await paginate(db, query.order_by(Blog.created_at.desc(), Blog.id.desc()), page, limit)


async def toggle_flag(db: AsyncSession, blog_id: int, flag: Literal["featured", "sponsored"]) -> bool:
    """Flip ``featured`` or ``sponsored``. Returns the new value."""
    await get_blog_by_id(db, blog_id)
    column = getattr(Blog, flag)
    result = await db.execute(
        update(Blog)
        .where(Blog.id == blog_id)
        .values({column: ~column})
        .returning(column)
        .execution_options(synchronize_session=False)
    )
    value = bool(result.scalar_one())
    logger.info("blog_flag_set", blog_id=blog_id, flag=flag, value=value)
    return value


async def set_priority(db: AsyncSession, blog_id: int, priority: int) -> int:
    """Ordering weight for the featured and sponsored lists."""
    blog = await get_blog_by_id(db, blog_id)
    blog.priority = priority
    await db.flush()
    logger.info("blog_priority_set", blog_id=blog_id, priority=priority)
    return priority


async def admin_delete_blog(db: AsyncSession, blog_id: int, admin: User) -> None:
    """Raises BlogNotFoundError."""
    blog = await get_blog_by_id(db, blog_id)
    author_id = blog.author_id
    await _purge_blog(db, blog)
    logger.info("blog_deleted_by_admin", blog_id=blog_id, author_id=author_id, admin_id=admin.id)
