"""Blog API endpoints: /api/v1/blogs/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from worklob.auth.dependencies import get_admin_user, get_current_user, get_optional_user
from worklob.blogs.schemas import (
    AuthorInfo,
    BlogCreateRequest,
    BlogDetailResponse,
    BlogEarnings,
    BlogListResponse,
    BlogResponse,
    BlogStatsResponse,
    BlogUpdateRequest,
    CommentCreatedResponse,
    CommentRequest,
    CommentResponse,
    EarningsSummaryResponse,
    EventResponse,
    FeatureResponse,
    FollowResponse,
    LikeResponse,
    PriorityRequest,
    PriorityResponse,
    SaveResponse,
    SponsorResponse,
    WithdrawEarningsRequest,
    WithdrawEarningsResponse,
)
from worklob.blogs.cooldown import release_event_slot
from worklob.blogs.service import (
    CATEGORIES,
    LIST_FILTERS,
    STATUSES,
    BloggerNotFoundError,
    BlogNotFoundError,
    FollowError,
    InsufficientEarningsError,
    add_comment,
    admin_delete_blog,
    blog_stats,
    create_blog,
    delete_blog,
    earnings_summary,
    get_visible_blog,
    liked_blog_ids,
    list_author_blogs,
    list_all_blogs,
    list_blogs,
    list_comments,
    list_following_blogs,
    list_saved_blogs,
    saved_blog_ids,
    set_priority,
    toggle_flag,
    toggle_follow,
    toggle_like,
    toggle_save,
    track_event,
    update_blog,
    withdraw_earnings,
)
from worklob.database import get_session
from worklob.db.models import Blog, BlogComment, User
from worklob.middleware.client_ip import client_ip
from worklob.redis_client import get_redis

router = APIRouter(prefix="/api/v1/blogs", tags=["Blogs"])


def _earnings(blog: Blog) -> BlogEarnings:
    return BlogEarnings(
        total_earned=float(blog.earnings_total or 0),
        available=float(blog.earnings_available or 0),
        withdrawn=float(blog.earnings_withdrawn or 0),
    )


def _blog_response(blog: Blog, is_liked: bool = False, is_saved: bool = False) -> BlogResponse:
    return BlogResponse(
        id=blog.id,
        title=blog.title,
        slug=blog.slug,
        excerpt=blog.excerpt,
        thumbnail=blog.thumbnail,
        category=blog.category,
        tags=blog.tags or [],
        sections=blog.sections or [],
        status=blog.status,
        featured=blog.featured,
        sponsored=blog.sponsored,
        priority=blog.priority or 0,
        action_button=blog.action_button,
        author=AuthorInfo(id=blog.author.id, username=blog.author.username),
        views=blog.views or 0,
        impressions=blog.impressions or 0,
        likes=blog.likes or 0,
        earnings=_earnings(blog),
        is_liked=is_liked,
        is_saved=is_saved,
        published_at=blog.published_at,
        created_at=blog.created_at,
        updated_at=blog.updated_at,
    )


def _comment_response(comment: BlogComment) -> CommentResponse:
    return CommentResponse(
        id=comment.id,
        content=comment.content,
        user=AuthorInfo(id=comment.user.id, username=comment.user.username),
        created_at=comment.created_at,
    )


# ---------------------------------------------------------------------------
# Author dashboard (declared before /{id_or_slug})
# ---------------------------------------------------------------------------


@router.get("/user/my-blogs", response_model=BlogListResponse)
async def my_blogs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: str | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> BlogListResponse:
    """The current user's blogs in every status."""
    blogs, pagination = await list_author_blogs(db, user.id, status, page, limit)
    return BlogListResponse(blogs=[_blog_response(b) for b in blogs], pagination=pagination)


@router.get("/user/earnings", response_model=EarningsSummaryResponse)
async def my_earnings(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> EarningsSummaryResponse:
    """Earnings totals, per-blog breakdown and the active rates."""
    return EarningsSummaryResponse(**await earnings_summary(db, user))


@router.get("/user/stats", response_model=BlogStatsResponse)
async def my_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> BlogStatsResponse:
    return BlogStatsResponse(**await blog_stats(db, user))


@router.post("/user/withdraw", response_model=WithdrawEarningsResponse)
async def withdraw(
    body: WithdrawEarningsRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> WithdrawEarningsResponse:
    """Withdraw available blog earnings into the LOB token balance."""
    try:
        result = await withdraw_earnings(db, user, body.amount, body.tx_hash)
    except InsufficientEarningsError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return WithdrawEarningsResponse(
        amount=float(result.amount),
        new_balance=float(result.new_balance),
        tx_hash=result.tx_hash,
    )


@router.get("/user/saved", response_model=BlogListResponse)
async def my_saved(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> BlogListResponse:
    """Published blogs the current user saved."""
    blogs, pagination = await list_saved_blogs(db, user.id, page, limit)
    liked = await liked_blog_ids(db, user.id, [b.id for b in blogs])
    return BlogListResponse(
        blogs=[_blog_response(b, b.id in liked, is_saved=True) for b in blogs],
        pagination=pagination,
    )


@router.get("/user/following", response_model=BlogListResponse)
async def my_following(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> BlogListResponse:
    """Published blogs from authors the current user follows."""
    blogs, pagination = await list_following_blogs(db, user.id, page, limit)
    return BlogListResponse(blogs=[_blog_response(b) for b in blogs], pagination=pagination)


@router.post("/user/follow/{user_id}", response_model=FollowResponse)
async def follow(
    user_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> FollowResponse:
    """Toggle following a blogger. A new follow notifies them."""
    try:
        is_following = await toggle_follow(db, user, user_id)
    except BloggerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except FollowError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return FollowResponse(is_following=is_following)


# ---------------------------------------------------------------------------
# Moderation (admin only)
# ---------------------------------------------------------------------------


@router.get("/admin/all", response_model=BlogListResponse)
async def admin_all(  # noqa: PLR0913
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    status: str | None = Query(None),
    category: str | None = Query(None),
    min_views: int | None = Query(None, alias="minViews", ge=0),
    max_views: int | None = Query(None, alias="maxViews", ge=0),
    search: str | None = Query(None),
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_session),
) -> BlogListResponse:
    """Every blog in any status, with moderation filters."""
    if status is not None and status not in STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    blogs, pagination = await list_all_blogs(db, page, limit, status, category, min_views, max_views, search)
    return BlogListResponse(blogs=[_blog_response(b) for b in blogs], pagination=pagination)


@router.put("/admin/{blog_id}/feature", response_model=FeatureResponse)
async def admin_feature(
    blog_id: int,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_session),
) -> FeatureResponse:
    try:
        featured = await toggle_flag(db, blog_id, "featured")
    except BlogNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    await db.commit()
    return FeatureResponse(featured=featured)


@router.put("/admin/{blog_id}/sponsor", response_model=SponsorResponse)
async def admin_sponsor(
    blog_id: int,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_session),
) -> SponsorResponse:
    try:
        sponsored = await toggle_flag(db, blog_id, "sponsored")
    except BlogNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    await db.commit()
    return SponsorResponse(sponsored=sponsored)


@router.put("/admin/{blog_id}/priority", response_model=PriorityResponse)
async def admin_priority(
    blog_id: int,
    body: PriorityRequest,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_session),
) -> PriorityResponse:
    """Set the 0..100 weight that orders the featured and sponsored lists."""
    try:
        priority = await set_priority(db, blog_id, body.priority)
    except BlogNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    await db.commit()
    return PriorityResponse(priority=priority)


@router.delete("/admin/{blog_id}")
async def admin_delete(
    blog_id: int,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, object]:
    """Delete any blog with its likes, comments, saves and earnings rows."""
    try:
        await admin_delete_blog(db, blog_id, admin)
    except BlogNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    await db.commit()
    return {"success": True, "message": "Blog deleted successfully"}


# ---------------------------------------------------------------------------
# Public listing / reading
# ---------------------------------------------------------------------------


@router.get("", response_model=BlogListResponse)
async def get_blogs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category: str | None = Query(None),
    filter: str | None = Query(None),  # noqa: A002
    search: str | None = Query(None),
    author: int | None = Query(None),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
) -> BlogListResponse:
    """Published blogs with optional category/filter/search."""
    if category is not None and category not in CATEGORIES:
        raise HTTPException(status_code=400, detail="Invalid category")
    if filter is not None and filter not in LIST_FILTERS:
        raise HTTPException(status_code=400, detail="Invalid filter")

    blogs, pagination = await list_blogs(db, page, limit, category, filter, search, author)
    ids = [b.id for b in blogs]
    liked = await liked_blog_ids(db, viewer.id, ids) if viewer else set()
    saved = await saved_blog_ids(db, viewer.id, ids) if viewer else set()
    return BlogListResponse(
        blogs=[_blog_response(b, b.id in liked, b.id in saved) for b in blogs],
        pagination=pagination,
    )


@router.post("", response_model=BlogResponse, status_code=201)
async def create(
    body: BlogCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> BlogResponse:
    """Create a blog as the current user."""
    blog = await create_blog(db, user, body.model_dump())
    await db.commit()
    return _blog_response(blog)


@router.get("/{id_or_slug}", response_model=BlogDetailResponse)
async def get_blog(
    id_or_slug: str,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
) -> BlogDetailResponse:
    """Single blog by id or slug. Drafts are visible to their author only."""
    try:
        blog = await get_visible_blog(db, id_or_slug, viewer)
    except BlogNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    liked = await liked_blog_ids(db, viewer.id, [blog.id]) if viewer else set()
    saved = await saved_blog_ids(db, viewer.id, [blog.id]) if viewer else set()
    comments = await list_comments(db, blog.id)
    return BlogDetailResponse(
        **_blog_response(blog, blog.id in liked, blog.id in saved).model_dump(),
        comments=[_comment_response(c) for c in comments],
    )


@router.put("/{blog_id}", response_model=BlogResponse)
async def update(
    blog_id: int,
    body: BlogUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> BlogResponse:
    """Update a blog (author only)."""
    try:
        blog = await update_blog(db, blog_id, user, body.model_dump(exclude_unset=True))
    except BlogNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e)) from e
    await db.commit()
    return _blog_response(blog)


@router.delete("/{blog_id}")
async def delete(
    blog_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, object]:
    """Delete a blog (author only)."""
    try:
        await delete_blog(db, blog_id, user)
    except BlogNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e)) from e
    await db.commit()
    return {"success": True, "message": "Blog deleted successfully"}


# ---------------------------------------------------------------------------
# Engagement
# ---------------------------------------------------------------------------


async def _track(
    kind: str,
    blog_id: int,
    request: Request,
    viewer: User | None,
    db: AsyncSession,
    redis: Redis,
) -> EventResponse:
    ip = client_ip(request)
    user_id = viewer.id if viewer else None
    try:
        result = await track_event(db, redis, blog_id, kind, ip, user_id)  # type: ignore[arg-type]
    except BlogNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    try:
        await db.commit()
    except Exception:
        if result.success:
            await release_event_slot(redis, blog_id, kind, ip, user_id)  # type: ignore[arg-type]
        raise

    counts = {"views": result.count} if kind == "view" else {"impressions": result.count}
    return EventResponse(success=result.success, earnings=_earnings(result.blog), message=result.message, **counts)


@router.post("/{blog_id}/view", response_model=EventResponse, response_model_exclude_none=True)
async def track_view(
    blog_id: int,
    request: Request,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
) -> EventResponse:
    """Count a view. Same IP or user within the cooldown is not counted again."""
    return await _track("view", blog_id, request, viewer, db, redis)


@router.post("/{blog_id}/impression", response_model=EventResponse, response_model_exclude_none=True)
async def track_impression(
    blog_id: int,
    request: Request,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
) -> EventResponse:
    """Count an impression. Same IP or user within the cooldown is not counted again."""
    return await _track("impression", blog_id, request, viewer, db, redis)


@router.post("/{blog_id}/like", response_model=LikeResponse)
async def like(
    blog_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> LikeResponse:
    """Toggle the current user's like."""
    try:
        is_liked, likes = await toggle_like(db, blog_id, user)
    except BlogNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    await db.commit()
    return LikeResponse(is_liked=is_liked, likes=likes)


@router.post("/{blog_id}/comment", response_model=CommentCreatedResponse)
async def comment(
    blog_id: int,
    body: CommentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> CommentCreatedResponse:
    """Add a comment."""
    try:
        created = await add_comment(db, blog_id, user, body.content)
    except BlogNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    await db.commit()
    return CommentCreatedResponse(comment=_comment_response(created))


@router.post("/{blog_id}/save", response_model=SaveResponse)
async def save(
    blog_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SaveResponse:
    """Toggle the blog in the current user's saved list."""
    try:
        is_saved = await toggle_save(db, blog_id, user)
    except BlogNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    await db.commit()
    return SaveResponse(is_saved=is_saved)
