"""Blog request/response schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import Field, field_validator

from worklob.blogs.service import CATEGORIES
from worklob.schemas import CamelModel, PaginationInfo


def _check_category(v: str | None) -> str | None:
    if v is not None and v not in CATEGORIES:
        msg = f"Category must be one of: {', '.join(CATEGORIES)}"
        raise ValueError(msg)
    return v


class BlogCreateRequest(CamelModel):
    title: str = Field(..., min_length=5, max_length=200)
    excerpt: str | None = Field(None, max_length=300)
    thumbnail: str = Field(..., min_length=1)
    category: str
    tags: list[str] = Field(default_factory=list)
    sections: list[dict[str, Any]]
    status: Literal["draft", "published"] = "draft"
    action_button: dict[str, Any] | None = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 5:
            msg = "Title must be between 5 and 200 characters"
            raise ValueError(msg)
        return v

    @field_validator("category")
    @classmethod
    def check_category(cls, v: str) -> str:
        return _check_category(v)  # type: ignore[return-value]


class BlogUpdateRequest(CamelModel):
    title: str | None = Field(None, min_length=5, max_length=200)
    excerpt: str | None = Field(None, max_length=300)
    thumbnail: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    sections: list[dict[str, Any]] | None = None
    status: Literal["draft", "published", "archived"] | None = None
    action_button: dict[str, Any] | None = None

    @field_validator("category")
    @classmethod
    def check_category(cls, v: str | None) -> str | None:
        return _check_category(v)


class AuthorInfo(CamelModel):
    id: int
    username: str


class BlogEarnings(CamelModel):
    total_earned: float
    available: float
    withdrawn: float


class BlogResponse(CamelModel):
    id: int
    title: str
    slug: str
    excerpt: str | None = None
    thumbnail: str
    category: str
    tags: list[str] = Field(default_factory=list)
    sections: list[dict[str, Any]] = Field(default_factory=list)
    status: str
    featured: bool = False
    sponsored: bool = False
    priority: int = 0
    action_button: dict[str, Any] | None = None
    author: AuthorInfo
    views: int
    impressions: int
    likes: int
    earnings: BlogEarnings
    is_liked: bool = False
    is_saved: bool = False
    published_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None


class CommentResponse(CamelModel):
    id: int
    content: str
    user: AuthorInfo
    created_at: datetime


class BlogDetailResponse(BlogResponse):
    comments: list[CommentResponse] = Field(default_factory=list)


class BlogListResponse(CamelModel):
    blogs: list[BlogResponse]
    pagination: PaginationInfo


class EventResponse(CamelModel):
    """Result of a view or impression event."""

    success: bool
    views: int | None = None
    impressions: int | None = None
    earnings: BlogEarnings
    message: str | None = None


class LikeResponse(CamelModel):
    success: bool = True
    is_liked: bool
    likes: int


class CommentRequest(CamelModel):
    content: str = Field(..., min_length=1, max_length=1000)

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            msg = "Comment must be between 1 and 1000 characters"
            raise ValueError(msg)
        return v


class CommentCreatedResponse(CamelModel):
    success: bool = True
    comment: CommentResponse


class WithdrawEarningsRequest(CamelModel):
    amount: Decimal = Field(..., gt=0, decimal_places=8)
    tx_hash: str | None = Field(None, max_length=128)


class WithdrawEarningsResponse(CamelModel):
    success: bool = True
    message: str = "Earnings withdrawn successfully"
    amount: float
    new_balance: float
    tx_hash: str | None = None


class EarningsConfigResponse(CamelModel):
    views_rate: float
    views_threshold: int
    impressions_rate: float
    impressions_threshold: int


class BlogEarningsItem(CamelModel):
    blog_id: int
    title: str
    total_earned: float
    available: float
    withdrawn: float


class EarningsSummaryResponse(CamelModel):
    total_earned: float
    available: float
    withdrawn: float
    earnings_by_blog: list[BlogEarningsItem]
    config: EarningsConfigResponse


class BlogStatsResponse(CamelModel):
    total_blogs: int
    published_blogs: int
    total_views: int
    total_impressions: int
    total_likes: int
    total_earned: float
    available: float
    withdrawn: float
    config: EarningsConfigResponse


class SaveResponse(CamelModel):
    success: bool = True
    is_saved: bool


class FollowResponse(CamelModel):
    success: bool = True
    is_following: bool


class FeatureResponse(CamelModel):
    success: bool = True
    featured: bool


class SponsorResponse(CamelModel):
    success: bool = True
    sponsored: bool


class PriorityRequest(CamelModel):
    priority: int = Field(..., ge=0, le=100)


class PriorityResponse(CamelModel):
    success: bool = True
    priority: int
