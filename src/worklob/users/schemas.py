"""Public user profile schema."""

from __future__ import annotations

from datetime import datetime

from worklob.auth.schemas import UserStats
from worklob.schemas import CamelModel


class PublicUserResponse(CamelModel):
    """Profile visible to anyone. Never includes email or balances."""

    id: int
    username: str
    role: str
    auth_method: str
    stats: UserStats
    published_blogs: int = 0
    created_at: datetime | None = None
