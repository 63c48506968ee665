"""Offset pagination for list endpoints.

Lists here are small per-user or per-blog sets, so page/limit with a total
count is used rather than keyset cursors.
"""

from __future__ import annotations

import math
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from worklob.schemas import PaginationInfo

MAX_PAGE_SIZE = 100


def clamp(page: int, limit: int) -> tuple[int, int]:
    """Normalize page (>= 1) and limit (1..MAX_PAGE_SIZE)."""
    return max(page, 1), max(1, min(limit, MAX_PAGE_SIZE))


async def paginate(
    db: AsyncSession,
    query: Select[Any],
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Any], PaginationInfo]:
    """Run ``query`` for one page and count the full result set.

    Args:
        db: Database session.
        query: An ordered select of ORM entities.
        page: 1-based page number.
        limit: Page size (capped at MAX_PAGE_SIZE).

    Returns:
        Tuple of (rows, pagination envelope).
    """
    page, limit = clamp(page, limit)

    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_query)).scalar_one()

    result = await db.execute(query.offset((page - 1) * limit).limit(limit))
    rows = list(result.unique().scalars().all())

    info = PaginationInfo(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if total else 0)
    return rows, info
