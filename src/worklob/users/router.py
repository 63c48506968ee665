"""User profile router: /api/v1/users/* endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from worklob.auth.dependencies import get_current_user
from worklob.auth.router import user_response
from worklob.auth.schemas import UserResponse, UserStats
from worklob.database import get_session
from worklob.db.models import User
from worklob.users.schemas import PublicUserResponse
from worklob.users.service import get_public_profile

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)) -> UserResponse:
    """Get the current user's full profile."""
    return user_response(user)


@router.get("/profile/{username}", response_model=PublicUserResponse)
async def get_profile(username: str, db: AsyncSession = Depends(get_session)) -> PublicUserResponse:
    """Get a user's public profile."""
    found = await get_public_profile(db, username)
    if found is None:
        raise HTTPException(status_code=404, detail="User not found")
    user, published = found
    return PublicUserResponse(
        id=user.id,
        username=user.username,
        role=user.role,
        auth_method=user.auth_method,
        stats=UserStats(
            activity_points=user.activity_points or 0,
            votes_cast=user.votes_cast or 0,
            proposals_submitted=user.proposals_submitted or 0,
            disputes_resolved=user.disputes_resolved or 0,
        ),
        published_blogs=published,
        created_at=user.created_at,
    )
