"""
User endpoints
==============

GET /api/v1/users/me        -- the caller's full profile
PUT /api/v1/users/me        -- update profile / vehicle fields
GET /api/v1/users/{user_id} -- public profile
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_current_user_id, get_db
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    ProfileUpdateRequest,
    PublicUserResponse,
    UserResponse,
)
from carpool.config import settings
from carpool.services.accounts import AccountService

router = APIRouter(
    prefix="/users",
    tags=["users"],
    dependencies=[Depends(get_current_user_id)],
)


@router.get("/me", response_model=UserResponse, summary="Get my profile")
@limiter.limit(settings.rate_limit)
async def get_me(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await AccountService(db).get(user_id)


@router.put("/me", response_model=UserResponse, summary="Update my profile")
@limiter.limit(settings.rate_limit)
async def update_me(
    request: Request,
    body: ProfileUpdateRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await AccountService(db).update_profile(
        user_id, body.model_dump(exclude_unset=True)
    )


@router.get(
    "/{target_id}",
    response_model=PublicUserResponse,
    summary="Get a user's public profile",
)
@limiter.limit(settings.rate_limit)
async def get_user(
    request: Request,
    target_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await AccountService(db).get(target_id)
