"""
Rating endpoints
================

POST /api/v1/ratings                -- rate the other party on a completed booking
GET  /api/v1/ratings/user/{user_id} -- ratings received and the average
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_current_user_id, get_db
from carpool.api.middleware import limiter
from carpool.api.routes.bookings import get_booking_service
from carpool.api.schemas import (
    RatingCreateRequest,
    RatingResponse,
    UserRatingsResponse,
)
from carpool.config import settings
from carpool.services.accounts import AccountService
from carpool.services.bookings import BookingService

router = APIRouter(
    prefix="/ratings",
    tags=["ratings"],
    dependencies=[Depends(get_current_user_id)],
)


@router.post(
    "",
    status_code=201,
    response_model=RatingResponse,
    summary="Rate a completed booking",
)
@limiter.limit(settings.rate_limit)
async def create_rating(
    request: Request,
    body: RatingCreateRequest,
    user_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    return await service.rate(
        user_id,
        body.booking_id,
        body.stars,
        review=body.review,
        ratee_id=body.ratee_id,
    )


@router.get(
    "/user/{target_id}",
    response_model=UserRatingsResponse,
    summary="List ratings received by a user",
)
@limiter.limit(settings.rate_limit)
async def user_ratings(
    request: Request,
    target_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await AccountService(db).ratings_summary(target_id)
