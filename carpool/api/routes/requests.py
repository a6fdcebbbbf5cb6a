"""
Ride request endpoints
======================

POST   /api/v1/ride-requests                      -- post a request (riders)
GET    /api/v1/ride-requests/my-requests          -- the caller's requests
GET    /api/v1/ride-requests/{request_id}         -- one request
PUT    /api/v1/ride-requests/{request_id}         -- update an open request
DELETE /api/v1/ride-requests/{request_id}         -- cancel (soft delete)
GET    /api/v1/ride-requests/{request_id}/matches -- rides ranked for it
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_current_user_id, get_db
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    RideMatchResponse,
    RideRequestCreateRequest,
    RideRequestResponse,
    RideRequestUpdateRequest,
    RideResponse,
)
from carpool.config import settings
from carpool.services.rides import RideRequestService

router = APIRouter(
    prefix="/ride-requests",
    tags=["ride-requests"],
    dependencies=[Depends(get_current_user_id)],
)


@router.post(
    "",
    status_code=201,
    response_model=RideRequestResponse,
    summary="Post a ride request",
)
@limiter.limit(settings.rate_limit)
async def create_request(
    request: Request,
    body: RideRequestCreateRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await RideRequestService(db).create(user_id, **body.model_dump())


@router.get(
    "/my-requests",
    response_model=list[RideRequestResponse],
    summary="List the caller's ride requests",
)
@limiter.limit(settings.rate_limit)
async def my_requests(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await RideRequestService(db).list_mine(user_id)


@router.get(
    "/{request_id}",
    response_model=RideRequestResponse,
    summary="Get a ride request",
)
@limiter.limit(settings.rate_limit)
async def get_request(
    request: Request,
    request_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await RideRequestService(db).get(request_id)


@router.put(
    "/{request_id}",
    response_model=RideRequestResponse,
    summary="Update an open ride request",
)
@limiter.limit(settings.rate_limit)
async def update_request(
    request: Request,
    request_id: int,
    body: RideRequestUpdateRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await RideRequestService(db).update(
        user_id, request_id, body.model_dump(exclude_unset=True)
    )


@router.delete(
    "/{request_id}",
    response_model=RideRequestResponse,
    summary="Cancel a ride request",
)
@limiter.limit(settings.rate_limit)
async def cancel_request(
    request: Request,
    request_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await RideRequestService(db).cancel(user_id, request_id)


@router.get(
    "/{request_id}/matches",
    response_model=list[RideMatchResponse],
    summary="Rank upcoming rides against this request",
)
@limiter.limit(settings.rate_limit)
async def request_matches(
    request: Request,
    request_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    matches = await RideRequestService(db).matches(user_id, request_id)
    return [
        RideMatchResponse(
            **{
                **RideResponse.model_validate(m.candidate).model_dump(),
                "remaining_seats": m.remaining_seats,
                "match_score": round(m.score, 4),
            }
        )
        for m in matches
    ]
