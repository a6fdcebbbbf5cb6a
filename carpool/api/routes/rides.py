"""
Ride endpoints
==============

POST   /api/v1/rides                  -- post a ride (drivers)
GET    /api/v1/rides                  -- upcoming rides, ``?status=`` filter
GET    /api/v1/rides/my-rides         -- the caller's own rides
GET    /api/v1/rides/{ride_id}        -- one ride with remaining seats
PUT    /api/v1/rides/{ride_id}        -- update an active ride
DELETE /api/v1/rides/{ride_id}        -- cancel (soft delete)
GET    /api/v1/rides/{ride_id}/matches -- open requests ranked for this ride
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_current_user_id, get_db
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    RequestMatchResponse,
    RideCreateRequest,
    RideRequestResponse,
    RideResponse,
    RideUpdateRequest,
)
from carpool.config import settings
from carpool.domain.enums import RideStatus
from carpool.infrastructure.models import RideModel
from carpool.services.rides import RideService

router = APIRouter(
    prefix="/rides",
    tags=["rides"],
    dependencies=[Depends(get_current_user_id)],
)


def ride_response(ride: RideModel, remaining: int) -> RideResponse:
    return RideResponse.model_validate(ride).model_copy(
        update={"remaining_seats": remaining}
    )


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Post a ride offer",
)
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    ride = await RideService(db).create(user_id, **body.model_dump())
    return ride_response(ride, ride.available_seats)


@router.get(
    "",
    response_model=list[RideResponse],
    summary="List upcoming rides",
)
@limiter.limit(settings.rate_limit)
async def list_rides(
    request: Request,
    status: RideStatus = Query(RideStatus.ACTIVE),
    db: AsyncSession = Depends(get_db),
):
    rides = await RideService(db).list_upcoming(status)
    return [ride_response(ride, remaining) for ride, remaining in rides]


@router.get(
    "/my-rides",
    response_model=list[RideResponse],
    summary="List the caller's rides",
)
@limiter.limit(settings.rate_limit)
async def my_rides(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    rides = await RideService(db).list_mine(user_id)
    return [ride_response(ride, remaining) for ride, remaining in rides]


@router.get(
    "/{ride_id}",
    response_model=RideResponse,
    summary="Get a ride",
)
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: int,
    db: AsyncSession = Depends(get_db),
):
    ride, remaining = await RideService(db).get(ride_id)
    return ride_response(ride, remaining)


@router.put(
    "/{ride_id}",
    response_model=RideResponse,
    summary="Update an active ride",
)
@limiter.limit(settings.rate_limit)
async def update_ride(
    request: Request,
    ride_id: int,
    body: RideUpdateRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    service = RideService(db)
    ride = await service.update(user_id, ride_id, body.model_dump(exclude_unset=True))
    return ride_response(ride, await service.remaining_seats(ride))


@router.delete(
    "/{ride_id}",
    response_model=RideResponse,
    summary="Cancel a ride",
)
@limiter.limit(settings.rate_limit)
async def cancel_ride(
    request: Request,
    ride_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    service = RideService(db)
    ride = await service.cancel(user_id, ride_id)
    return ride_response(ride, await service.remaining_seats(ride))


@router.get(
    "/{ride_id}/matches",
    response_model=list[RequestMatchResponse],
    summary="Rank open ride requests against this ride",
)
@limiter.limit(settings.rate_limit)
async def ride_matches(
    request: Request,
    ride_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    matches = await RideService(db).matches(user_id, ride_id)
    return [
        RequestMatchResponse(
            **RideRequestResponse.model_validate(m.candidate).model_dump(),
            match_score=round(m.score, 4),
        )
        for m in matches
    ]
