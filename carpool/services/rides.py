"""
Ride postings and ride requests: CRUD plus ranked matches.

Deleting either record is a soft cancel.  Matches are recomputed from the
current rows on every call (see ``carpool.domain.matching``).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.config import settings
from carpool.domain.enums import RequestStatus, RideStatus
from carpool.domain.errors import Conflict, NotFound, ValidationError
from carpool.domain.matching import Match, rank_requests, rank_rides
from carpool.domain.policy import Action, Actor, Resource, authorize
from carpool.infrastructure.models import RideModel, RideRequestModel
from carpool.infrastructure.repositories import (
    BookingRepository,
    RideRepository,
    RideRequestRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)

RIDE_UPDATABLE = {
    "start_lat", "start_lng", "start_address",
    "end_lat", "end_lng", "end_address",
    "departure_time", "available_seats", "price_per_seat", "route_flexibility",
}

REQUEST_UPDATABLE = {
    "pickup_lat", "pickup_lng", "pickup_address",
    "dropoff_lat", "dropoff_lng", "dropoff_address",
    "desired_time", "time_flexibility", "seats_needed", "max_price",
}

# max_price may be cleared to accept any price
REQUEST_NULLABLE = frozenset({"max_price"})


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _check_changes(
    changes: dict[str, Any], allowed: set[str], nullable: frozenset[str] = frozenset()
) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
    cleared = sorted(k for k, v in changes.items() if v is None and k not in nullable)
    if cleared:
        raise ValidationError(f"Fields cannot be null: {', '.join(cleared)}")


def _apply(record: Any, changes: dict[str, Any]) -> None:
    for key, value in changes.items():
        setattr(record, key, value)


class RideService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.rides = RideRepository(session)
        self.requests = RideRequestRepository(session)
        self.bookings = BookingRepository(session)
        self.users = UserRepository(session)

    async def remaining_seats(self, ride: RideModel) -> int:
        return ride.available_seats - await self.bookings.seats_held(ride.id)

    async def with_remaining(self, rides: list[RideModel]) -> list[tuple[RideModel, int]]:
        held = await self.bookings.seats_held_by_ride([r.id for r in rides])
        return [(r, r.available_seats - held.get(r.id, 0)) for r in rides]

    async def _owned(self, actor_id: int, ride_id: int) -> RideModel:
        ride = await self.rides.get_by_id(ride_id)
        if not ride:
            raise NotFound("Ride not found")
        authorize(Actor(actor_id), Resource(owner_id=ride.driver_id), Action.MANAGE_RIDE)
        return ride

    async def create(self, actor_id: int, **fields: Any) -> RideModel:
        user = await self.users.get_by_id(actor_id)
        if not user:
            raise NotFound("User not found")
        authorize(Actor(actor_id, user.role), Resource(), Action.POST_RIDE)

        ride = RideModel(driver_id=actor_id, status=RideStatus.ACTIVE, **fields)
        ride = await self.rides.create(ride)
        logger.info("Ride %s posted by driver %s", ride.id, actor_id)
        return ride

    async def list_upcoming(
        self, status: RideStatus = RideStatus.ACTIVE
    ) -> list[tuple[RideModel, int]]:
        """Upcoming rides in *status*, soonest first, with remaining seats."""
        rides = await self.rides.list_upcoming(status, _now())
        return await self.with_remaining(rides)

    async def list_mine(self, actor_id: int) -> list[tuple[RideModel, int]]:
        return await self.with_remaining(await self.rides.list_by_driver(actor_id))

    async def get(self, ride_id: int) -> tuple[RideModel, int]:
        ride = await self.rides.get_by_id(ride_id)
        if not ride:
            raise NotFound("Ride not found")
        return ride, await self.remaining_seats(ride)

    async def update(self, actor_id: int, ride_id: int, changes: dict[str, Any]) -> RideModel:
        ride = await self._owned(actor_id, ride_id)
        if RideStatus(ride.status) != RideStatus.ACTIVE:
            raise Conflict("Only active rides can be updated")
        _check_changes(changes, RIDE_UPDATABLE)
        if "available_seats" in changes:
            held = await self.bookings.seats_held(ride.id)
            if changes["available_seats"] < held:
                raise ValidationError(
                    f"{held} seats are already booked on this ride"
                )
        _apply(ride, changes)
        return ride

    async def cancel(self, actor_id: int, ride_id: int) -> RideModel:
        ride = await self._owned(actor_id, ride_id)
        if RideStatus(ride.status) != RideStatus.ACTIVE:
            raise Conflict(f"Cannot cancel ride in status {RideStatus(ride.status).value}")
        ride.status = RideStatus.CANCELLED
        logger.info("Ride %s cancelled by driver %s", ride.id, actor_id)
        return ride

    async def matches(self, actor_id: int, ride_id: int) -> list[Match]:
        """Open requests ranked against the driver's ride."""
        ride = await self._owned(actor_id, ride_id)
        remaining = await self.remaining_seats(ride)
        candidates = [
            r for r in await self.requests.list_open() if r.rider_id != ride.driver_id
        ]
        return rank_requests(
            ride,
            candidates,
            remaining,
            threshold=settings.match_score_threshold,
            cutoff_m=settings.route_cutoff_meters,
        )


class RideRequestService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.rides = RideRepository(session)
        self.requests = RideRequestRepository(session)
        self.bookings = BookingRepository(session)
        self.users = UserRepository(session)

    async def _owned(self, actor_id: int, request_id: int) -> RideRequestModel:
        request = await self.requests.get_by_id(request_id)
        if not request:
            raise NotFound("Ride request not found")
        authorize(Actor(actor_id), Resource(owner_id=request.rider_id), Action.MANAGE_REQUEST)
        return request

    async def create(
        self, actor_id: int, time_flexibility: Optional[int] = None, **fields: Any
    ) -> RideRequestModel:
        user = await self.users.get_by_id(actor_id)
        if not user:
            raise NotFound("User not found")
        authorize(Actor(actor_id, user.role), Resource(), Action.POST_REQUEST)

        request = RideRequestModel(
            rider_id=actor_id,
            time_flexibility=(
                time_flexibility
                if time_flexibility is not None
                else settings.default_time_flexibility_minutes
            ),
            status=RequestStatus.OPEN,
            **fields,
        )
        request = await self.requests.create(request)
        logger.info("Ride request %s posted by rider %s", request.id, actor_id)
        return request

    async def list_mine(self, actor_id: int) -> list[RideRequestModel]:
        return await self.requests.list_by_rider(actor_id)

    async def get(self, request_id: int) -> RideRequestModel:
        request = await self.requests.get_by_id(request_id)
        if not request:
            raise NotFound("Ride request not found")
        return request

    async def update(
        self, actor_id: int, request_id: int, changes: dict[str, Any]
    ) -> RideRequestModel:
        request = await self._owned(actor_id, request_id)
        if RequestStatus(request.status) != RequestStatus.OPEN:
            raise Conflict("Only open ride requests can be updated")
        _check_changes(changes, REQUEST_UPDATABLE, REQUEST_NULLABLE)
        _apply(request, changes)
        return request

    async def cancel(self, actor_id: int, request_id: int) -> RideRequestModel:
        request = await self._owned(actor_id, request_id)
        status = RequestStatus(request.status)
        if status in (RequestStatus.COMPLETED, RequestStatus.CANCELLED):
            raise Conflict(f"Cannot cancel ride request in status {status.value}")
        request.status = RequestStatus.CANCELLED
        logger.info("Ride request %s cancelled by rider %s", request.id, actor_id)
        return request

    async def matches(self, actor_id: int, request_id: int) -> list[Match]:
        """Upcoming active rides with enough seats, ranked for the request."""
        request = await self._owned(actor_id, request_id)
        rides = [
            r
            for r in await self.rides.list_upcoming(RideStatus.ACTIVE, _now())
            if r.driver_id != request.rider_id
        ]
        held = await self.bookings.seats_held_by_ride([r.id for r in rides])
        return rank_rides(
            request,
            rides,
            remaining=lambda ride: ride.available_seats - held.get(ride.id, 0),
            threshold=settings.match_score_threshold,
            cutoff_m=settings.route_cutoff_meters,
        )
