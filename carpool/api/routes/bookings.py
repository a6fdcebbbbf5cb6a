"""
Booking endpoints
=================

POST /api/v1/bookings                       -- book seats on a ride
GET  /api/v1/bookings/my-bookings           -- the caller's bookings as rider
GET  /api/v1/bookings/{booking_id}          -- one booking (rider or driver)
PUT  /api/v1/bookings/{booking_id}/confirm  -- driver: PENDING -> CONFIRMED
PUT  /api/v1/bookings/{booking_id}/complete -- driver: capture, -> COMPLETED
PUT  /api/v1/bookings/{booking_id}/cancel   -- either party: refund, -> CANCELLED
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import (
    get_current_user_id,
    get_db,
    get_outbox,
    get_payment_gateway,
)
from carpool.api.middleware import limiter
from carpool.api.schemas import BookingCreateRequest, BookingResponse
from carpool.config import settings
from carpool.infrastructure.payments import PaymentGateway
from carpool.infrastructure.pubsub import OutboxPublisher
from carpool.services.bookings import BookingService

router = APIRouter(
    prefix="/bookings",
    tags=["bookings"],
    dependencies=[Depends(get_current_user_id)],
)


def get_booking_service(
    db: AsyncSession = Depends(get_db),
    payments: PaymentGateway = Depends(get_payment_gateway),
    publisher: OutboxPublisher = Depends(get_outbox),
) -> BookingService:
    return BookingService(db, payments, publisher)


@router.post(
    "",
    status_code=201,
    response_model=BookingResponse,
    summary="Book seats on a ride",
)
@limiter.limit(settings.rate_limit)
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    user_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    return await service.create(user_id, **body.model_dump())


@router.get(
    "/my-bookings",
    response_model=list[BookingResponse],
    summary="List the caller's bookings",
)
@limiter.limit(settings.rate_limit)
async def my_bookings(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    return await service.list_mine(user_id)


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Get a booking",
)
@limiter.limit(settings.rate_limit)
async def get_booking(
    request: Request,
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    return await service.get(user_id, booking_id)


@router.put(
    "/{booking_id}/confirm",
    response_model=BookingResponse,
    summary="Confirm a pending booking",
)
@limiter.limit(settings.rate_limit)
async def confirm_booking(
    request: Request,
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    return await service.confirm(user_id, booking_id)


@router.put(
    "/{booking_id}/complete",
    response_model=BookingResponse,
    summary="Complete a booking and capture its payment",
)
@limiter.limit(settings.rate_limit)
async def complete_booking(
    request: Request,
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    return await service.complete(user_id, booking_id)


@router.put(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel a booking and refund its payment",
)
@limiter.limit(settings.rate_limit)
async def cancel_booking(
    request: Request,
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    return await service.cancel(user_id, booking_id)
