"""
Payment endpoints
=================

POST /api/v1/payments/create-intent       -- hold the agreed price (rider)
POST /api/v1/payments/refund              -- refund and cancel the booking
GET  /api/v1/payments/status/{booking_id} -- local and processor status
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from carpool.api.dependencies import get_current_user_id
from carpool.api.middleware import limiter
from carpool.api.routes.bookings import get_booking_service
from carpool.api.schemas import (
    BookingResponse,
    PaymentIntentRequest,
    PaymentIntentResponse,
    PaymentStatusResponse,
    RefundRequest,
)
from carpool.config import settings
from carpool.services.bookings import BookingService

router = APIRouter(
    prefix="/payments",
    tags=["payments"],
    dependencies=[Depends(get_current_user_id)],
)


@router.post(
    "/create-intent",
    status_code=201,
    response_model=PaymentIntentResponse,
    summary="Authorise payment for a booking",
)
@limiter.limit(settings.rate_limit)
async def create_intent(
    request: Request,
    body: PaymentIntentRequest,
    user_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    intent = await service.create_payment_intent(user_id, body.booking_id)
    return PaymentIntentResponse(
        payment_intent_id=intent.ref,
        client_secret=intent.client_secret,
        amount=intent.amount,
        currency=intent.currency,
        status=intent.status,
    )


@router.post(
    "/refund",
    response_model=BookingResponse,
    summary="Refund a booking's payment and cancel it",
)
@limiter.limit(settings.rate_limit)
async def refund(
    request: Request,
    body: RefundRequest,
    user_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    return await service.refund(user_id, body.booking_id)


@router.get(
    "/status/{booking_id}",
    response_model=PaymentStatusResponse,
    summary="Get a booking's payment status",
)
@limiter.limit(settings.rate_limit)
async def payment_status(
    request: Request,
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    return await service.payment_status(user_id, booking_id)
