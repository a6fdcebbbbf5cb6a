"""
Booking Lifecycle Manager
=========================

PENDING -> CONFIRMED -> COMPLETED, with PENDING | CONFIRMED -> CANCELLED.

Each operation follows the same order:

1. load the booking (``NotFound``) and its ride,
2. check the actor against the policy table (``Forbidden``),
3. check the state machine (``Conflict``) and business rules
   (``ValidationError``),
4. call the payment processor, if this transition moves money,
5. only then mutate rows; the request's session commits them.

Because step 4 runs before any row changes, a processor failure leaves the
booking exactly as it was and reaches the caller as
``ExternalServiceError``.

Concurrency safety
------------------
* **SELECT ... FOR UPDATE** on the ride while seats are counted and the new
  booking is inserted, so two riders cannot both take the last seat.
* The booking row is locked the same way before any transition, payment
  authorisation or rating, so two parties acting at once serialise.
* Counters (``total_rides``, ``rating_sum``/``rating_count``) are bumped with
  in-database ``UPDATE ... SET x = x + n`` rather than read-modify-write.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.config import settings
from carpool.domain.entities import PAYMENT_ON_TRANSITION, is_terminal, transition
from carpool.domain.enums import BookingStatus, PaymentStatus, RequestStatus, RideStatus
from carpool.domain.errors import Conflict, NotFound, ValidationError
from carpool.domain.policy import Action, Actor, Resource, authorize
from carpool.infrastructure.models import BookingModel, RatingModel, RideModel
from carpool.infrastructure.payments import PaymentGateway, PaymentIntent
from carpool.infrastructure.pubsub import Publisher
from carpool.infrastructure.repositories import (
    BookingRepository,
    RatingRepository,
    RideRepository,
    RideRequestRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)


def booking_payload(booking: BookingModel) -> dict[str, Any]:
    return {
        "id": booking.id,
        "ride_id": booking.ride_id,
        "rider_id": booking.rider_id,
        "ride_request_id": booking.ride_request_id,
        "seats_booked": booking.seats_booked,
        "agreed_price": booking.agreed_price,
        "status": BookingStatus(booking.status).value,
        "payment_status": PaymentStatus(booking.payment_status).value,
    }


class BookingService:
    def __init__(
        self,
        session: AsyncSession,
        payments: PaymentGateway,
        publisher: Publisher,
    ):
        self.session = session
        self.payments = payments
        self.publisher = publisher
        self.bookings = BookingRepository(session)
        self.rides = RideRepository(session)
        self.requests = RideRequestRepository(session)
        self.users = UserRepository(session)
        self.ratings = RatingRepository(session)

    # ── Helpers ───────────────────────────────────────────────────────

    async def _load(
        self, booking_id: int, lock: bool = False
    ) -> tuple[BookingModel, RideModel]:
        if lock:
            booking = await self.bookings.get_for_update(booking_id)
        else:
            booking = await self.bookings.get_by_id(booking_id)
        if not booking:
            raise NotFound("Booking not found")
        ride = await self.rides.get_by_id(booking.ride_id)
        if not ride:
            raise NotFound("Ride not found")
        return booking, ride

    @staticmethod
    def _resource(booking: BookingModel, ride: RideModel) -> Resource:
        return Resource.booking(rider_id=booking.rider_id, driver_id=ride.driver_id)

    async def _set_request_status(
        self, request_id: Optional[int], expected: RequestStatus, new: RequestStatus
    ) -> None:
        if request_id is None:
            return
        request = await self.requests.get_by_id(request_id)
        if request and RequestStatus(request.status) == expected:
            request.status = new

    # ── Create ────────────────────────────────────────────────────────

    async def create(
        self,
        actor_id: int,
        *,
        ride_id: int,
        seats_booked: int,
        ride_request_id: Optional[int] = None,
        pickup_lat: Optional[float] = None,
        pickup_lng: Optional[float] = None,
        pickup_address: Optional[str] = None,
        dropoff_lat: Optional[float] = None,
        dropoff_lng: Optional[float] = None,
        dropoff_address: Optional[str] = None,
        agreed_price: Optional[float] = None,
    ) -> BookingModel:
        """Reserve seats on a ride for the acting rider.

        Pickup / dropoff default to the originating request's points, or to
        the ride's own endpoints when there is no request.
        """
        if seats_booked < 1:
            raise ValidationError("At least one seat must be booked")

        ride = await self.rides.get_for_update(ride_id)
        if not ride:
            raise NotFound("Ride not found")
        authorize(Actor(actor_id), Resource(owner_id=ride.driver_id), Action.BOOK_RIDE)
        if RideStatus(ride.status) != RideStatus.ACTIVE:
            raise ValidationError("Ride is not accepting bookings")

        request = None
        if ride_request_id is not None:
            request = await self.requests.get_by_id(ride_request_id)
            if not request:
                raise NotFound("Ride request not found")
            authorize(
                Actor(actor_id),
                Resource(owner_id=request.rider_id),
                Action.MANAGE_REQUEST,
            )
            if RequestStatus(request.status) != RequestStatus.OPEN:
                raise ValidationError("Ride request is no longer open")

        held = await self.bookings.seats_held(ride.id)
        if ride.available_seats - held < seats_booked:
            raise ValidationError("Not enough seats available")

        if request:
            default_pickup = (request.pickup_lat, request.pickup_lng, request.pickup_address)
            default_dropoff = (request.dropoff_lat, request.dropoff_lng, request.dropoff_address)
        else:
            default_pickup = (ride.start_lat, ride.start_lng, ride.start_address)
            default_dropoff = (ride.end_lat, ride.end_lng, ride.end_address)

        booking = BookingModel(
            ride_id=ride.id,
            rider_id=actor_id,
            ride_request_id=ride_request_id,
            pickup_lat=pickup_lat if pickup_lat is not None else default_pickup[0],
            pickup_lng=pickup_lng if pickup_lng is not None else default_pickup[1],
            pickup_address=pickup_address or default_pickup[2],
            dropoff_lat=dropoff_lat if dropoff_lat is not None else default_dropoff[0],
            dropoff_lng=dropoff_lng if dropoff_lng is not None else default_dropoff[1],
            dropoff_address=dropoff_address or default_dropoff[2],
            seats_booked=seats_booked,
            agreed_price=(
                agreed_price
                if agreed_price is not None
                else round(ride.price_per_seat * seats_booked, 2)
            ),
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.HOLD,
        )
        booking = await self.bookings.create(booking)
        if request:
            request.status = RequestStatus.MATCHED

        logger.info(
            "Booking %s created: rider=%s ride=%s seats=%s",
            booking.id, actor_id, ride.id, seats_booked,
        )
        await self.publisher.publish(ride.driver_id, "new-booking", booking_payload(booking))
        return booking

    # ── Reads ─────────────────────────────────────────────────────────

    async def get(self, actor_id: int, booking_id: int) -> BookingModel:
        booking, ride = await self._load(booking_id)
        authorize(Actor(actor_id), self._resource(booking, ride), Action.VIEW_BOOKING)
        return booking

    async def list_mine(self, actor_id: int) -> list[BookingModel]:
        return await self.bookings.list_by_rider(actor_id)

    # ── Transitions ───────────────────────────────────────────────────

    async def confirm(self, actor_id: int, booking_id: int) -> BookingModel:
        booking, ride = await self._load(booking_id, lock=True)
        authorize(Actor(actor_id), self._resource(booking, ride), Action.CONFIRM_BOOKING)
        booking.status = transition(booking.status, BookingStatus.CONFIRMED)

        logger.info("Booking %s confirmed by driver %s", booking.id, actor_id)
        await self.publisher.publish(
            booking.rider_id, "booking-confirmed", booking_payload(booking)
        )
        return booking

    async def complete(self, actor_id: int, booking_id: int) -> BookingModel:
        booking, ride = await self._load(booking_id, lock=True)
        authorize(Actor(actor_id), self._resource(booking, ride), Action.COMPLETE_BOOKING)
        new_status = transition(booking.status, BookingStatus.COMPLETED)

        # Processor first: nothing below runs if the capture fails
        if booking.payment_intent_id:
            await self.payments.capture(booking.payment_intent_id)

        booking.status = new_status
        booking.payment_status = PAYMENT_ON_TRANSITION[new_status]
        await self.users.increment_total_rides([booking.rider_id, ride.driver_id])
        await self._set_request_status(
            booking.ride_request_id, RequestStatus.MATCHED, RequestStatus.COMPLETED
        )

        logger.info("Booking %s completed by driver %s", booking.id, actor_id)
        await self.publisher.publish(
            booking.rider_id, "booking-completed", booking_payload(booking)
        )
        return booking

    async def cancel(self, actor_id: int, booking_id: int) -> BookingModel:
        booking, ride = await self._load(booking_id, lock=True)
        authorize(Actor(actor_id), self._resource(booking, ride), Action.CANCEL_BOOKING)
        new_status = transition(booking.status, BookingStatus.CANCELLED)

        if booking.payment_intent_id:
            await self.payments.refund(booking.payment_intent_id)

        booking.status = new_status
        booking.payment_status = PAYMENT_ON_TRANSITION[new_status]
        await self._set_request_status(
            booking.ride_request_id, RequestStatus.MATCHED, RequestStatus.OPEN
        )

        counterparty = ride.driver_id if actor_id == booking.rider_id else booking.rider_id
        logger.info("Booking %s cancelled by user %s", booking.id, actor_id)
        await self.publisher.publish(
            counterparty, "booking-cancelled", booking_payload(booking)
        )
        return booking

    # ── Ratings ───────────────────────────────────────────────────────

    async def rate(
        self,
        actor_id: int,
        booking_id: int,
        stars: int,
        review: Optional[str] = None,
        ratee_id: Optional[int] = None,
    ) -> RatingModel:
        """Attach a rating to a completed booking.

        The ratee is always the other party on the booking.  With
        ``ratings_per_direction`` off (the default) a booking takes one rating
        in total; with it on, rider and driver may each rate once.
        """
        if not 1 <= stars <= 5:
            raise ValidationError("Stars must be between 1 and 5")

        booking, ride = await self._load(booking_id, lock=True)
        authorize(Actor(actor_id), self._resource(booking, ride), Action.RATE_BOOKING)
        if BookingStatus(booking.status) != BookingStatus.COMPLETED:
            raise ValidationError("Can only rate completed bookings")

        counterparty = ride.driver_id if actor_id == booking.rider_id else booking.rider_id
        if ratee_id is not None and ratee_id != counterparty:
            raise ValidationError("You can only rate the other party on this booking")

        rater_key = actor_id if settings.ratings_per_direction else None
        if await self.ratings.exists_for_booking(booking.id, rater_key):
            raise Conflict("This booking has already been rated")

        try:
            rating = await self.ratings.create(
                RatingModel(
                    booking_id=booking.id,
                    rater_id=actor_id,
                    ratee_id=counterparty,
                    stars=stars,
                    review=review or None,
                )
            )
        except IntegrityError as exc:
            raise Conflict("This booking has already been rated") from exc

        await self.users.add_rating(counterparty, stars)
        logger.info(
            "Booking %s rated %s by user %s (ratee %s)",
            booking.id, stars, actor_id, counterparty,
        )
        return rating

    # ── Payments ──────────────────────────────────────────────────────

    async def create_payment_intent(
        self, actor_id: int, booking_id: int
    ) -> PaymentIntent:
        """Authorise (hold) the agreed price for the rider's booking."""
        booking, ride = await self._load(booking_id, lock=True)
        authorize(Actor(actor_id), self._resource(booking, ride), Action.PAY_BOOKING)
        if is_terminal(booking.status):
            raise Conflict("Booking is already closed")
        if booking.payment_intent_id:
            raise Conflict("Payment has already been initiated for this booking")
        if booking.agreed_price <= 0:
            raise ValidationError("Free bookings need no payment")

        intent = await self.payments.authorize(
            booking.agreed_price,
            {
                "booking_id": booking.id,
                "rider_id": booking.rider_id,
                "driver_id": ride.driver_id,
            },
        )
        booking.payment_intent_id = intent.ref
        logger.info("Payment %s authorised for booking %s", intent.ref, booking.id)
        return intent

    async def refund(self, actor_id: int, booking_id: int) -> BookingModel:
        booking, ride = await self._load(booking_id)
        authorize(Actor(actor_id), self._resource(booking, ride), Action.CANCEL_BOOKING)
        if not booking.payment_intent_id:
            raise ValidationError("No payment found for this booking")
        return await self.cancel(actor_id, booking_id)

    async def payment_status(self, actor_id: int, booking_id: int) -> dict[str, Any]:
        booking, ride = await self._load(booking_id)
        authorize(Actor(actor_id), self._resource(booking, ride), Action.VIEW_BOOKING)

        processor_status = None
        if booking.payment_intent_id:
            processor_status = (await self.payments.retrieve(booking.payment_intent_id)).status
        return {
            "booking_id": booking.id,
            "payment_status": PaymentStatus(booking.payment_status).value,
            "agreed_price": booking.agreed_price,
            "payment_intent_id": booking.payment_intent_id,
            "processor_status": processor_status,
        }
