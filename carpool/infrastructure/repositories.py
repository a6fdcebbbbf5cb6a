"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    BookingModel,
    MessageModel,
    RatingModel,
    RideModel,
    RideRequestModel,
    UserModel,
)
from carpool.domain.enums import (
    SEAT_HOLDING_STATUSES,
    RequestStatus,
    RideStatus,
)


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user: UserModel) -> UserModel:
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def get_by_email(self, email: str) -> Optional[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.email == email)
        )
        return result.scalar_one_or_none()

    async def find_by_email_or_phone(
        self, email: str, phone: str
    ) -> Optional[UserModel]:
        result = await self.session.execute(
            select(UserModel)
            .where(or_(UserModel.email == email, UserModel.phone == phone))
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def increment_total_rides(self, user_ids: list[int]) -> None:
        await self.session.execute(
            update(UserModel)
            .where(UserModel.id.in_(user_ids))
            .values(total_rides=UserModel.total_rides + 1)
        )

    async def add_rating(self, user_id: int, stars: int) -> None:
        """O(1) aggregate update; the mean is derived from sum / count."""
        await self.session.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(
                rating_sum=UserModel.rating_sum + stars,
                rating_count=UserModel.rating_count + 1,
            )
        )

    async def get_many(self, user_ids: set[int]) -> dict[int, UserModel]:
        if not user_ids:
            return {}
        result = await self.session.execute(
            select(UserModel).where(UserModel.id.in_(user_ids))
        )
        return {u.id: u for u in result.scalars().all()}


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, ride: RideModel) -> RideModel:
        self.session.add(ride)
        await self.session.flush()
        return ride

    async def get_by_id(self, ride_id: int) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id)

    async def get_for_update(self, ride_id: int) -> Optional[RideModel]:
        """SELECT ... FOR UPDATE so concurrent bookers serialise on the ride."""
        result = await self.session.execute(
            select(RideModel).where(RideModel.id == ride_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def list_upcoming(
        self, status: RideStatus, now: datetime
    ) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.status == status, RideModel.departure_time >= now)
            .order_by(RideModel.departure_time)
        )
        return list(result.scalars().all())

    async def list_by_driver(self, driver_id: int) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.driver_id == driver_id)
            .order_by(RideModel.departure_time.desc())
        )
        return list(result.scalars().all())


class RideRequestRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, request: RideRequestModel) -> RideRequestModel:
        self.session.add(request)
        await self.session.flush()
        return request

    async def get_by_id(self, request_id: int) -> Optional[RideRequestModel]:
        return await self.session.get(RideRequestModel, request_id)

    async def list_open(self) -> list[RideRequestModel]:
        result = await self.session.execute(
            select(RideRequestModel)
            .where(RideRequestModel.status == RequestStatus.OPEN)
            .order_by(RideRequestModel.desired_time)
        )
        return list(result.scalars().all())

    async def list_by_rider(self, rider_id: int) -> list[RideRequestModel]:
        result = await self.session.execute(
            select(RideRequestModel)
            .where(RideRequestModel.rider_id == rider_id)
            .order_by(RideRequestModel.desired_time.desc())
        )
        return list(result.scalars().all())


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, booking: BookingModel) -> BookingModel:
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_by_id(self, booking_id: int) -> Optional[BookingModel]:
        return await self.session.get(BookingModel, booking_id)

    async def get_for_update(self, booking_id: int) -> Optional[BookingModel]:
        """SELECT ... FOR UPDATE so concurrent raters serialise on the booking."""
        result = await self.session.execute(
            select(BookingModel).where(BookingModel.id == booking_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def list_by_rider(self, rider_id: int) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.rider_id == rider_id)
            .order_by(BookingModel.created_at.desc(), BookingModel.id.desc())
        )
        return list(result.scalars().all())

    async def seats_held(self, ride_id: int) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(BookingModel.seats_booked), 0)).where(
                BookingModel.ride_id == ride_id,
                BookingModel.status.in_(SEAT_HOLDING_STATUSES),
            )
        )
        return int(result.scalar() or 0)

    async def seats_held_by_ride(self, ride_ids: list[int]) -> dict[int, int]:
        """Seats held per ride in one grouped query."""
        if not ride_ids:
            return {}
        result = await self.session.execute(
            select(BookingModel.ride_id, func.sum(BookingModel.seats_booked))
            .where(
                BookingModel.ride_id.in_(ride_ids),
                BookingModel.status.in_(SEAT_HOLDING_STATUSES),
            )
            .group_by(BookingModel.ride_id)
        )
        return {ride_id: int(total or 0) for ride_id, total in result.all()}


class RatingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, rating: RatingModel) -> RatingModel:
        self.session.add(rating)
        await self.session.flush()
        return rating

    async def exists_for_booking(
        self, booking_id: int, rater_id: Optional[int] = None
    ) -> bool:
        query = select(func.count()).select_from(RatingModel).where(
            RatingModel.booking_id == booking_id
        )
        if rater_id is not None:
            query = query.where(RatingModel.rater_id == rater_id)
        result = await self.session.execute(query)
        return (result.scalar() or 0) > 0

    async def list_for_ratee(self, ratee_id: int) -> list[RatingModel]:
        result = await self.session.execute(
            select(RatingModel)
            .where(RatingModel.ratee_id == ratee_id)
            .order_by(RatingModel.created_at.desc(), RatingModel.id.desc())
        )
        return list(result.scalars().all())


class MessageRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, message: MessageModel) -> MessageModel:
        self.session.add(message)
        await self.session.flush()
        return message

    async def get_by_id(self, message_id: int) -> Optional[MessageModel]:
        return await self.session.get(MessageModel, message_id)

    async def history(self, user_a: int, user_b: int) -> list[MessageModel]:
        result = await self.session.execute(
            select(MessageModel)
            .where(
                or_(
                    and_(
                        MessageModel.sender_id == user_a,
                        MessageModel.receiver_id == user_b,
                    ),
                    and_(
                        MessageModel.sender_id == user_b,
                        MessageModel.receiver_id == user_a,
                    ),
                )
            )
            .order_by(MessageModel.sent_at, MessageModel.id)
        )
        return list(result.scalars().all())

    async def involving(self, user_id: int) -> list[MessageModel]:
        """All messages sent or received by *user_id*, newest first."""
        result = await self.session.execute(
            select(MessageModel)
            .where(
                or_(
                    MessageModel.sender_id == user_id,
                    MessageModel.receiver_id == user_id,
                )
            )
            .order_by(MessageModel.sent_at.desc(), MessageModel.id.desc())
        )
        return list(result.scalars().all())
