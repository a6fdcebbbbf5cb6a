"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``users``          -- riders and drivers, with running rating sum/count
* ``rides``          -- driver-offered trips
* ``ride_requests``  -- rider-posted trip wishes
* ``bookings``       -- rider <-> ride seat reservations
* ``ratings``        -- one per (booking, rater)
* ``messages``       -- direct messages between users

Indexes
-------
* **B-Tree** on ``status`` + time columns for the listing/matching queries,
  and on every owner foreign key.
* **Unique** ``(booking_id, rater_id)`` on ratings.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)

from .database import Base
from carpool.domain.enums import (
    BookingStatus,
    PaymentStatus,
    RequestStatus,
    RideStatus,
    RouteFlexibility,
    UserRole,
    VerificationStatus,
)


class UserModel(Base):
    __tablename__ = "users"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(32), unique=True, nullable=False)
    password_hash = Column(String(128), nullable=False)
    name = Column(String(120), nullable=False)
    role = Column(Enum(UserRole), default=UserRole.RIDER, nullable=False)
    profile_photo = Column(String(512), nullable=True)
    verification_status = Column(
        Enum(VerificationStatus),
        default=VerificationStatus.UNVERIFIED,
        nullable=False,
    )

    # Aggregate rating kept as a running pair; the mean is derived on read
    rating_sum = Column(Integer, default=0, nullable=False)
    rating_count = Column(Integer, default=0, nullable=False)
    total_rides = Column(Integer, default=0, nullable=False)

    driver_license = Column(String(64), nullable=True)
    vehicle_make = Column(String(64), nullable=True)
    vehicle_model = Column(String(64), nullable=True)
    vehicle_year = Column(Integer, nullable=True)
    license_plate = Column(String(16), nullable=True)
    insurance_proof = Column(String(512), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def rating(self) -> float:
        if not self.rating_count:
            return 0.0
        return self.rating_sum / self.rating_count


class RideModel(Base):
    __tablename__ = "rides"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    start_lat = Column(Float, nullable=False)
    start_lng = Column(Float, nullable=False)
    start_address = Column(String(255), nullable=False)
    end_lat = Column(Float, nullable=False)
    end_lng = Column(Float, nullable=False)
    end_address = Column(String(255), nullable=False)

    departure_time = Column(DateTime(timezone=True), nullable=False)
    available_seats = Column(Integer, nullable=False)
    price_per_seat = Column(Float, nullable=False)
    route_flexibility = Column(
        Enum(RouteFlexibility), default=RouteFlexibility.FLEXIBLE, nullable=False
    )
    status = Column(Enum(RideStatus), default=RideStatus.ACTIVE, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_rides_status_departure", "status", "departure_time"),
        Index("idx_rides_driver", "driver_id"),
    )


class RideRequestModel(Base):
    __tablename__ = "ride_requests"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    rider_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    pickup_address = Column(String(255), nullable=False)
    dropoff_lat = Column(Float, nullable=False)
    dropoff_lng = Column(Float, nullable=False)
    dropoff_address = Column(String(255), nullable=False)

    desired_time = Column(DateTime(timezone=True), nullable=False)
    time_flexibility = Column(Integer, default=30, nullable=False)  # minutes
    seats_needed = Column(Integer, default=1, nullable=False)
    max_price = Column(Float, nullable=True)
    status = Column(Enum(RequestStatus), default=RequestStatus.OPEN, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_requests_status", "status"),
        Index("idx_requests_rider", "rider_id"),
    )


class BookingModel(Base):
    __tablename__ = "bookings"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    rider_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    ride_request_id = Column(Integer, ForeignKey("ride_requests.id"), nullable=True)

    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    pickup_address = Column(String(255), nullable=False)
    dropoff_lat = Column(Float, nullable=False)
    dropoff_lng = Column(Float, nullable=False)
    dropoff_address = Column(String(255), nullable=False)

    seats_booked = Column(Integer, nullable=False)
    agreed_price = Column(Float, nullable=False)
    status = Column(Enum(BookingStatus), default=BookingStatus.PENDING, nullable=False)
    payment_status = Column(
        Enum(PaymentStatus), default=PaymentStatus.HOLD, nullable=False
    )
    payment_intent_id = Column(String(255), unique=True, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_bookings_ride_status", "ride_id", "status"),
        Index("idx_bookings_rider", "rider_id"),
    )


class RatingModel(Base):
    __tablename__ = "ratings"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    rater_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    ratee_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    stars = Column(Integer, nullable=False)
    review = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("booking_id", "rater_id", name="uq_ratings_booking_rater"),
        CheckConstraint("stars BETWEEN 1 AND 5", name="ck_ratings_stars"),
        Index("idx_ratings_ratee", "ratee_id"),
    )


class MessageModel(Base):
    __tablename__ = "messages"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    receiver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=True)
    ride_request_id = Column(Integer, ForeignKey("ride_requests.id"), nullable=True)
    sent_at = Column(DateTime(timezone=True), server_default=func.now())
    read_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_messages_pair", "sender_id", "receiver_id"),
        Index("idx_messages_receiver", "receiver_id"),
    )
