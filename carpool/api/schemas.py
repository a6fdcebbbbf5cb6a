"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from carpool.domain.enums import (
    BookingStatus,
    PaymentStatus,
    RequestStatus,
    RideStatus,
    RouteFlexibility,
    UserRole,
    VerificationStatus,
)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are taken as UTC; aware ones are converted."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── Auth / users ──────────────────────────────────────────────────────


class RegisterRequest(BaseModel):
    email: EmailStr
    phone: str = Field(..., pattern=r"^\+?[0-9][0-9\s\-()]{6,19}$")
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=120)
    role: Optional[UserRole] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    phone: Optional[str] = Field(None, pattern=r"^\+?[0-9][0-9\s\-()]{6,19}$")
    profile_photo: Optional[str] = Field(None, max_length=512)
    role: Optional[UserRole] = None
    driver_license: Optional[str] = Field(None, max_length=64)
    vehicle_make: Optional[str] = Field(None, max_length=64)
    vehicle_model: Optional[str] = Field(None, max_length=64)
    vehicle_year: Optional[int] = Field(None, ge=1950, le=2100)
    license_plate: Optional[str] = Field(None, max_length=16)
    insurance_proof: Optional[str] = Field(None, max_length=512)


class PublicUserResponse(BaseModel):
    id: int
    name: str
    profile_photo: Optional[str] = None
    role: UserRole
    verification_status: VerificationStatus
    rating: float
    total_rides: int
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class UserResponse(PublicUserResponse):
    email: str
    phone: str
    driver_license: Optional[str] = None
    license_plate: Optional[str] = None
    insurance_proof: Optional[str] = None


class AuthResponse(BaseModel):
    token: str
    user: UserResponse


# ── Rides ─────────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    start_lat: float = Field(..., ge=-90, le=90)
    start_lng: float = Field(..., ge=-180, le=180)
    start_address: str = Field(..., min_length=1, max_length=255)
    end_lat: float = Field(..., ge=-90, le=90)
    end_lng: float = Field(..., ge=-180, le=180)
    end_address: str = Field(..., min_length=1, max_length=255)
    departure_time: datetime
    available_seats: int = Field(..., ge=1, le=8)
    price_per_seat: float = Field(..., ge=0)
    route_flexibility: RouteFlexibility = RouteFlexibility.FLEXIBLE

    _normalise_time = field_validator("departure_time")(_utc)


class RideUpdateRequest(BaseModel):
    start_lat: Optional[float] = Field(None, ge=-90, le=90)
    start_lng: Optional[float] = Field(None, ge=-180, le=180)
    start_address: Optional[str] = Field(None, min_length=1, max_length=255)
    end_lat: Optional[float] = Field(None, ge=-90, le=90)
    end_lng: Optional[float] = Field(None, ge=-180, le=180)
    end_address: Optional[str] = Field(None, min_length=1, max_length=255)
    departure_time: Optional[datetime] = None
    available_seats: Optional[int] = Field(None, ge=1, le=8)
    price_per_seat: Optional[float] = Field(None, ge=0)
    route_flexibility: Optional[RouteFlexibility] = None

    _normalise_time = field_validator("departure_time")(_utc)


class RideResponse(BaseModel):
    id: int
    driver_id: int
    start_lat: float
    start_lng: float
    start_address: str
    end_lat: float
    end_lng: float
    end_address: str
    departure_time: datetime
    available_seats: int
    price_per_seat: float
    route_flexibility: RouteFlexibility
    status: RideStatus
    remaining_seats: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ── Ride requests ─────────────────────────────────────────────────────


class RideRequestCreateRequest(BaseModel):
    pickup_lat: float = Field(..., ge=-90, le=90)
    pickup_lng: float = Field(..., ge=-180, le=180)
    pickup_address: str = Field(..., min_length=1, max_length=255)
    dropoff_lat: float = Field(..., ge=-90, le=90)
    dropoff_lng: float = Field(..., ge=-180, le=180)
    dropoff_address: str = Field(..., min_length=1, max_length=255)
    desired_time: datetime
    time_flexibility: Optional[int] = Field(
        None, ge=0, le=24 * 60, description="Minutes either side of desired_time."
    )
    seats_needed: int = Field(1, ge=1, le=8)
    max_price: Optional[float] = Field(None, gt=0)

    _normalise_time = field_validator("desired_time")(_utc)


class RideRequestUpdateRequest(BaseModel):
    pickup_lat: Optional[float] = Field(None, ge=-90, le=90)
    pickup_lng: Optional[float] = Field(None, ge=-180, le=180)
    pickup_address: Optional[str] = Field(None, min_length=1, max_length=255)
    dropoff_lat: Optional[float] = Field(None, ge=-90, le=90)
    dropoff_lng: Optional[float] = Field(None, ge=-180, le=180)
    dropoff_address: Optional[str] = Field(None, min_length=1, max_length=255)
    desired_time: Optional[datetime] = None
    time_flexibility: Optional[int] = Field(None, ge=0, le=24 * 60)
    seats_needed: Optional[int] = Field(None, ge=1, le=8)
    max_price: Optional[float] = Field(None, gt=0)

    _normalise_time = field_validator("desired_time")(_utc)


class RideRequestResponse(BaseModel):
    id: int
    rider_id: int
    pickup_lat: float
    pickup_lng: float
    pickup_address: str
    dropoff_lat: float
    dropoff_lng: float
    dropoff_address: str
    desired_time: datetime
    time_flexibility: int
    seats_needed: int
    max_price: Optional[float] = None
    status: RequestStatus
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RideMatchResponse(RideResponse):
    match_score: float


class RequestMatchResponse(RideRequestResponse):
    match_score: float


# ── Bookings ──────────────────────────────────────────────────────────


class BookingCreateRequest(BaseModel):
    ride_id: int
    seats_booked: int = Field(..., ge=1, le=8)
    ride_request_id: Optional[int] = None
    pickup_lat: Optional[float] = Field(None, ge=-90, le=90)
    pickup_lng: Optional[float] = Field(None, ge=-180, le=180)
    pickup_address: Optional[str] = Field(None, min_length=1, max_length=255)
    dropoff_lat: Optional[float] = Field(None, ge=-90, le=90)
    dropoff_lng: Optional[float] = Field(None, ge=-180, le=180)
    dropoff_address: Optional[str] = Field(None, min_length=1, max_length=255)
    agreed_price: Optional[float] = Field(None, gt=0)


class BookingResponse(BaseModel):
    id: int
    ride_id: int
    rider_id: int
    ride_request_id: Optional[int] = None
    pickup_lat: float
    pickup_lng: float
    pickup_address: str
    dropoff_lat: float
    dropoff_lng: float
    dropoff_address: str
    seats_booked: int
    agreed_price: float
    status: BookingStatus
    payment_status: PaymentStatus
    payment_intent_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ── Payments ──────────────────────────────────────────────────────────


class PaymentIntentRequest(BaseModel):
    booking_id: int


class PaymentIntentResponse(BaseModel):
    payment_intent_id: str
    client_secret: Optional[str] = None
    amount: int
    currency: str
    status: str


class RefundRequest(BaseModel):
    booking_id: int


class PaymentStatusResponse(BaseModel):
    booking_id: int
    payment_status: PaymentStatus
    agreed_price: float
    payment_intent_id: Optional[str] = None
    processor_status: Optional[str] = None


# ── Ratings ───────────────────────────────────────────────────────────


class RatingCreateRequest(BaseModel):
    booking_id: int
    stars: int
    ratee_id: Optional[int] = None
    review: Optional[str] = Field(None, max_length=2000)


class RatingResponse(BaseModel):
    id: int
    booking_id: int
    rater_id: int
    ratee_id: int
    stars: int
    review: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class UserRatingsResponse(BaseModel):
    ratings: list[RatingResponse]
    average_rating: float
    total_ratings: int
    total_rides: int


# ── Messages ──────────────────────────────────────────────────────────


class MessageCreateRequest(BaseModel):
    receiver_id: int
    content: str = Field(..., max_length=4000)
    ride_id: Optional[int] = None
    ride_request_id: Optional[int] = None


class MessageResponse(BaseModel):
    id: int
    sender_id: int
    receiver_id: int
    content: str
    ride_id: Optional[int] = None
    ride_request_id: Optional[int] = None
    sent_at: Optional[datetime] = None
    read_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ConversationResponse(BaseModel):
    user: PublicUserResponse
    last_message: MessageResponse
    unread_count: int


# ── Misc ──────────────────────────────────────────────────────────────


class AddressCandidateResponse(BaseModel):
    label: str
    latitude: float
    longitude: float

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    kind: str
