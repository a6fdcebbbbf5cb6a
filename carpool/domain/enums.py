"""Domain enumerations and state-transition rules."""

import enum


class UserRole(str, enum.Enum):
    RIDER = "RIDER"
    DRIVER = "DRIVER"
    BOTH = "BOTH"


class VerificationStatus(str, enum.Enum):
    UNVERIFIED = "UNVERIFIED"
    VERIFIED = "VERIFIED"


class RouteFlexibility(str, enum.Enum):
    RIGID = "RIGID"
    FLEXIBLE = "FLEXIBLE"


class RideStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class RequestStatus(str, enum.Enum):
    OPEN = "OPEN"
    MATCHED = "MATCHED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    HOLD = "HOLD"
    CHARGED = "CHARGED"
    REFUNDED = "REFUNDED"


# State machine: maps current status -> set of valid next statuses
BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}

# Bookings in these states hold seats on their ride
SEAT_HOLDING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)

DRIVER_ROLES = (UserRole.DRIVER, UserRole.BOTH)
RIDER_ROLES = (UserRole.RIDER, UserRole.BOTH)
