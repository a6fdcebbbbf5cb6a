"""
Booking lifecycle rules.

Patterns used
-------------
- **State Pattern** on bookings: ``transition`` enforces
  PENDING -> CONFIRMED -> COMPLETED, with PENDING | CONFIRMED -> CANCELLED.
  COMPLETED and CANCELLED are terminal.
"""

from __future__ import annotations

from .enums import (
    BOOKING_TRANSITIONS,
    BookingStatus,
    PaymentStatus,
)
from .errors import Conflict


class InvalidStateTransition(Conflict):
    """Raised when a booking status change violates the state machine."""


# Payment status that accompanies each terminal booking status
PAYMENT_ON_TRANSITION: dict[BookingStatus, PaymentStatus] = {
    BookingStatus.COMPLETED: PaymentStatus.CHARGED,
    BookingStatus.CANCELLED: PaymentStatus.REFUNDED,
}


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in BOOKING_TRANSITIONS.get(BookingStatus(current), set())


def transition(current: BookingStatus, target: BookingStatus) -> BookingStatus:
    """Return *target* if the move from *current* is legal, else raise."""
    current = BookingStatus(current)
    if not can_transition(current, target):
        raise InvalidStateTransition(
            f"Cannot move booking from {current.value} to {target.value}"
        )
    return target


def is_terminal(status: BookingStatus) -> bool:
    return not BOOKING_TRANSITIONS[BookingStatus(status)]

