"""Unit tests for the booking state machine and the authorisation policy."""

import pytest

from carpool.domain.entities import (
    PAYMENT_ON_TRANSITION,
    InvalidStateTransition,
    can_transition,
    is_terminal,
    transition,
)
from carpool.domain.enums import BookingStatus, PaymentStatus, UserRole
from carpool.domain.errors import Conflict, Forbidden
from carpool.domain.policy import Action, Actor, Resource, authorize, is_allowed


class TestBookingStateMachine:
    # ── Valid transitions ─────────────────────────────────────────

    def test_pending_to_confirmed(self):
        assert transition(BookingStatus.PENDING, BookingStatus.CONFIRMED) == BookingStatus.CONFIRMED

    def test_pending_to_cancelled(self):
        assert transition(BookingStatus.PENDING, BookingStatus.CANCELLED) == BookingStatus.CANCELLED

    def test_confirmed_to_completed(self):
        assert transition(BookingStatus.CONFIRMED, BookingStatus.COMPLETED) == BookingStatus.COMPLETED

    def test_confirmed_to_cancelled(self):
        assert can_transition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED)

    def test_accepts_raw_string_status(self):
        assert transition("PENDING", BookingStatus.CONFIRMED) == BookingStatus.CONFIRMED

    # ── Invalid transitions ───────────────────────────────────────

    def test_confirmed_cannot_be_confirmed_again(self):
        with pytest.raises(InvalidStateTransition):
            transition(BookingStatus.CONFIRMED, BookingStatus.CONFIRMED)

    @pytest.mark.parametrize("terminal", [BookingStatus.COMPLETED, BookingStatus.CANCELLED])
    @pytest.mark.parametrize("target", list(BookingStatus))
    def test_terminal_states_are_final(self, terminal, target):
        assert is_terminal(terminal)
        with pytest.raises(InvalidStateTransition):
            transition(terminal, target)

    def test_invalid_transition_is_a_conflict(self):
        with pytest.raises(Conflict) as exc:
            transition(BookingStatus.COMPLETED, BookingStatus.CANCELLED)
        assert exc.value.status_code == 409
        assert "COMPLETED" in exc.value.message

    def test_pending_is_not_terminal(self):
        assert not is_terminal(BookingStatus.PENDING)

    def test_payment_follows_terminal_status(self):
        assert PAYMENT_ON_TRANSITION[BookingStatus.COMPLETED] == PaymentStatus.CHARGED
        assert PAYMENT_ON_TRANSITION[BookingStatus.CANCELLED] == PaymentStatus.REFUNDED


class TestPolicy:
    booking = Resource.booking(rider_id=1, driver_id=2)

    def test_only_driver_confirms(self):
        authorize(Actor(2), self.booking, Action.CONFIRM_BOOKING)
        with pytest.raises(Forbidden):
            authorize(Actor(1), self.booking, Action.CONFIRM_BOOKING)

    def test_only_driver_completes(self):
        assert is_allowed(Actor(2), self.booking, Action.COMPLETE_BOOKING)
        assert not is_allowed(Actor(1), self.booking, Action.COMPLETE_BOOKING)

    def test_either_party_cancels_views_and_rates(self):
        for action in (Action.CANCEL_BOOKING, Action.VIEW_BOOKING, Action.RATE_BOOKING):
            assert is_allowed(Actor(1), self.booking, action)
            assert is_allowed(Actor(2), self.booking, action)
            assert not is_allowed(Actor(3), self.booking, action)

    def test_only_rider_pays(self):
        assert is_allowed(Actor(1), self.booking, Action.PAY_BOOKING)
        assert not is_allowed(Actor(2), self.booking, Action.PAY_BOOKING)

    def test_driver_cannot_book_own_ride(self):
        ride = Resource(owner_id=2)
        assert not is_allowed(Actor(2), ride, Action.BOOK_RIDE)
        assert is_allowed(Actor(1), ride, Action.BOOK_RIDE)

    @pytest.mark.parametrize(
        "role,allowed",
        [(UserRole.DRIVER, True), (UserRole.BOTH, True), (UserRole.RIDER, False)],
    )
    def test_posting_rides_needs_driver_role(self, role, allowed):
        assert is_allowed(Actor(1, role), Resource(), Action.POST_RIDE) is allowed

    @pytest.mark.parametrize(
        "role,allowed",
        [(UserRole.RIDER, True), (UserRole.BOTH, True), (UserRole.DRIVER, False)],
    )
    def test_posting_requests_needs_rider_role(self, role, allowed):
        assert is_allowed(Actor(1, role), Resource(), Action.POST_REQUEST) is allowed

    def test_forbidden_message_names_the_rule(self):
        with pytest.raises(Forbidden) as exc:
            authorize(Actor(9), Resource(owner_id=1), Action.MANAGE_RIDE)
        assert exc.value.message == "You can only manage your own rides"
