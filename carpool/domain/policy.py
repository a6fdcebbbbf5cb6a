"""
Authorisation policy.

Ownership and role checks go through ``authorize(actor, resource, action)``,
backed by one table of action -> predicate.  A denied check raises
``Forbidden`` with an action-specific message.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Optional

from .enums import DRIVER_ROLES, RIDER_ROLES, UserRole
from .errors import Forbidden


class Action(str, enum.Enum):
    POST_RIDE = "post_ride"
    MANAGE_RIDE = "manage_ride"
    POST_REQUEST = "post_request"
    MANAGE_REQUEST = "manage_request"
    BOOK_RIDE = "book_ride"
    VIEW_BOOKING = "view_booking"
    CONFIRM_BOOKING = "confirm_booking"
    COMPLETE_BOOKING = "complete_booking"
    CANCEL_BOOKING = "cancel_booking"
    RATE_BOOKING = "rate_booking"
    PAY_BOOKING = "pay_booking"
    READ_MESSAGE = "read_message"


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: Optional[UserRole] = None


@dataclass(frozen=True)
class Resource:
    """What is being acted on, reduced to the ids the rules need.

    ``owner_id`` is the ride's driver, the request's rider or the message's
    receiver; bookings carry both ``rider_id`` and ``driver_id``.
    """

    owner_id: Optional[int] = None
    rider_id: Optional[int] = None
    driver_id: Optional[int] = None

    @classmethod
    def booking(cls, rider_id: int, driver_id: int) -> "Resource":
        return cls(rider_id=rider_id, driver_id=driver_id)


def _is_owner(actor: Actor, res: Resource) -> bool:
    return actor.user_id == res.owner_id


def _is_driver(actor: Actor, res: Resource) -> bool:
    return actor.user_id == res.driver_id


def _is_rider(actor: Actor, res: Resource) -> bool:
    return actor.user_id == res.rider_id


def _is_party(actor: Actor, res: Resource) -> bool:
    return _is_rider(actor, res) or _is_driver(actor, res)


_Rule = Callable[[Actor, Resource], bool]

_RULES: dict[Action, tuple[_Rule, str]] = {
    Action.POST_RIDE: (
        lambda a, r: a.role in DRIVER_ROLES,
        "Only drivers can post rides",
    ),
    Action.MANAGE_RIDE: (_is_owner, "You can only manage your own rides"),
    Action.POST_REQUEST: (
        lambda a, r: a.role in RIDER_ROLES,
        "Only riders can post ride requests",
    ),
    Action.MANAGE_REQUEST: (_is_owner, "You can only manage your own ride requests"),
    Action.BOOK_RIDE: (
        lambda a, r: not _is_owner(a, r),
        "You cannot book your own ride",
    ),
    Action.VIEW_BOOKING: (_is_party, "You do not have access to this booking"),
    Action.CONFIRM_BOOKING: (_is_driver, "Only the driver can confirm this booking"),
    Action.COMPLETE_BOOKING: (_is_driver, "Only the driver can complete this booking"),
    Action.CANCEL_BOOKING: (
        _is_party,
        "You do not have permission to cancel this booking",
    ),
    Action.RATE_BOOKING: (
        _is_party,
        "You can only rate bookings you were involved in",
    ),
    Action.PAY_BOOKING: (_is_rider, "You can only pay for your own bookings"),
    Action.READ_MESSAGE: (_is_owner, "You can only mark your own messages as read"),
}


def is_allowed(actor: Actor, resource: Resource, action: Action) -> bool:
    rule, _ = _RULES[action]
    return rule(actor, resource)


def authorize(actor: Actor, resource: Resource, action: Action) -> None:
    """Raise ``Forbidden`` unless *actor* may perform *action* on *resource*."""
    rule, message = _RULES[action]
    if not rule(actor, resource):
        raise Forbidden(message)
