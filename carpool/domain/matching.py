"""
Ride / Request Match Scoring
============================

Heuristic compatibility score in ``[0, 1]`` between a driver's ride and a
rider's request:

    score = 0.5 x time_fit + 0.25 x price_fit + 0.25 x route_fit

* **time_fit**  -- ``max(0, 1 - dt / (2 x W))`` where ``dt`` is the gap
  between departure and desired time and ``W`` the rider's flexibility window.
* **price_fit** -- ``min(1, max_price / price_per_seat)``; 1 without a cap.
* **route_fit** -- mean of ``max(0, 1 - d / 5 km)`` for ride start vs pickup
  and ride end vs dropoff (haversine).

The scorer is duck-typed: *ride* needs ``departure_time``, ``price_per_seat``,
``start_lat/lng`` and ``end_lat/lng``; *request* needs ``desired_time``,
``time_flexibility``, ``max_price``, ``pickup_lat/lng`` and
``dropoff_lat/lng``.  ORM rows satisfy both.

Complexity: O(1) per pair, O(N log N) to rank N candidates.  Nothing is
cached; every query re-scores the current records.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from .distance import haversine_m

TIME_WEIGHT = 0.5
PRICE_WEIGHT = 0.25
ROUTE_WEIGHT = 0.25

DEFAULT_ROUTE_CUTOFF_M = 5000.0
DEFAULT_THRESHOLD = 0.30


@dataclass
class Match:
    candidate: Any
    score: float
    remaining_seats: Optional[int] = None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def time_score(
    departure_time: datetime, desired_time: datetime, flexibility_minutes: int
) -> float:
    delta_ms = abs(
        (_as_utc(departure_time) - _as_utc(desired_time)).total_seconds()
    ) * 1000
    window_ms = flexibility_minutes * 60 * 1000
    if window_ms <= 0:
        return 1.0 if delta_ms == 0 else 0.0
    return max(0.0, 1 - delta_ms / (2 * window_ms))


def price_score(price_per_seat: float, max_price: Optional[float]) -> float:
    if max_price is None:
        return 1.0
    if price_per_seat <= 0:
        return 1.0
    return min(1.0, max_price / price_per_seat)


def route_score(
    ride_start: tuple[float, float],
    ride_end: tuple[float, float],
    pickup: tuple[float, float],
    dropoff: tuple[float, float],
    cutoff_m: float = DEFAULT_ROUTE_CUTOFF_M,
) -> float:
    start_gap = haversine_m(ride_start[0], ride_start[1], pickup[0], pickup[1])
    end_gap = haversine_m(ride_end[0], ride_end[1], dropoff[0], dropoff[1])
    start_fit = max(0.0, 1 - start_gap / cutoff_m)
    end_fit = max(0.0, 1 - end_gap / cutoff_m)
    return (start_fit + end_fit) / 2


def score(ride: Any, request: Any, cutoff_m: float = DEFAULT_ROUTE_CUTOFF_M) -> float:
    """Combined match score for one ride against one request."""
    t = time_score(ride.departure_time, request.desired_time, request.time_flexibility)
    p = price_score(ride.price_per_seat, request.max_price)
    r = route_score(
        (ride.start_lat, ride.start_lng),
        (ride.end_lat, ride.end_lng),
        (request.pickup_lat, request.pickup_lng),
        (request.dropoff_lat, request.dropoff_lng),
        cutoff_m,
    )
    return TIME_WEIGHT * t + PRICE_WEIGHT * p + ROUTE_WEIGHT * r


def rank_rides(
    request: Any,
    rides: Iterable[Any],
    remaining: Callable[[Any], int],
    threshold: float = DEFAULT_THRESHOLD,
    cutoff_m: float = DEFAULT_ROUTE_CUTOFF_M,
) -> list[Match]:
    """Rank candidate rides for *request*.

    Rides without enough remaining seats are skipped before scoring; the rest
    are kept only above *threshold*, best first.
    """
    matches: list[Match] = []
    for ride in rides:
        seats = remaining(ride)
        if seats < request.seats_needed:
            continue
        s = score(ride, request, cutoff_m)
        if s > threshold:
            matches.append(Match(candidate=ride, score=s, remaining_seats=seats))
    matches.sort(key=lambda m: m.score, reverse=True)
    return matches


def rank_requests(
    ride: Any,
    requests: Iterable[Any],
    remaining_seats: int,
    threshold: float = DEFAULT_THRESHOLD,
    cutoff_m: float = DEFAULT_ROUTE_CUTOFF_M,
) -> list[Match]:
    """Rank open requests for *ride*; mirror image of ``rank_rides``."""
    matches: list[Match] = []
    for request in requests:
        if remaining_seats < request.seats_needed:
            continue
        s = score(ride, request, cutoff_m)
        if s > threshold:
            matches.append(
                Match(candidate=request, score=s, remaining_seats=remaining_seats)
            )
    matches.sort(key=lambda m: m.score, reverse=True)
    return matches
