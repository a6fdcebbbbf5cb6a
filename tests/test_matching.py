"""Unit tests for the ride / request match scorer."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from carpool.domain.distance import haversine_m
from carpool.domain.matching import (
    price_score,
    rank_requests,
    rank_rides,
    route_score,
    score,
    time_score,
)

T0 = datetime(2026, 5, 1, 8, 0, tzinfo=timezone.utc)
DOWNTOWN = (40.4406, -79.9959)
AIRPORT = (40.4915, -80.2329)


def make_ride(**kw):
    base = dict(
        id=1,
        departure_time=T0,
        price_per_seat=10.0,
        start_lat=DOWNTOWN[0],
        start_lng=DOWNTOWN[1],
        end_lat=AIRPORT[0],
        end_lng=AIRPORT[1],
        available_seats=3,
    )
    base.update(kw)
    return SimpleNamespace(**base)


def make_request(**kw):
    base = dict(
        id=1,
        desired_time=T0,
        time_flexibility=30,
        max_price=10.0,
        seats_needed=1,
        pickup_lat=DOWNTOWN[0],
        pickup_lng=DOWNTOWN[1],
        dropoff_lat=AIRPORT[0],
        dropoff_lng=AIRPORT[1],
    )
    base.update(kw)
    return SimpleNamespace(**base)


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_m(40.44, -79.99, 40.44, -79.99) == 0.0

    def test_known_distance(self):
        # Downtown Pittsburgh -> PIT airport is roughly 21 km as the crow flies
        d = haversine_m(*DOWNTOWN, *AIRPORT)
        assert 20_000 < d < 25_000

    def test_symmetric(self):
        d1 = haversine_m(40.0, -80.0, 41.0, -79.0)
        d2 = haversine_m(41.0, -79.0, 40.0, -80.0)
        assert abs(d1 - d2) < 1e-6


class TestTimeScore:
    def test_equal_times_score_one(self):
        assert time_score(T0, T0, 30) == 1.0

    def test_half_window_scores_three_quarters(self):
        assert time_score(T0 + timedelta(minutes=15), T0, 30) == pytest.approx(0.75)

    def test_zero_at_twice_the_window(self):
        assert time_score(T0 + timedelta(minutes=60), T0, 30) == 0.0
        assert time_score(T0 - timedelta(hours=5), T0, 30) == 0.0

    def test_zero_window_only_matches_exact_time(self):
        assert time_score(T0, T0, 0) == 1.0
        assert time_score(T0 + timedelta(seconds=1), T0, 0) == 0.0

    def test_naive_datetimes_are_taken_as_utc(self):
        assert time_score(T0.replace(tzinfo=None), T0, 30) == 1.0


class TestPriceScore:
    def test_no_cap_scores_one(self):
        assert price_score(50.0, None) == 1.0

    def test_price_within_cap_scores_one(self):
        assert price_score(8.0, 10.0) == 1.0

    def test_price_over_cap_scales_down(self):
        assert price_score(20.0, 10.0) == pytest.approx(0.5)

    def test_free_ride_scores_one(self):
        assert price_score(0.0, 5.0) == 1.0


class TestRouteScore:
    def test_coincident_endpoints_score_one(self):
        assert route_score(DOWNTOWN, AIRPORT, DOWNTOWN, AIRPORT) == 1.0

    def test_both_far_scores_zero(self):
        far = (41.5, -81.7)  # Cleveland
        assert route_score(DOWNTOWN, AIRPORT, far, far) == 0.0

    def test_one_far_endpoint_averages(self):
        far = (41.5, -81.7)
        assert route_score(DOWNTOWN, AIRPORT, DOWNTOWN, far) == pytest.approx(0.5)


class TestScore:
    def test_perfect_match_scores_one(self):
        assert score(make_ride(), make_request()) == pytest.approx(1.0)

    def test_deterministic(self):
        ride = make_ride(departure_time=T0 + timedelta(minutes=20), price_per_seat=14.0)
        req = make_request(pickup_lat=40.45)
        assert score(ride, req) == score(ride, req)

    def test_bounded(self):
        ride = make_ride(
            departure_time=T0 + timedelta(days=3),
            price_per_seat=1000.0,
            start_lat=0.0, start_lng=0.0, end_lat=1.0, end_lng=1.0,
        )
        s = score(ride, make_request(max_price=1.0))
        assert 0.0 <= s <= 1.0

    def test_weights(self):
        # Perfect time and route, price at half: 0.5 + 0.125 + 0.25
        ride = make_ride(price_per_seat=20.0)
        assert score(ride, make_request(max_price=10.0)) == pytest.approx(0.875)


class TestRanking:
    def test_rank_rides_orders_best_first(self):
        good = make_ride(id=1)
        ok = make_ride(id=2, departure_time=T0 + timedelta(minutes=30))
        ranked = rank_rides(make_request(), [ok, good], remaining=lambda r: 3)
        assert [m.candidate.id for m in ranked] == [1, 2]
        assert ranked[0].score >= ranked[1].score

    def test_rank_rides_drops_low_scores(self):
        far = (41.5, -81.7)
        bad = make_ride(
            departure_time=T0 + timedelta(hours=6),
            start_lat=far[0], start_lng=far[1], end_lat=far[0], end_lng=far[1],
            price_per_seat=100.0,
        )
        assert rank_rides(make_request(), [bad], remaining=lambda r: 3) == []

    def test_rank_rides_skips_rides_without_seats(self):
        full = make_ride(id=7)
        ranked = rank_rides(
            make_request(seats_needed=2), [full], remaining=lambda r: 1
        )
        assert ranked == []

    def test_rank_rides_reports_remaining_seats(self):
        ranked = rank_rides(make_request(), [make_ride()], remaining=lambda r: 2)
        assert ranked[0].remaining_seats == 2

    def test_rank_requests_skips_requests_needing_too_many_seats(self):
        small = make_request(id=1, seats_needed=1)
        big = make_request(id=2, seats_needed=4)
        ranked = rank_requests(make_ride(), [big, small], remaining_seats=2)
        assert [m.candidate.id for m in ranked] == [1]

    def test_threshold_is_exclusive(self):
        ranked = rank_rides(
            make_request(), [make_ride()], remaining=lambda r: 3, threshold=1.0
        )
        assert ranked == []
