"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 6 sample users (drivers, riders and one of each)
  - 5 upcoming rides around Pittsburgh
  - 4 open ride requests, most of which match one of the rides
  - 1 completed booking with a rating, 1 pending booking
  - a short conversation between a rider and a driver

Every seeded user has the password ``password123``.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import text

from carpool.domain.enums import (
    BookingStatus,
    PaymentStatus,
    RequestStatus,
    RideStatus,
    RouteFlexibility,
    UserRole,
    VerificationStatus,
)
from carpool.infrastructure.database import async_session_factory, engine
from carpool.infrastructure.models import (
    BookingModel,
    MessageModel,
    RatingModel,
    RideModel,
    RideRequestModel,
    UserModel,
)
from carpool.infrastructure.security import hash_password

PLACES = {
    "downtown": (40.4406, -79.9959, "Market Square, Pittsburgh, PA"),
    "airport": (40.4915, -80.2329, "Pittsburgh International Airport, PA"),
    "oakland": (40.4443, -79.9532, "Oakland, Pittsburgh, PA"),
    "shadyside": (40.4541, -79.9353, "Shadyside, Pittsburgh, PA"),
    "cranberry": (40.6848, -80.1070, "Cranberry Township, PA"),
    "southside": (40.4285, -79.9745, "South Side Flats, Pittsburgh, PA"),
    "monroeville": (40.4212, -79.7881, "Monroeville Mall, PA"),
}

USERS = [
    {"name": "Alex Kowalski", "email": "alex@example.com", "phone": "+14125550001",
     "role": UserRole.DRIVER, "vehicle": ("Honda", "Civic", 2019, "PA-KLM123")},
    {"name": "Jordan Lee", "email": "jordan@example.com", "phone": "+14125550002",
     "role": UserRole.DRIVER, "vehicle": ("Toyota", "RAV4", 2022, "PA-XYZ789")},
    {"name": "Casey Morgan", "email": "casey@example.com", "phone": "+14125550003",
     "role": UserRole.BOTH, "vehicle": ("Subaru", "Outback", 2020, "PA-CMG456")},
    {"name": "Priya Raman", "email": "priya@example.com", "phone": "+14125550004",
     "role": UserRole.RIDER, "vehicle": None},
    {"name": "Sam Okafor", "email": "sam@example.com", "phone": "+14125550005",
     "role": UserRole.RIDER, "vehicle": None},
    {"name": "Taylor Brooks", "email": "taylor@example.com", "phone": "+14125550006",
     "role": UserRole.RIDER, "vehicle": None},
]


def _at(days: int, hour: int, minute: int = 0) -> datetime:
    base = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return base + timedelta(days=days, hours=hour, minutes=minute)


def _ride(driver, start, end, when, seats, price, flex=RouteFlexibility.FLEXIBLE,
          status=RideStatus.ACTIVE):
    s, e = PLACES[start], PLACES[end]
    return RideModel(
        driver_id=driver.id,
        start_lat=s[0], start_lng=s[1], start_address=s[2],
        end_lat=e[0], end_lng=e[1], end_address=e[2],
        departure_time=when,
        available_seats=seats,
        price_per_seat=price,
        route_flexibility=flex,
        status=status,
    )


def _request(rider, pickup, dropoff, when, seats=1, max_price=None, flex=30,
             status=RequestStatus.OPEN):
    p, d = PLACES[pickup], PLACES[dropoff]
    return RideRequestModel(
        rider_id=rider.id,
        pickup_lat=p[0], pickup_lng=p[1], pickup_address=p[2],
        dropoff_lat=d[0], dropoff_lng=d[1], dropoff_address=d[2],
        desired_time=when,
        time_flexibility=flex,
        seats_needed=seats,
        max_price=max_price,
        status=status,
    )


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Users ─────────────────────────────────────────────────────
        password_hash = hash_password("password123")
        users = []
        for u in USERS:
            m = UserModel(
                name=u["name"],
                email=u["email"],
                phone=u["phone"],
                password_hash=password_hash,
                role=u["role"],
                verification_status=VerificationStatus.VERIFIED,
                rating_sum=0,
                rating_count=0,
                total_rides=0,
            )
            if u["vehicle"]:
                m.vehicle_make, m.vehicle_model, m.vehicle_year, m.license_plate = u["vehicle"]
            session.add(m)
            users.append(m)
        await session.flush()
        alex, jordan, casey, priya, sam, taylor = users
        print(f"  Created {len(users)} users")

        # ── Rides ─────────────────────────────────────────────────────
        rides = [
            _ride(alex, "downtown", "airport", _at(1, 7, 30), 3, 18.0),
            _ride(jordan, "oakland", "airport", _at(1, 9), 4, 20.0),
            _ride(casey, "shadyside", "monroeville", _at(2, 17, 15), 2, 9.5),
            _ride(alex, "cranberry", "downtown", _at(3, 8), 3, 12.0, RouteFlexibility.RIGID),
            _ride(jordan, "southside", "oakland", _at(-2, 8), 3, 6.0, status=RideStatus.COMPLETED),
        ]
        session.add_all(rides)
        await session.flush()
        print(f"  Created {len(rides)} rides")

        # ── Ride requests ─────────────────────────────────────────────
        requests = [
            _request(priya, "downtown", "airport", _at(1, 7, 45), max_price=20.0),
            _request(sam, "oakland", "airport", _at(1, 8, 50), seats=2, max_price=25.0),
            _request(taylor, "shadyside", "monroeville", _at(2, 17), max_price=8.0, flex=45),
            _request(casey, "cranberry", "downtown", _at(3, 8, 10), max_price=15.0),
        ]
        session.add_all(requests)
        await session.flush()
        print(f"  Created {len(requests)} ride requests")

        # ── Bookings and a rating ─────────────────────────────────────
        past_ride = rides[4]
        done = BookingModel(
            ride_id=past_ride.id,
            rider_id=taylor.id,
            pickup_lat=past_ride.start_lat, pickup_lng=past_ride.start_lng,
            pickup_address=past_ride.start_address,
            dropoff_lat=past_ride.end_lat, dropoff_lng=past_ride.end_lng,
            dropoff_address=past_ride.end_address,
            seats_booked=1,
            agreed_price=past_ride.price_per_seat,
            status=BookingStatus.COMPLETED,
            payment_status=PaymentStatus.CHARGED,
        )
        pending = BookingModel(
            ride_id=rides[0].id,
            rider_id=priya.id,
            ride_request_id=requests[0].id,
            pickup_lat=requests[0].pickup_lat, pickup_lng=requests[0].pickup_lng,
            pickup_address=requests[0].pickup_address,
            dropoff_lat=requests[0].dropoff_lat, dropoff_lng=requests[0].dropoff_lng,
            dropoff_address=requests[0].dropoff_address,
            seats_booked=1,
            agreed_price=rides[0].price_per_seat,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.HOLD,
        )
        requests[0].status = RequestStatus.MATCHED
        session.add_all([done, pending])
        await session.flush()

        session.add(
            RatingModel(
                booking_id=done.id,
                rater_id=taylor.id,
                ratee_id=jordan.id,
                stars=5,
                review="On time and friendly.",
            )
        )
        jordan.rating_sum, jordan.rating_count = 5, 1
        jordan.total_rides = 1
        taylor.total_rides = 1
        print("  Created 2 bookings and 1 rating")

        # ── Messages ──────────────────────────────────────────────────
        session.add_all([
            MessageModel(sender_id=priya.id, receiver_id=alex.id, ride_id=rides[0].id,
                         content="Hi! I booked a seat for tomorrow's airport run."),
            MessageModel(sender_id=alex.id, receiver_id=priya.id, ride_id=rides[0].id,
                         content="Great, I'll pick you up at Market Square at 7:30."),
        ])
        print("  Created 2 messages")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
