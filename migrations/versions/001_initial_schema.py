"""Initial schema: users, rides, ride requests, bookings, ratings, messages.

Revision ID: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated: bool = True) -> list[sa.Column]:
    cols = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    ]
    if updated:
        cols.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                server_default=sa.func.now(),
            )
        )
    return cols


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone", sa.String(32), unique=True, nullable=False),
        sa.Column("password_hash", sa.String(128), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column(
            "role",
            sa.Enum("RIDER", "DRIVER", "BOTH", name="userrole"),
            nullable=False,
            server_default="RIDER",
        ),
        sa.Column("profile_photo", sa.String(512), nullable=True),
        sa.Column(
            "verification_status",
            sa.Enum("UNVERIFIED", "VERIFIED", name="verificationstatus"),
            nullable=False,
            server_default="UNVERIFIED",
        ),
        sa.Column("rating_sum", sa.Integer, nullable=False, server_default="0"),
        sa.Column("rating_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_rides", sa.Integer, nullable=False, server_default="0"),
        sa.Column("driver_license", sa.String(64), nullable=True),
        sa.Column("vehicle_make", sa.String(64), nullable=True),
        sa.Column("vehicle_model", sa.String(64), nullable=True),
        sa.Column("vehicle_year", sa.Integer, nullable=True),
        sa.Column("license_plate", sa.String(16), nullable=True),
        sa.Column("insurance_proof", sa.String(512), nullable=True),
        *_timestamps(),
    )

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("start_lat", sa.Float, nullable=False),
        sa.Column("start_lng", sa.Float, nullable=False),
        sa.Column("start_address", sa.String(255), nullable=False),
        sa.Column("end_lat", sa.Float, nullable=False),
        sa.Column("end_lng", sa.Float, nullable=False),
        sa.Column("end_address", sa.String(255), nullable=False),
        sa.Column("departure_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("available_seats", sa.Integer, nullable=False),
        sa.Column("price_per_seat", sa.Float, nullable=False),
        sa.Column(
            "route_flexibility",
            sa.Enum("RIGID", "FLEXIBLE", name="routeflexibility"),
            nullable=False,
            server_default="FLEXIBLE",
        ),
        sa.Column(
            "status",
            sa.Enum("ACTIVE", "COMPLETED", "CANCELLED", name="ridestatus"),
            nullable=False,
            server_default="ACTIVE",
        ),
        *_timestamps(),
    )
    op.create_index("idx_rides_status_departure", "rides", ["status", "departure_time"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])

    # ── ride_requests ─────────────────────────────────────────────────
    op.create_table(
        "ride_requests",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("rider_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("pickup_address", sa.String(255), nullable=False),
        sa.Column("dropoff_lat", sa.Float, nullable=False),
        sa.Column("dropoff_lng", sa.Float, nullable=False),
        sa.Column("dropoff_address", sa.String(255), nullable=False),
        sa.Column("desired_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("time_flexibility", sa.Integer, nullable=False, server_default="30"),
        sa.Column("seats_needed", sa.Integer, nullable=False, server_default="1"),
        sa.Column("max_price", sa.Float, nullable=True),
        sa.Column(
            "status",
            sa.Enum("OPEN", "MATCHED", "COMPLETED", "CANCELLED", name="requeststatus"),
            nullable=False,
            server_default="OPEN",
        ),
        *_timestamps(),
    )
    op.create_index("idx_requests_status", "ride_requests", ["status"])
    op.create_index("idx_requests_rider", "ride_requests", ["rider_id"])

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column("rider_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "ride_request_id",
            sa.Integer,
            sa.ForeignKey("ride_requests.id"),
            nullable=True,
        ),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("pickup_address", sa.String(255), nullable=False),
        sa.Column("dropoff_lat", sa.Float, nullable=False),
        sa.Column("dropoff_lng", sa.Float, nullable=False),
        sa.Column("dropoff_address", sa.String(255), nullable=False),
        sa.Column("seats_booked", sa.Integer, nullable=False),
        sa.Column("agreed_price", sa.Float, nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "CONFIRMED", "COMPLETED", "CANCELLED", name="bookingstatus"),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column(
            "payment_status",
            sa.Enum("HOLD", "CHARGED", "REFUNDED", name="paymentstatus"),
            nullable=False,
            server_default="HOLD",
        ),
        sa.Column("payment_intent_id", sa.String(255), unique=True, nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_bookings_ride_status", "bookings", ["ride_id", "status"])
    op.create_index("idx_bookings_rider", "bookings", ["rider_id"])

    # ── ratings ───────────────────────────────────────────────────────
    op.create_table(
        "ratings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer, sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("rater_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("ratee_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("stars", sa.Integer, nullable=False),
        sa.Column("review", sa.Text, nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint("booking_id", "rater_id", name="uq_ratings_booking_rater"),
        sa.CheckConstraint("stars BETWEEN 1 AND 5", name="ck_ratings_stars"),
    )
    op.create_index("idx_ratings_ratee", "ratings", ["ratee_id"])

    # ── messages ──────────────────────────────────────────────────────
    op.create_table(
        "messages",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("sender_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("receiver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=True),
        sa.Column(
            "ride_request_id",
            sa.Integer,
            sa.ForeignKey("ride_requests.id"),
            nullable=True,
        ),
        sa.Column(
            "sent_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_messages_pair", "messages", ["sender_id", "receiver_id"])
    op.create_index("idx_messages_receiver", "messages", ["receiver_id"])


def downgrade() -> None:
    op.drop_table("messages")
    op.drop_table("ratings")
    op.drop_table("bookings")
    op.drop_table("ride_requests")
    op.drop_table("rides")
    op.drop_table("users")
    for enum_name in (
        "paymentstatus",
        "bookingstatus",
        "requeststatus",
        "ridestatus",
        "routeflexibility",
        "verificationstatus",
        "userrole",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
