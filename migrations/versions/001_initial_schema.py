"""Initial schema: users, vehicles, rides, participants, cancellation log.

Revision ID: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("rating", sa.Float, default=5.0),
        sa.Column("credibility_score", sa.Float, nullable=False, server_default="100"),
        sa.Column("cancellation_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── vehicles ──────────────────────────────────────────────────────
    op.create_table(
        "vehicles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("users.id"),
            unique=True,
            nullable=False,
        ),
        sa.Column(
            "vehicle_type",
            sa.Enum("car", "suv", "auto", name="vehicle_type"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "driver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "vehicle_id", sa.Integer, sa.ForeignKey("vehicles.id"), nullable=True
        ),
        sa.Column("start_location", sa.String(255), nullable=False),
        sa.Column("end_location", sa.String(255), nullable=False),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("start_time", sa.Time, nullable=False),
        sa.Column("departs_at", sa.DateTime, nullable=False),
        sa.Column("total_fare", sa.Numeric(10, 2), nullable=False),
        sa.Column("max_passengers", sa.Integer, nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "open",
                "active",
                "completed",
                "cancelled",
                name="ride_status",
            ),
            server_default="open",
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("total_fare > 0", name="ck_rides_total_fare_positive"),
        sa.CheckConstraint(
            "max_passengers BETWEEN 1 AND 6", name="ck_rides_max_passengers"
        ),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])
    op.create_index("idx_rides_departs_at", "rides", ["departs_at"])

    # ── ride_participants ─────────────────────────────────────────────
    op.create_table(
        "ride_participants",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "status",
            sa.Enum("booked", "cancelled", name="participant_status"),
            server_default="booked",
            nullable=False,
        ),
        sa.Column("share_fare", sa.Numeric(10, 2), nullable=False),
        sa.Column(
            "booking_time",
            sa.DateTime,
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("ride_id", "user_id", name="uq_ride_participant"),
    )
    op.create_index(
        "idx_participants_user_status", "ride_participants", ["user_id", "status"]
    )
    op.create_index(
        "idx_participants_ride_status", "ride_participants", ["ride_id", "status"]
    )

    # ── ride_cancellations (append-only) ──────────────────────────────
    op.create_table(
        "ride_cancellations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("cancelled_at", sa.DateTime, nullable=False),
    )
    op.create_index("idx_cancellations_user", "ride_cancellations", ["user_id"])
    op.create_index("idx_cancellations_ride", "ride_cancellations", ["ride_id"])


def downgrade() -> None:
    op.drop_table("ride_cancellations")
    op.drop_table("ride_participants")
    op.drop_table("rides")
    op.drop_table("vehicles")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS participant_status")
    op.execute("DROP TYPE IF EXISTS ride_status")
    op.execute("DROP TYPE IF EXISTS vehicle_type")
