"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``users``              -- riders and hosts (owned by the identity service)
* ``vehicles``           -- one vehicle per user, upserted on ride creation
* ``rides``              -- hosted rides and their lifecycle status
* ``ride_participants``  -- join records, unique per (ride, user)
* ``ride_cancellations`` -- append-only cancellation audit log

Indexes
-------
* **B-Tree** on ``status``, ``driver_id`` and ``departs_at`` for search and
  "my rides"; on ``(user_id, status)`` of participants for the single
  active booking check.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Time,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from .database import Base
from rideshare.domain.enums import ParticipantStatus, RideStatus, VehicleType


def _enum(enum_cls, name: str) -> Enum:
    # Persist the lowercase values ("open"), not the member names ("OPEN")
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
    )


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(32), nullable=True)
    rating = Column(Float, default=5.0)
    credibility_score = Column(Float, default=100.0, nullable=False)
    cancellation_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class VehicleModel(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    vehicle_type = Column(_enum(VehicleType, "vehicle_type"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=True)

    start_location = Column(String(255), nullable=False)
    end_location = Column(String(255), nullable=False)

    # As entered by the host (campus-local) ...
    start_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    # ... and combined once into a naive-UTC instant for all comparisons
    departs_at = Column(DateTime, nullable=False)

    total_fare = Column(Numeric(10, 2), nullable=False)
    max_passengers = Column(Integer, nullable=False)
    status = Column(
        _enum(RideStatus, "ride_status"), default=RideStatus.OPEN, nullable=False
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    driver = relationship("UserModel", foreign_keys=[driver_id], lazy="raise")
    vehicle = relationship("VehicleModel", lazy="raise")
    participants = relationship(
        "RideParticipantModel",
        back_populates="ride",
        order_by="RideParticipantModel.booking_time",
        lazy="raise",
    )

    __table_args__ = (
        CheckConstraint("total_fare > 0", name="ck_rides_total_fare_positive"),
        CheckConstraint(
            "max_passengers BETWEEN 1 AND 6", name="ck_rides_max_passengers"
        ),
        Index("idx_rides_status", "status"),
        Index("idx_rides_driver", "driver_id"),
        Index("idx_rides_departs_at", "departs_at"),
    )
    # Fetch server-generated timestamps on flush; rows outlive their session
    __mapper_args__ = {"eager_defaults": True}

    @property
    def booked_participants(self) -> list["RideParticipantModel"]:
        """Requires ``participants`` to be eager-loaded."""
        return [p for p in self.participants if p.status == ParticipantStatus.BOOKED]

    @property
    def booked_count(self) -> int:
        return len(self.booked_participants)

    @property
    def seats_available(self) -> int:
        return max(0, self.max_passengers - (self.booked_count + 1))


class RideParticipantModel(Base):
    __tablename__ = "ride_participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(
        _enum(ParticipantStatus, "participant_status"),
        default=ParticipantStatus.BOOKED,
        nullable=False,
    )
    share_fare = Column(Numeric(10, 2), nullable=False)
    booking_time = Column(DateTime, nullable=False, server_default=func.now())

    ride = relationship("RideModel", back_populates="participants", lazy="raise")
    user = relationship("UserModel", lazy="raise")

    __table_args__ = (
        UniqueConstraint("ride_id", "user_id", name="uq_ride_participant"),
        Index("idx_participants_user_status", "user_id", "status"),
        Index("idx_participants_ride_status", "ride_id", "status"),
    )


class RideCancellationModel(Base):
    __tablename__ = "ride_cancellations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    cancelled_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_cancellations_user", "user_id"),
        Index("idx_cancellations_ride", "ride_id"),
    )
