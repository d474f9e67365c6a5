"""
Ride state machine.

    OPEN --start--> ACTIVE --complete--> COMPLETED
      |               |
      +---cancel------+-----> CANCELLED
      ^               |
      +----reopen-----+

COMPLETED and CANCELLED are terminal.  Functions here work on any object
exposing ``status``, ``driver_id`` and ``departs_at`` -- in practice the
``RideModel`` row loaded inside the caller's transaction.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from .enums import RIDE_TRANSITIONS, RideStatus
from .errors import InvalidState, NotRideOwner, TooEarly


def transition(ride, new_status: RideStatus) -> None:
    """Move to *new_status* if the transition is legal, else raise."""
    current = RideStatus(ride.status)
    if new_status not in RIDE_TRANSITIONS.get(current, set()):
        raise InvalidState(
            f"Cannot transition from {current.value} to {new_status.value}"
        )
    ride.status = new_status


def ensure_driver(ride, user_id: int) -> None:
    if ride.driver_id != user_id:
        raise NotRideOwner("Only the ride's driver can do this")


def start(ride, user_id: int, now: datetime) -> None:
    ensure_driver(ride, user_id)
    if RideStatus(ride.status) != RideStatus.OPEN:
        raise InvalidState(f"Cannot start a ride that is {RideStatus(ride.status).value}")
    if now < ride.departs_at:
        raise TooEarly("Can't start before the scheduled departure")
    transition(ride, RideStatus.ACTIVE)


def complete(ride, user_id: int) -> None:
    ensure_driver(ride, user_id)
    if RideStatus(ride.status) != RideStatus.ACTIVE:
        raise InvalidState(
            f"Cannot complete a ride that is {RideStatus(ride.status).value}"
        )
    transition(ride, RideStatus.COMPLETED)


def cancel(ride) -> None:
    transition(ride, RideStatus.CANCELLED)


def reopen(ride) -> None:
    """Put the ride back up for booking; a no-op if it is already open."""
    if RideStatus(ride.status) == RideStatus.OPEN:
        return
    transition(ride, RideStatus.OPEN)


def hand_over(ride, new_driver_id: int) -> None:
    """Succession: *new_driver_id* becomes the host and the ride reopens."""
    reopen(ride)
    ride.driver_id = new_driver_id


def departure_instant(
    start_date: date, start_time: time, utc_offset: timedelta = timedelta(0)
) -> datetime:
    """
    Combine a campus-local date and time-of-day into one naive-UTC instant.

    Computed once at ride creation and stored as ``departs_at``.  The
    time must be naive (campus-local); an offset-aware time is rejected.
    """
    if start_time.tzinfo is not None:
        raise ValueError("start_time must be a campus-local time without an offset")
    local = datetime.combine(start_date, start_time)
    aware = local.replace(tzinfo=timezone(utc_offset))
    return aware.astimezone(timezone.utc).replace(tzinfo=None)


def utcnow() -> datetime:
    """Default clock: naive UTC, matching how ``departs_at`` is stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
