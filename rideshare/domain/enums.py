"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    OPEN = "open"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.OPEN: {RideStatus.ACTIVE, RideStatus.CANCELLED},
    # ACTIVE -> OPEN only when a cancellation reopens the ride
    RideStatus.ACTIVE: {RideStatus.COMPLETED, RideStatus.CANCELLED, RideStatus.OPEN},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}

# Rides a participant can still book into or cancel out of
LIVE_STATUSES = (RideStatus.OPEN, RideStatus.ACTIVE)


class ParticipantStatus(str, enum.Enum):
    BOOKED = "booked"
    CANCELLED = "cancelled"


class VehicleType(str, enum.Enum):
    CAR = "car"
    SUV = "suv"
    AUTO = "auto"


# Max riders per vehicle, host included
VEHICLE_CAPACITY: dict[VehicleType, int] = {
    VehicleType.CAR: 4,
    VehicleType.SUV: 6,
    VehicleType.AUTO: 3,
}

MAX_PASSENGERS = 6


class CancellerRole(str, enum.Enum):
    DRIVER = "driver"
    PARTICIPANT = "participant"
