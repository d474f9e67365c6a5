"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from rideshare.domain.enums import (
    MAX_PASSENGERS,
    VEHICLE_CAPACITY,
    CancellerRole,
    ParticipantStatus,
    RideStatus,
    VehicleType,
)


# ── Requests ──────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    start_location: str = Field(..., min_length=1, max_length=255)
    end_location: str = Field(..., min_length=1, max_length=255)
    start_date: date
    start_time: time = Field(..., description="Campus-local time of departure.")
    total_fare: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    vehicle_type: VehicleType
    max_passengers: int = Field(..., ge=1, le=MAX_PASSENGERS)

    @field_validator("start_time")
    @classmethod
    def _campus_local(cls, value: time) -> time:
        if value.tzinfo is not None:
            raise ValueError("start_time is campus-local and must not carry an offset")
        return value

    @model_validator(mode="after")
    def _fits_vehicle(self) -> "RideCreateRequest":
        capacity = VEHICLE_CAPACITY[self.vehicle_type]
        if self.max_passengers > capacity:
            raise ValueError(
                f"A {self.vehicle_type.value} carries at most {capacity} passengers"
            )
        return self


# ── Responses ─────────────────────────────────────────────────────────


class UserSummary(BaseModel):
    id: int
    name: str
    rating: Optional[float] = None
    credibility_score: Optional[float] = None

    model_config = {"from_attributes": True}


class VehicleResponse(BaseModel):
    id: int
    vehicle_type: VehicleType

    model_config = {"from_attributes": True}


class RideResponse(BaseModel):
    id: int
    driver_id: int
    vehicle_id: Optional[int] = None
    start_location: str
    end_location: str
    start_date: date
    start_time: time
    departs_at: datetime
    total_fare: float
    max_passengers: int
    status: RideStatus
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ParticipantResponse(BaseModel):
    id: int
    ride_id: int
    user_id: int
    status: ParticipantStatus
    share_fare: float
    booking_time: datetime

    model_config = {"from_attributes": True}


class ParticipantDetail(ParticipantResponse):
    user: UserSummary


class RideSummary(RideResponse):
    """Ride with the people around it; needs driver/vehicle/participants loaded."""

    driver: UserSummary
    vehicle: Optional[VehicleResponse] = None
    booked_count: int
    seats_available: int


class RideDetailResponse(RideSummary):
    participants: list[ParticipantDetail] = []


class JoinedRideResponse(RideSummary):
    participation_status: ParticipantStatus
    share_fare: float


class MyRidesResponse(BaseModel):
    hosted: list[RideSummary] = []
    joined: list[JoinedRideResponse] = []


class CancellationResponse(BaseModel):
    cancelled: bool = True
    ride_id: int
    role: CancellerRole
    driver_cancelled: bool
    ride_status: RideStatus
    credibility_penalty: float
    hours_to_departure: float
    penalty: Optional[float] = None
    transferred: Optional[bool] = None
    new_driver_id: Optional[int] = None

    model_config = {"from_attributes": True}


class UserStatsResponse(BaseModel):
    user_id: int
    total_rides: int
    rides_hosted: int
    rides_joined: int
    cancellation_count: int
    credibility_score: float

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    error: str
    detail: str
    retryable: bool = False
