"""
Ride Service -- creation and the driver-driven lifecycle steps.

* ``create``   -- validate, upsert the host's vehicle, store the ride with
  its departure instant computed once.
* ``start``    -- OPEN -> ACTIVE, driver only, not before departure.
* ``complete`` -- ACTIVE -> COMPLETED, driver only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rideshare.domain import lifecycle
from rideshare.domain.enums import MAX_PASSENGERS, VEHICLE_CAPACITY, VehicleType
from rideshare.domain.errors import RideNotFound, UserNotFound, ValidationFailed
from rideshare.domain.fares import CURRENCY_QUANTUM, to_decimal
from rideshare.domain.lifecycle import utcnow
from rideshare.infrastructure.events import RideEventPublisher
from rideshare.infrastructure.locks import ride_key, user_key
from rideshare.infrastructure.models import RideModel
from rideshare.infrastructure.repositories import (
    RideRepository,
    UserRepository,
    VehicleRepository,
)
from rideshare.infrastructure.transactions import run_in_transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RideDraft:
    start_location: str
    end_location: str
    start_date: date
    start_time: time
    total_fare: Decimal
    vehicle_type: VehicleType
    max_passengers: int

    def validate(self) -> None:
        """Reject malformed input before any state is read."""
        if not self.start_location.strip() or not self.end_location.strip():
            raise ValidationFailed("start_location and end_location are required")
        if self.start_time.tzinfo is not None:
            raise ValidationFailed("start_time is campus-local and must not carry an offset")
        if to_decimal(self.total_fare) <= 0:
            raise ValidationFailed("total_fare must be positive")
        if not 1 <= self.max_passengers <= MAX_PASSENGERS:
            raise ValidationFailed(f"max_passengers must be between 1 and {MAX_PASSENGERS}")
        capacity = VEHICLE_CAPACITY[VehicleType(self.vehicle_type)]
        if self.max_passengers > capacity:
            raise ValidationFailed(
                f"A {VehicleType(self.vehicle_type).value} carries at most {capacity} passengers"
            )


class RideService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks,
        events: RideEventPublisher,
        clock: Callable[[], datetime] = utcnow,
        utc_offset: timedelta = timedelta(0),
        attempts: int = 3,
    ):
        self.session_factory = session_factory
        self.locks = locks
        self.events = events
        self.clock = clock
        self.utc_offset = utc_offset
        self.attempts = attempts

    async def create(self, host_id: int, draft: RideDraft) -> RideModel:
        draft.validate()

        async def work(session: AsyncSession) -> RideModel:
            if await UserRepository(session).get_by_id(host_id) is None:
                raise UserNotFound(f"User {host_id} not found")
            vehicle = await VehicleRepository(session).upsert(
                host_id, VehicleType(draft.vehicle_type)
            )
            return await RideRepository(session).create_ride(
                driver_id=host_id,
                vehicle_id=vehicle.id,
                start_location=draft.start_location.strip(),
                end_location=draft.end_location.strip(),
                start_date=draft.start_date,
                start_time=draft.start_time,
                departs_at=lifecycle.departure_instant(
                    draft.start_date, draft.start_time, self.utc_offset
                ),
                total_fare=to_decimal(draft.total_fare).quantize(CURRENCY_QUANTUM),
                max_passengers=draft.max_passengers,
            )

        # The vehicle upsert is keyed on the user
        async with self.locks.hold(user_key(host_id)):
            ride = await run_in_transaction(self.session_factory, work, self.attempts)
        logger.info("User %d created ride %d departing %s", host_id, ride.id, ride.departs_at)
        await self.events.publish("ride.created", ride.id, driver_id=host_id)
        return ride

    async def start(self, ride_id: int, user_id: int) -> RideModel:
        ride = await self._drive(
            ride_id, lambda ride: lifecycle.start(ride, user_id, self.clock())
        )
        logger.info("Ride %d started by driver %d", ride_id, user_id)
        await self.events.publish("ride.started", ride_id)
        return ride

    async def complete(self, ride_id: int, user_id: int) -> RideModel:
        ride = await self._drive(ride_id, lambda ride: lifecycle.complete(ride, user_id))
        logger.info("Ride %d completed by driver %d", ride_id, user_id)
        await self.events.publish("ride.completed", ride_id)
        return ride

    async def _drive(self, ride_id: int, step: Callable[[RideModel], None]) -> RideModel:
        async def work(session: AsyncSession) -> RideModel:
            ride = await RideRepository(session).get_for_update(ride_id)
            if ride is None:
                raise RideNotFound(f"Ride {ride_id} not found")
            step(ride)
            await session.flush()
            return ride

        async with self.locks.hold(ride_key(ride_id)):
            return await run_in_transaction(self.session_factory, work, self.attempts)
