"""Read-side aggregations: search, my rides, details, participants, stats."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from rideshare.domain.errors import RideNotFound, UserNotFound
from rideshare.domain.lifecycle import departure_instant, utcnow
from rideshare.infrastructure.models import RideModel, RideParticipantModel
from rideshare.infrastructure.repositories import (
    CancellationRepository,
    ParticipantRepository,
    RideRepository,
    UserRepository,
)


@dataclass(frozen=True)
class MyRides:
    hosted: list[RideModel]
    joined: list[RideParticipantModel]  # each with ``ride`` loaded


@dataclass(frozen=True)
class UserRideStats:
    user_id: int
    rides_hosted: int
    rides_joined: int
    cancellation_count: int
    credibility_score: float

    @property
    def total_rides(self) -> int:
        return self.rides_hosted + self.rides_joined


class RideQueries:
    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] = utcnow,
        utc_offset: timedelta = timedelta(0),
    ):
        self.session = session
        self.clock = clock
        self.utc_offset = utc_offset

    async def search(
        self,
        start: str | None = None,
        end: str | None = None,
        on_date: date | None = None,
    ) -> list[RideModel]:
        """Open rides that have not departed, optionally from *on_date* onward."""
        threshold = self.clock()
        if on_date is not None:
            threshold = max(threshold, departure_instant(on_date, time(0), self.utc_offset))
        return await RideRepository(self.session).search_open(
            departing_after=threshold, start=start, end=end
        )

    async def mine(self, user_id: int) -> MyRides:
        hosted = await RideRepository(self.session).hosted_by(user_id)
        joined = await ParticipantRepository(self.session).upcoming_for_user(
            user_id, self.clock()
        )
        return MyRides(hosted=hosted, joined=joined)

    async def details(self, ride_id: int) -> RideModel:
        ride = await RideRepository(self.session).get_with_people(ride_id)
        if ride is None:
            raise RideNotFound(f"Ride {ride_id} not found")
        return ride

    async def participants(self, ride_id: int) -> list[RideParticipantModel]:
        if await RideRepository(self.session).get_by_id(ride_id) is None:
            raise RideNotFound(f"Ride {ride_id} not found")
        return await ParticipantRepository(self.session).for_ride(ride_id)

    async def user_stats(self, user_id: int) -> UserRideStats:
        user = await UserRepository(self.session).get_by_id(user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found")
        return UserRideStats(
            user_id=user_id,
            rides_hosted=await RideRepository(self.session).count_hosted(user_id),
            rides_joined=await ParticipantRepository(self.session).count_for_user(user_id),
            cancellation_count=await CancellationRepository(self.session).count_for_user(
                user_id
            ),
            credibility_score=user.credibility_score,
        )
