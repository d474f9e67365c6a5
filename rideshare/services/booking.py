"""
Booking Engine
==============

``join(ride_id, user_id)`` books a seat on an open ride.

Checks (in order, each a distinct error)
----------------------------------------
1. ride exists                         -- ``RideNotFound``
2. joiner exists                       -- ``UserNotFound``
3. ride is open                        -- ``RideNotOpen``
4. joiner is not the driver            -- ``CannotBookOwnRide``
5. no other live, upcoming booking     -- ``AlreadyInActiveRide``
6. headcount (booked + host) < max     -- ``RideFull``
7. not already booked on this ride     -- ``AlreadyBooked``

A cancelled participation on the same ride is reused rather than
duplicated (unique on ride + user).  The share is computed with the
headcount *including* the joiner and frozen on the record.

Concurrency safety
------------------
* Keyed locks on ``ride:{id}`` and ``user:{id}`` are held for the whole
  transaction, so the capacity check and the insert (and the single
  active booking check and the insert) are observed as one unit.
* The ride row is read ``FOR UPDATE`` inside the transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rideshare.domain import fares
from rideshare.domain.enums import ParticipantStatus, RideStatus
from rideshare.domain.errors import (
    AlreadyBooked,
    AlreadyInActiveRide,
    CannotBookOwnRide,
    RideFull,
    RideNotFound,
    RideNotOpen,
    UserNotFound,
)
from rideshare.domain.lifecycle import utcnow
from rideshare.infrastructure.events import RideEventPublisher
from rideshare.infrastructure.locks import ride_key, user_key
from rideshare.infrastructure.models import RideParticipantModel
from rideshare.infrastructure.repositories import (
    ParticipantRepository,
    RideRepository,
    UserRepository,
)
from rideshare.infrastructure.transactions import run_in_transaction

logger = logging.getLogger(__name__)


class BookingEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks,
        events: RideEventPublisher,
        clock: Callable[[], datetime] = utcnow,
        attempts: int = 3,
    ):
        self.session_factory = session_factory
        self.locks = locks
        self.events = events
        self.clock = clock
        self.attempts = attempts

    async def join(self, ride_id: int, user_id: int) -> RideParticipantModel:
        async with self.locks.hold(ride_key(ride_id), user_key(user_id)):
            participant = await run_in_transaction(
                self.session_factory,
                lambda session: self._join(session, ride_id, user_id),
                attempts=self.attempts,
            )
        logger.info(
            "User %d joined ride %d (share %s)", user_id, ride_id, participant.share_fare
        )
        await self.events.publish("ride.joined", ride_id, user_id=user_id)
        return participant

    async def _join(
        self, session: AsyncSession, ride_id: int, user_id: int
    ) -> RideParticipantModel:
        now = self.clock()
        rides = RideRepository(session)
        participants = ParticipantRepository(session)

        ride = await rides.get_for_update(ride_id)
        if ride is None:
            raise RideNotFound(f"Ride {ride_id} not found")
        if await UserRepository(session).get_by_id(user_id) is None:
            raise UserNotFound(f"User {user_id} not found")
        if ride.status != RideStatus.OPEN:
            raise RideNotOpen(f"Ride {ride_id} is {RideStatus(ride.status).value}")
        if ride.driver_id == user_id:
            raise CannotBookOwnRide("Cannot book your own ride")
        if await participants.find_active_booking(user_id, now, exclude_ride_id=ride_id):
            raise AlreadyInActiveRide(
                "You already have an active booking for another ride"
            )

        booked = await participants.count_booked(ride_id)
        if not fares.has_seat(booked, ride.max_passengers):
            raise RideFull(f"Ride {ride_id} has no seats left")

        existing = await participants.get(ride_id, user_id)
        if existing is not None and existing.status == ParticipantStatus.BOOKED:
            raise AlreadyBooked(f"Already booked on ride {ride_id}")

        share = fares.compute_share(ride.total_fare, fares.headcount(booked) + 1)

        if existing is not None:
            existing.status = ParticipantStatus.BOOKED
            existing.share_fare = share
            existing.booking_time = now
            await session.flush()
            return existing

        return await participants.create(
            ride_id=ride_id, user_id=user_id, share_fare=share, booking_time=now
        )
