"""
Cancellation Engine
===================

``cancel(ride_id, user_id)`` first resolves *who* is cancelling:

* ``ParticipantCancellation`` -- the caller has a participation record
* ``DriverCancellation``      -- no record, and the caller hosts the ride
* ``Unresolved``              -- ride missing (``RideNotFound``) or the
  caller has no standing on it (``NotRideOwner``)

Driver branch
-------------
Log, penalise the driver, then either hand the ride to the earliest-booked
participant (their record is removed, ride reopens) or cancel the ride
when nobody is booked.

Participant branch
------------------
Mark the record cancelled, log, penalise, and reopen the ride when no
booked participants remain.

Each branch is a single transaction under the ``ride:{id}`` lock: the log
entry, the credibility update and the status change commit together or
not at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rideshare.domain import lifecycle
from rideshare.domain.enums import (
    LIVE_STATUSES,
    CancellerRole,
    ParticipantStatus,
    RideStatus,
)
from rideshare.domain.errors import (
    InvalidState,
    NotBooked,
    NotRideOwner,
    RideNotFound,
)
from rideshare.domain.lifecycle import utcnow
from rideshare.domain.penalties import CancellationPolicy
from rideshare.infrastructure.events import RideEventPublisher
from rideshare.infrastructure.locks import ride_key
from rideshare.infrastructure.models import RideModel, RideParticipantModel
from rideshare.infrastructure.repositories import (
    CancellationRepository,
    ParticipantRepository,
    RideRepository,
    UserRepository,
)
from rideshare.infrastructure.transactions import run_in_transaction

logger = logging.getLogger(__name__)


# ── Cancellation target (tagged) ──────────────────────────────────────


@dataclass(frozen=True)
class DriverCancellation:
    ride: RideModel


@dataclass(frozen=True)
class ParticipantCancellation:
    ride: RideModel
    participant: RideParticipantModel


@dataclass(frozen=True)
class Unresolved:
    ride: Optional[RideModel] = None


CancellationTarget = Union[DriverCancellation, ParticipantCancellation, Unresolved]


@dataclass(frozen=True)
class CancellationOutcome:
    ride_id: int
    user_id: int
    role: CancellerRole
    ride_status: RideStatus
    credibility_penalty: float
    hours_to_departure: float
    penalty: Optional[Decimal] = None  # monetary, participants only
    transferred: Optional[bool] = None  # drivers only
    new_driver_id: Optional[int] = None

    @property
    def driver_cancelled(self) -> bool:
        return self.role == CancellerRole.DRIVER


# ── Engine ────────────────────────────────────────────────────────────


class CancellationEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks,
        events: RideEventPublisher,
        policy: CancellationPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
        attempts: int = 3,
    ):
        self.session_factory = session_factory
        self.locks = locks
        self.events = events
        self.policy = policy or CancellationPolicy()
        self.clock = clock
        self.attempts = attempts

    async def cancel(self, ride_id: int, user_id: int) -> CancellationOutcome:
        async with self.locks.hold(ride_key(ride_id)):
            outcome = await run_in_transaction(
                self.session_factory,
                lambda session: self._cancel(session, ride_id, user_id),
                attempts=self.attempts,
            )
        await self.events.publish(
            "ride.cancelled",
            ride_id,
            user_id=user_id,
            role=outcome.role.value,
            status=outcome.ride_status.value,
        )
        return outcome

    async def resolve(
        self, session: AsyncSession, ride_id: int, user_id: int
    ) -> CancellationTarget:
        ride = await RideRepository(session).get_for_update(ride_id)
        if ride is None:
            return Unresolved()
        participant = await ParticipantRepository(session).get(ride_id, user_id)
        if participant is not None:
            return ParticipantCancellation(ride, participant)
        if ride.driver_id == user_id:
            return DriverCancellation(ride)
        return Unresolved(ride)

    async def _cancel(
        self, session: AsyncSession, ride_id: int, user_id: int
    ) -> CancellationOutcome:
        target = await self.resolve(session, ride_id, user_id)
        if isinstance(target, DriverCancellation):
            return await self._cancel_as_driver(session, target.ride, user_id)
        if isinstance(target, ParticipantCancellation):
            return await self._cancel_as_participant(
                session, target.ride, target.participant, user_id
            )
        if target.ride is None:
            raise RideNotFound(f"Ride {ride_id} not found")
        raise NotRideOwner("You are neither the driver nor a participant of this ride")

    async def _cancel_as_driver(
        self, session: AsyncSession, ride: RideModel, user_id: int
    ) -> CancellationOutcome:
        if ride.status not in LIVE_STATUSES:
            raise InvalidState(
                f"Cannot cancel a ride that is {RideStatus(ride.status).value}"
            )
        now = self.clock()
        assessment = self.policy.for_driver(ride.departs_at, now)
        participants = ParticipantRepository(session)

        await CancellationRepository(session).log(ride.id, user_id, now)
        await UserRepository(session).apply_cancellation_penalty(
            user_id, assessment.credibility_penalty
        )

        successor = await participants.earliest_booked(ride.id)
        if successor is not None:
            lifecycle.hand_over(ride, successor.user_id)
            await participants.delete(successor)
            logger.info(
                "Driver %d cancelled ride %d; handed over to user %d",
                user_id, ride.id, successor.user_id,
            )
        else:
            lifecycle.cancel(ride)
            logger.info("Driver %d cancelled ride %d; no riders left", user_id, ride.id)
        await session.flush()

        return CancellationOutcome(
            ride_id=ride.id,
            user_id=user_id,
            role=CancellerRole.DRIVER,
            ride_status=RideStatus(ride.status),
            credibility_penalty=assessment.credibility_penalty,
            hours_to_departure=assessment.hours_to_departure,
            transferred=successor is not None,
            new_driver_id=successor.user_id if successor is not None else None,
        )

    async def _cancel_as_participant(
        self,
        session: AsyncSession,
        ride: RideModel,
        participant: RideParticipantModel,
        user_id: int,
    ) -> CancellationOutcome:
        if participant.status != ParticipantStatus.BOOKED:
            raise NotBooked(f"No booked seat on ride {ride.id} to cancel")
        if ride.status not in LIVE_STATUSES:
            raise InvalidState(
                f"Cannot cancel a seat on a ride that is {RideStatus(ride.status).value}"
            )
        now = self.clock()
        assessment = self.policy.for_participant(
            ride.departs_at, now, participant.share_fare
        )
        participants = ParticipantRepository(session)

        participant.status = ParticipantStatus.CANCELLED
        await CancellationRepository(session).log(ride.id, user_id, now)

        if await participants.count_booked(ride.id) == 0:
            lifecycle.reopen(ride)

        await UserRepository(session).apply_cancellation_penalty(
            user_id, assessment.credibility_penalty
        )
        await session.flush()
        logger.info(
            "User %d cancelled seat on ride %d (penalty %s, credibility -%s)",
            user_id, ride.id, assessment.fare_penalty, assessment.credibility_penalty,
        )

        return CancellationOutcome(
            ride_id=ride.id,
            user_id=user_id,
            role=CancellerRole.PARTICIPANT,
            ride_status=RideStatus(ride.status),
            credibility_penalty=assessment.credibility_penalty,
            hours_to_departure=assessment.hours_to_departure,
            penalty=assessment.fare_penalty,
        )
