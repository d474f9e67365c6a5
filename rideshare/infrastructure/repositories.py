"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Transactions are owned by the caller.
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .models import (
    RideCancellationModel,
    RideModel,
    RideParticipantModel,
    UserModel,
    VehicleModel,
)
from rideshare.domain.enums import LIVE_STATUSES, ParticipantStatus, RideStatus, VehicleType


def _with_people():
    """Eager-load driver, vehicle and participants (with their users)."""
    return (
        selectinload(RideModel.driver),
        selectinload(RideModel.vehicle),
        selectinload(RideModel.participants).selectinload(RideParticipantModel.user),
    )


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_ride(
        self,
        *,
        driver_id: int,
        vehicle_id: int,
        start_location: str,
        end_location: str,
        start_date: date,
        start_time: time,
        departs_at: datetime,
        total_fare: Decimal,
        max_passengers: int,
    ) -> RideModel:
        ride = RideModel(
            driver_id=driver_id,
            vehicle_id=vehicle_id,
            start_location=start_location,
            end_location=end_location,
            start_date=start_date,
            start_time=start_time,
            departs_at=departs_at,
            total_fare=total_fare,
            max_passengers=max_passengers,
            status=RideStatus.OPEN,
        )
        self.session.add(ride)
        await self.session.flush()
        return ride

    async def get_by_id(self, ride_id: int) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id)

    async def get_for_update(self, ride_id: int) -> Optional[RideModel]:
        """SELECT ... FOR UPDATE so joins and cancellations on a ride serialise."""
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.id == ride_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_with_people(self, ride_id: int) -> Optional[RideModel]:
        result = await self.session.execute(
            select(RideModel).where(RideModel.id == ride_id).options(*_with_people())
        )
        return result.scalar_one_or_none()

    async def search_open(
        self,
        *,
        departing_after: datetime,
        start: str | None = None,
        end: str | None = None,
    ) -> list[RideModel]:
        query = (
            select(RideModel)
            .where(RideModel.status == RideStatus.OPEN)
            .where(RideModel.departs_at >= departing_after)
            .options(*_with_people())
            .order_by(RideModel.start_date, RideModel.departs_at)
        )
        if start:
            query = query.where(RideModel.start_location.icontains(start, autoescape=True))
        if end:
            query = query.where(RideModel.end_location.icontains(end, autoescape=True))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def hosted_by(self, user_id: int) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.driver_id == user_id)
            .where(RideModel.status != RideStatus.CANCELLED)
            .options(*_with_people())
            .order_by(RideModel.departs_at)
        )
        return list(result.scalars().all())

    async def count_hosted(self, user_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(RideModel)
            .where(RideModel.driver_id == user_id)
        )
        return result.scalar() or 0


class ParticipantRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, ride_id: int, user_id: int) -> Optional[RideParticipantModel]:
        result = await self.session.execute(
            select(RideParticipantModel).where(
                RideParticipantModel.ride_id == ride_id,
                RideParticipantModel.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        *,
        ride_id: int,
        user_id: int,
        share_fare: Decimal,
        booking_time: datetime,
    ) -> RideParticipantModel:
        participant = RideParticipantModel(
            ride_id=ride_id,
            user_id=user_id,
            status=ParticipantStatus.BOOKED,
            share_fare=share_fare,
            booking_time=booking_time,
        )
        self.session.add(participant)
        await self.session.flush()
        return participant

    async def delete(self, participant: RideParticipantModel) -> None:
        await self.session.execute(
            delete(RideParticipantModel).where(RideParticipantModel.id == participant.id)
        )
        self.session.expunge(participant)

    async def count_booked(self, ride_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(RideParticipantModel)
            .where(
                RideParticipantModel.ride_id == ride_id,
                RideParticipantModel.status == ParticipantStatus.BOOKED,
            )
        )
        return result.scalar() or 0

    async def earliest_booked(self, ride_id: int) -> Optional[RideParticipantModel]:
        result = await self.session.execute(
            select(RideParticipantModel)
            .where(
                RideParticipantModel.ride_id == ride_id,
                RideParticipantModel.status == ParticipantStatus.BOOKED,
            )
            .order_by(RideParticipantModel.booking_time, RideParticipantModel.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_active_booking(
        self, user_id: int, now: datetime, exclude_ride_id: int | None = None
    ) -> Optional[RideParticipantModel]:
        """A booked seat on a live ride that has not departed yet."""
        query = (
            select(RideParticipantModel)
            .join(RideModel, RideModel.id == RideParticipantModel.ride_id)
            .where(
                RideParticipantModel.user_id == user_id,
                RideParticipantModel.status == ParticipantStatus.BOOKED,
                RideModel.status.in_(LIVE_STATUSES),
                RideModel.departs_at >= now,
            )
            .limit(1)
        )
        if exclude_ride_id is not None:
            query = query.where(RideParticipantModel.ride_id != exclude_ride_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def upcoming_for_user(
        self, user_id: int, now: datetime
    ) -> list[RideParticipantModel]:
        """Booked participations on non-cancelled rides departing after *now*."""
        result = await self.session.execute(
            select(RideParticipantModel)
            .join(RideModel, RideModel.id == RideParticipantModel.ride_id)
            .where(
                RideParticipantModel.user_id == user_id,
                RideParticipantModel.status == ParticipantStatus.BOOKED,
                RideModel.status != RideStatus.CANCELLED,
                RideModel.departs_at >= now,
            )
            .options(
                selectinload(RideParticipantModel.ride).options(*_with_people())
            )
            .order_by(RideParticipantModel.booking_time.desc())
        )
        return list(result.scalars().all())

    async def for_ride(self, ride_id: int) -> list[RideParticipantModel]:
        result = await self.session.execute(
            select(RideParticipantModel)
            .where(RideParticipantModel.ride_id == ride_id)
            .options(selectinload(RideParticipantModel.user))
            .order_by(RideParticipantModel.booking_time, RideParticipantModel.id)
        )
        return list(result.scalars().all())

    async def count_for_user(self, user_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(RideParticipantModel)
            .where(RideParticipantModel.user_id == user_id)
        )
        return result.scalar() or 0


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def apply_cancellation_penalty(self, user_id: int, penalty: float) -> None:
        """Atomic in-database decrement; no read-modify-write race."""
        await self.session.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(
                credibility_score=UserModel.credibility_score - penalty,
                cancellation_count=UserModel.cancellation_count + 1,
            )
            .execution_options(synchronize_session=False)
        )


class VehicleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_for_user(self, user_id: int) -> Optional[VehicleModel]:
        result = await self.session.execute(
            select(VehicleModel).where(VehicleModel.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def upsert(self, user_id: int, vehicle_type: VehicleType) -> VehicleModel:
        vehicle = await self.get_for_user(user_id)
        if vehicle is None:
            vehicle = VehicleModel(user_id=user_id, vehicle_type=vehicle_type)
            self.session.add(vehicle)
        elif vehicle.vehicle_type != vehicle_type:
            vehicle.vehicle_type = vehicle_type
        await self.session.flush()
        return vehicle


class CancellationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(
        self, ride_id: int, user_id: int, cancelled_at: datetime
    ) -> RideCancellationModel:
        entry = RideCancellationModel(
            ride_id=ride_id, user_id=user_id, cancelled_at=cancelled_at
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def count_for_user(self, user_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(RideCancellationModel)
            .where(RideCancellationModel.user_id == user_id)
        )
        return result.scalar() or 0
