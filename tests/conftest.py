"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  ``FOR UPDATE`` is a no-op on SQLite; the
in-process ``LocalLockManager`` provides the per-ride serialisation
instead.  Redis-backed collaborators are replaced by ``AsyncMock``.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from rideshare.domain.enums import VehicleType
from rideshare.domain.penalties import CancellationPolicy
from rideshare.infrastructure.database import Base
from rideshare.infrastructure.events import RideEventPublisher
from rideshare.infrastructure.locks import LocalLockManager
from rideshare.infrastructure.models import UserModel
from rideshare.services.booking import BookingEngine
from rideshare.services.cancellation import CancellationEngine
from rideshare.services.rides import RideDraft, RideService

TEST_DB_URL = "sqlite+aiosqlite://"

NOW = datetime(2026, 10, 18, 8, 0)


class FakeClock:
    """Settable naive-UTC clock."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ── Infrastructure ────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test; one shared connection."""
    engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def locks() -> LocalLockManager:
    return LocalLockManager()


@pytest.fixture
def events() -> AsyncMock:
    return AsyncMock(spec=RideEventPublisher)


@pytest.fixture
def load(session_factory):
    """Read a row back through a fresh session."""

    async def _load(model, pk):
        async with session_factory() as session:
            return await session.get(model, pk)

    return _load


# ── Seed data ─────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def users(session_factory) -> dict[str, int]:
    names = ("host", "alice", "bob", "carol", "dave")
    async with session_factory() as session:
        models = {
            name: UserModel(
                name=name.title(),
                email=f"{name}@campus.edu",
                rating=4.5,
                credibility_score=100.0,
                cancellation_count=0,
            )
            for name in names
        }
        session.add_all(models.values())
        await session.commit()
        return {name: m.id for name, m in models.items()}


# ── Engines ───────────────────────────────────────────────────────────


@pytest.fixture
def ride_service(session_factory, locks, events, clock) -> RideService:
    return RideService(session_factory, locks, events, clock)


@pytest.fixture
def booking(session_factory, locks, events, clock) -> BookingEngine:
    return BookingEngine(session_factory, locks, events, clock)


@pytest.fixture
def cancellation(session_factory, locks, events, clock) -> CancellationEngine:
    return CancellationEngine(
        session_factory, locks, events, CancellationPolicy(), clock
    )


@pytest.fixture
def make_ride(ride_service, users, clock):
    """Create a ride hosted by one of the seeded users."""

    async def _make(
        host: str = "host",
        *,
        total_fare: str = "300.00",
        max_passengers: int = 4,
        vehicle_type: VehicleType = VehicleType.CAR,
        departs_in: timedelta = timedelta(days=1),
        start: str = "Main Gate",
        end: str = "Central Station",
    ):
        departs = clock() + departs_in
        draft = RideDraft(
            start_location=start,
            end_location=end,
            start_date=departs.date(),
            start_time=departs.time(),
            total_fare=Decimal(total_fare),
            vehicle_type=vehicle_type,
            max_passengers=max_passengers,
        )
        return await ride_service.create(users[host], draft)

    return _make
