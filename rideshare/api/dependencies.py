"""
FastAPI dependency injection helpers.

Leaf providers (session factory, locks, events, clock) are overridden in
tests; the engines are assembled from them per request.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rideshare.config import settings
from rideshare.domain.lifecycle import utcnow
from rideshare.domain.penalties import CancellationPolicy
from rideshare.infrastructure.database import async_session_factory
from rideshare.infrastructure.events import RideEventPublisher
from rideshare.infrastructure.locks import LocalLockManager, RedisLockManager
from rideshare.infrastructure.redis_client import get_redis
from rideshare.services.booking import BookingEngine
from rideshare.services.cancellation import CancellationEngine
from rideshare.services.queries import RideQueries
from rideshare.services.rides import RideService

_lock_manager = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session_factory


async def get_db(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_lock_manager():
    """Process-wide lock manager; must be shared across requests."""
    global _lock_manager
    if _lock_manager is None:
        if settings.lock_backend == "local":
            _lock_manager = LocalLockManager()
        else:
            _lock_manager = RedisLockManager(
                get_redis(), settings.lock_ttl_seconds, settings.lock_wait_seconds
            )
    return _lock_manager


def get_event_publisher() -> RideEventPublisher:
    return RideEventPublisher(get_redis(), settings.events_channel)


def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_utc_offset() -> timedelta:
    return timedelta(minutes=settings.campus_utc_offset_minutes)


def get_cancellation_policy() -> CancellationPolicy:
    return CancellationPolicy(
        late_window_hours=settings.late_cancellation_hours,
        late_penalty=settings.late_cancellation_penalty,
        early_penalty=settings.early_cancellation_penalty,
        fare_rate=settings.late_cancellation_fare_rate,
    )


def get_current_user_id(x_user_id: Optional[int] = Header(None)) -> int:
    """Identity is issued upstream; the authenticated id arrives as ``X-User-Id``."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id


# ── Engines ───────────────────────────────────────────────────────────


def get_ride_service(
    session_factory=Depends(get_session_factory),
    locks=Depends(get_lock_manager),
    events: RideEventPublisher = Depends(get_event_publisher),
    clock=Depends(get_clock),
    utc_offset: timedelta = Depends(get_utc_offset),
) -> RideService:
    return RideService(
        session_factory, locks, events, clock, utc_offset, settings.transaction_attempts
    )


def get_booking_engine(
    session_factory=Depends(get_session_factory),
    locks=Depends(get_lock_manager),
    events: RideEventPublisher = Depends(get_event_publisher),
    clock=Depends(get_clock),
) -> BookingEngine:
    return BookingEngine(
        session_factory, locks, events, clock, settings.transaction_attempts
    )


def get_cancellation_engine(
    session_factory=Depends(get_session_factory),
    locks=Depends(get_lock_manager),
    events: RideEventPublisher = Depends(get_event_publisher),
    policy: CancellationPolicy = Depends(get_cancellation_policy),
    clock=Depends(get_clock),
) -> CancellationEngine:
    return CancellationEngine(
        session_factory, locks, events, policy, clock, settings.transaction_attempts
    )


def get_ride_queries(
    db: AsyncSession = Depends(get_db),
    clock=Depends(get_clock),
    utc_offset: timedelta = Depends(get_utc_offset),
) -> RideQueries:
    return RideQueries(db, clock, utc_offset)
