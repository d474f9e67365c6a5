"""
Transaction runner used by every mutating operation.

``work`` runs inside ``session.begin()``: it commits when ``work``
returns and rolls back on any exception, so domain errors never leave a
partial write behind.  Serialization failures and deadlocks are retried
a bounded number of times, then surfaced as ``ConcurrencyConflict``.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rideshare.domain.errors import ConcurrencyConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}


def is_retryable(exc: DBAPIError) -> bool:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code in RETRYABLE_SQLSTATES


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
    attempts: int = 3,
) -> T:
    for attempt in range(1, attempts + 1):
        async with session_factory() as session:
            try:
                async with session.begin():
                    return await work(session)
            except DBAPIError as exc:
                if not is_retryable(exc):
                    raise
                logger.warning(
                    "Transaction conflict (attempt %d/%d): %s", attempt, attempts, exc.orig
                )
    raise ConcurrencyConflict(f"Gave up after {attempts} conflicting attempts")
