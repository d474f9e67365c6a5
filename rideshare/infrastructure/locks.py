"""
Keyed locks that serialise mutations on the same ride (and joins by the
same user) across concurrent requests.

* ``DistributedLock`` -- Redis SET NX EX for acquire and a Lua script for
  atomic check-and-delete on release.  Acquisition polls until
  ``wait_seconds`` elapse.
* ``RedisLockManager`` -- hands out ``DistributedLock`` per key; used when
  several API processes share one database.
* ``LocalLockManager`` -- ``asyncio.Lock`` per key for single-process runs.

Both managers acquire keys in sorted order so two requests holding
overlapping key sets can never deadlock.  The database row lock
(``SELECT ... FOR UPDATE``) still guards the rows themselves.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import defaultdict
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from rideshare.domain.errors import ConcurrencyConflict

logger = logging.getLogger(__name__)


def ride_key(ride_id: int) -> str:
    return f"ride:{ride_id}"


def user_key(user_id: int) -> str:
    return f"user:{user_id}"


class LockNotAcquired(ConcurrencyConflict):
    code = "LockNotAcquired"


class DistributedLock:
    _RELEASE = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        client: aioredis.Redis,
        key: str,
        ttl_seconds: int = 10,
        wait_seconds: float = 0.0,
        poll_interval: float = 0.05,
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.wait = wait_seconds
        self.poll_interval = poll_interval
        self.token = str(uuid.uuid4())

    async def try_acquire(self) -> bool:
        """Single attempt. Returns True on success."""
        try:
            return bool(
                await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
            )
        except RedisError as exc:
            raise LockNotAcquired(f"Could not acquire lock: {self.key}") from exc

    async def acquire(self) -> bool:
        """Poll until acquired or ``wait_seconds`` have passed."""
        deadline = time.monotonic() + self.wait
        while True:
            if await self.try_acquire():
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(self.poll_interval)

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua).

        The guarded work has already committed by now; a failed release
        leaves the key to expire with its TTL.
        """
        try:
            await self.redis.eval(self._RELEASE, 1, self.key, self.token)
        except RedisError:
            logger.warning(
                "Could not release lock %s; it expires in %ds",
                self.key, self.ttl, exc_info=True,
            )

    # context-manager support
    async def __aenter__(self):
        if not await self.acquire():
            raise LockNotAcquired(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *args):
        await self.release()


class RedisLockManager:
    def __init__(
        self, client: aioredis.Redis, ttl_seconds: int = 10, wait_seconds: float = 5.0
    ):
        self.redis = client
        self.ttl = ttl_seconds
        self.wait = wait_seconds

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(
                    DistributedLock(self.redis, key, self.ttl, self.wait)
                )
            yield


class LocalLockManager:
    """
    Only keys with a current holder or waiter keep an ``asyncio.Lock``;
    the last one out drops it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: defaultdict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def _lease(self, key: str) -> AsyncIterator[None]:
        # Count before waiting so the lock outlives queued waiters
        self._holders[key] += 1
        lock = self._locks.setdefault(key, asyncio.Lock())
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    @property
    def active_keys(self) -> set[str]:
        return set(self._locks)

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(self._lease(key))
            yield
