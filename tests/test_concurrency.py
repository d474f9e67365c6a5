"""
Concurrency safety tests.

Demonstrates:
1. Concurrent joins at the capacity boundary admit exactly one rider.
2. One user racing into two rides ends up with a single booking.
3. Driver cancellation racing a join never strands a booking.
4. Distributed lock prevents simultaneous acquire; keys are taken in
   sorted order so overlapping holders cannot deadlock.
5. A Redis outage around already-committed work is not reported as a
   failure; at acquire time it is a retryable lock conflict.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from rideshare.domain.enums import ParticipantStatus
from rideshare.domain.errors import (
    AlreadyInActiveRide,
    ConcurrencyConflict,
    RideFull,
    RideNotOpen,
)
from rideshare.infrastructure.locks import (
    DistributedLock,
    LocalLockManager,
    LockNotAcquired,
    RedisLockManager,
)
from rideshare.infrastructure.repositories import ParticipantRepository
from rideshare.services.booking import BookingEngine


async def booked_on(session_factory, ride_id):
    async with session_factory() as session:
        rows = await ParticipantRepository(session).for_ride(ride_id)
    return [p for p in rows if p.status == ParticipantStatus.BOOKED]


@pytest.mark.asyncio
class TestConcurrentJoins:
    async def test_last_seat_goes_to_exactly_one_rider(
        self, make_ride, booking, users, session_factory
    ):
        # host + 1 booked leaves exactly one seat
        ride = await make_ride(max_passengers=3)
        await booking.join(ride.id, users["alice"])

        results = await asyncio.gather(
            booking.join(ride.id, users["bob"]),
            booking.join(ride.id, users["carol"]),
            booking.join(ride.id, users["dave"]),
            return_exceptions=True,
        )

        joined = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, Exception)]
        assert len(joined) == 1
        assert all(isinstance(r, RideFull) for r in rejected)
        assert len(await booked_on(session_factory, ride.id)) == 2

    async def test_shares_stay_consistent_under_contention(
        self, make_ride, booking, users
    ):
        ride = await make_ride(total_fare="300.00", max_passengers=4)

        results = await asyncio.gather(
            booking.join(ride.id, users["alice"]),
            booking.join(ride.id, users["bob"]),
            booking.join(ride.id, users["carol"]),
        )

        # Every rider saw a distinct headcount
        assert sorted(str(p.share_fare) for p in results) == [
            "100.00",
            "150.00",
            "75.00",
        ]

    async def test_same_user_two_rides(
        self, make_ride, booking, users, session_factory
    ):
        first = await make_ride("host")
        second = await make_ride("dave", start="Library")

        results = await asyncio.gather(
            booking.join(first.id, users["alice"]),
            booking.join(second.id, users["alice"]),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], AlreadyInActiveRide)
        booked = await booked_on(session_factory, first.id) + await booked_on(
            session_factory, second.id
        )
        assert [p.user_id for p in booked] == [users["alice"]]

    async def test_driver_cancel_racing_join(
        self, make_ride, booking, cancellation, users, session_factory
    ):
        ride = await make_ride()

        join, cancel = await asyncio.gather(
            booking.join(ride.id, users["alice"]),
            cancellation.cancel(ride.id, users["host"]),
            return_exceptions=True,
        )

        if isinstance(join, Exception):
            # cancel ran first: nobody to hand over to
            assert isinstance(join, RideNotOpen)
            assert cancel.transferred is False
        else:
            # join ran first: alice inherits the ride
            assert cancel.new_driver_id == users["alice"]
            assert await booked_on(session_factory, ride.id) == []


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "ride:1", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_awaited_once_with(
            "lock:ride:1", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "ride:1", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_acquire_polls_until_free(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(side_effect=[False, False, True])

        lock = DistributedLock(
            mock_redis, "ride:1", wait_seconds=1.0, poll_interval=0.001
        )
        assert await lock.acquire() is True
        assert mock_redis.set.await_count == 3

    @pytest.mark.asyncio
    async def test_release_calls_eval(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "ride:1", ttl_seconds=10)
        await lock.acquire()
        await lock.release()

        mock_redis.eval.assert_called_once()

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "ride:1", ttl_seconds=10)
        with pytest.raises(LockNotAcquired, match="Could not acquire lock"):
            async with lock:
                pass

    def test_lock_failure_is_a_retryable_conflict(self):
        assert issubclass(LockNotAcquired, ConcurrencyConflict)
        assert LockNotAcquired.retryable is True


class TestLockManagers:
    @pytest.mark.asyncio
    async def test_redis_manager_acquires_in_sorted_order(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        manager = RedisLockManager(mock_redis, ttl_seconds=10, wait_seconds=0)
        async with manager.hold("user:7", "ride:3", "user:7"):
            pass

        keys = [c.args[0] for c in mock_redis.set.await_args_list]
        assert keys == ["lock:ride:3", "lock:user:7"]
        assert mock_redis.eval.await_count == 2

    @pytest.mark.asyncio
    async def test_redis_manager_releases_taken_locks_on_failure(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(side_effect=[True, False])
        mock_redis.eval = AsyncMock(return_value=1)

        manager = RedisLockManager(mock_redis, ttl_seconds=10, wait_seconds=0)
        with pytest.raises(LockNotAcquired):
            async with manager.hold("ride:3", "user:7"):
                pass

        mock_redis.eval.assert_awaited_once()
        assert mock_redis.eval.await_args.args[2] == "lock:ride:3"

    @pytest.mark.asyncio
    async def test_local_manager_serialises_same_key(self):
        manager = LocalLockManager()
        order = []

        async def worker(name):
            async with manager.hold("ride:1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )

    @pytest.mark.asyncio
    async def test_local_manager_overlapping_keys_do_not_deadlock(self):
        manager = LocalLockManager()

        async def hold(*keys):
            async with manager.hold(*keys):
                await asyncio.sleep(0.01)

        await asyncio.wait_for(
            asyncio.gather(hold("ride:1", "user:2"), hold("user:2", "ride:1")),
            timeout=1,
        )

    @pytest.mark.asyncio
    async def test_local_manager_forgets_released_keys(self):
        manager = LocalLockManager()

        async with manager.hold("ride:1", "user:2"):
            assert manager.active_keys == {"ride:1", "user:2"}
        assert manager.active_keys == set()

    @pytest.mark.asyncio
    async def test_local_manager_keeps_lock_while_waiters_queue(self):
        manager = LocalLockManager()
        entered = asyncio.Event()
        release = asyncio.Event()

        async def first():
            async with manager.hold("ride:1"):
                entered.set()
                await release.wait()

        async def second():
            await entered.wait()
            async with manager.hold("ride:1"):
                pass

        tasks = [asyncio.create_task(first()), asyncio.create_task(second())]
        await entered.wait()
        await asyncio.sleep(0)
        release.set()
        await asyncio.gather(*tasks)
        assert manager.active_keys == set()


class TestRedisOutage:
    """Redis failures around an already-committed transaction."""

    @pytest.mark.asyncio
    async def test_failed_release_is_logged_not_raised(self, caplog):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(side_effect=RedisConnectionError("down"))

        lock = DistributedLock(mock_redis, "ride:1", ttl_seconds=10)
        async with lock:
            pass

        assert "Could not release lock lock:ride:1" in caplog.text

    @pytest.mark.asyncio
    async def test_redis_down_on_acquire_is_a_lock_conflict(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(side_effect=RedisConnectionError("down"))

        lock = DistributedLock(mock_redis, "ride:1", wait_seconds=1.0)
        with pytest.raises(LockNotAcquired):
            await lock.acquire()

    @pytest.mark.asyncio
    async def test_join_succeeds_when_unlock_fails(
        self, make_ride, users, session_factory, events, clock
    ):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(side_effect=RedisConnectionError("down"))
        engine = BookingEngine(
            session_factory, RedisLockManager(mock_redis, wait_seconds=0), events, clock
        )
        ride = await make_ride()

        participant = await engine.join(ride.id, users["alice"])

        assert participant.status == ParticipantStatus.BOOKED
        assert [p.user_id for p in await booked_on(session_factory, ride.id)] == [
            users["alice"]
        ]
        events.publish.assert_awaited_with("ride.joined", ride.id, user_id=users["alice"])
