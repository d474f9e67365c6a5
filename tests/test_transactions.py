"""Tests for the retrying transaction runner."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError

from rideshare.domain.errors import ConcurrencyConflict, RideNotFound
from rideshare.infrastructure.models import UserModel
from rideshare.infrastructure.transactions import is_retryable, run_in_transaction


class FakeDriverError(Exception):
    def __init__(self, sqlstate):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


def db_error(sqlstate: str) -> DBAPIError:
    return DBAPIError("UPDATE rides ...", {}, FakeDriverError(sqlstate))


async def count_users(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(UserModel))).scalar()


class TestIsRetryable:
    @pytest.mark.parametrize("code", ["40001", "40P01"])
    def test_serialization_and_deadlock(self, code):
        assert is_retryable(db_error(code))

    def test_other_errors(self):
        assert not is_retryable(db_error("23505"))


@pytest.mark.asyncio
class TestRunInTransaction:
    async def test_commits_on_success(self, session_factory):
        async def work(session):
            session.add(UserModel(name="Eve", email="eve@campus.edu"))
            return "done"

        assert await run_in_transaction(session_factory, work) == "done"
        assert await count_users(session_factory) == 1

    async def test_rolls_back_on_domain_error(self, session_factory):
        async def work(session):
            session.add(UserModel(name="Eve", email="eve@campus.edu"))
            await session.flush()
            raise RideNotFound("Ride 1 not found")

        with pytest.raises(RideNotFound):
            await run_in_transaction(session_factory, work)
        assert await count_users(session_factory) == 0

    async def test_retries_serialization_failure(self, session_factory):
        calls = []

        async def work(session):
            calls.append(1)
            if len(calls) < 3:
                raise db_error("40001")
            return len(calls)

        assert await run_in_transaction(session_factory, work, attempts=3) == 3

    async def test_gives_up_after_attempts(self, session_factory):
        calls = []

        async def work(session):
            calls.append(1)
            raise db_error("40P01")

        with pytest.raises(ConcurrencyConflict) as excinfo:
            await run_in_transaction(session_factory, work, attempts=2)
        assert len(calls) == 2
        assert excinfo.value.retryable is True

    async def test_non_retryable_database_error_propagates(self, session_factory):
        calls = []

        async def work(session):
            calls.append(1)
            raise db_error("23505")

        with pytest.raises(DBAPIError):
            await run_in_transaction(session_factory, work)
        assert len(calls) == 1
