"""Tests for the unit-of-work helper and store error translation."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from app.core import transactions
from app.core.exceptions import ConcurrencyError, NotFoundError, PersistenceError
from app.core.transactions import run_in_transaction, translate_db_error


class _PgError(Exception):
    def __init__(self, sqlstate: str):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


@pytest.fixture
def session() -> AsyncMock:
    return AsyncMock()


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(transactions, "RETRY_BACKOFF_SECONDS", 0)


class TestTranslateDbError:
    """Test translate_db_error."""

    def test_integrity_error_is_conflict(self):
        error = translate_db_error(IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")))
        assert isinstance(error, ConcurrencyError)

    def test_sqlite_lock_timeout_is_conflict(self):
        error = translate_db_error(OperationalError("BEGIN", {}, Exception("database is locked")))
        assert isinstance(error, ConcurrencyError)

    @pytest.mark.parametrize("sqlstate", ["40001", "40P01", "55P03"])
    def test_serialization_failures_are_conflicts(self, sqlstate):
        error = translate_db_error(OperationalError("UPDATE", {}, _PgError(sqlstate)))
        assert isinstance(error, ConcurrencyError)

    def test_other_errors_are_persistence_failures(self):
        error = translate_db_error(ProgrammingError("SELECT", {}, Exception("no such table")))
        assert isinstance(error, PersistenceError)
        assert error.status_code == 503


class TestRunInTransaction:
    """Test run_in_transaction commit, rollback and retry."""

    @pytest.mark.asyncio
    async def test_commits_once_on_success(self, session):
        work = AsyncMock(return_value="done")

        assert await run_in_transaction(session, work) == "done"
        session.commit.assert_awaited_once()
        session.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_domain_error_rolls_back_without_retry(self, session):
        work = AsyncMock(side_effect=NotFoundError("missing"))

        with pytest.raises(NotFoundError):
            await run_in_transaction(session, work)

        assert work.await_count == 1
        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_conflict_is_retried(self, session):
        work = AsyncMock(side_effect=[ConcurrencyError("stale"), ConcurrencyError("stale"), 42])

        assert await run_in_transaction(session, work, max_attempts=3) == 42
        assert work.await_count == 3
        assert session.rollback.await_count == 2
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lock_timeout_is_retried(self, session):
        locked = OperationalError("BEGIN", {}, Exception("database is locked"))
        work = AsyncMock(side_effect=[locked, "ok"])

        assert await run_in_transaction(session, work, max_attempts=2) == "ok"
        assert session.rollback.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, session):
        work = AsyncMock(side_effect=ConcurrencyError("stale"))

        with pytest.raises(ConcurrencyError):
            await run_in_transaction(session, work, max_attempts=3)

        assert work.await_count == 3
        assert session.rollback.await_count == 3
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_failure_is_not_retried(self, session):
        work = AsyncMock(side_effect=ProgrammingError("SELECT", {}, Exception("broken")))

        with pytest.raises(PersistenceError):
            await run_in_transaction(session, work, max_attempts=3)

        assert work.await_count == 1

    @pytest.mark.asyncio
    async def test_unreachable_store(self, session):
        work = AsyncMock(side_effect=ConnectionRefusedError("no route"))

        with pytest.raises(PersistenceError) as exc_info:
            await run_in_transaction(session, work)

        assert exc_info.value.code == "STORE_UNAVAILABLE"
        session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_commit_rolls_back(self, session):
        session.commit.side_effect = IntegrityError("UPDATE", {}, Exception("duplicate"))
        work = AsyncMock(return_value=None)

        with pytest.raises(ConcurrencyError):
            await run_in_transaction(session, work, max_attempts=1)

        session.rollback.assert_awaited_once()
