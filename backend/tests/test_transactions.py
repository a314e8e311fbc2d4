"""Retry policy of run_in_transaction."""

import sqlite3

import pytest
from sqlalchemy.exc import IntegrityError

from farmvault.utils.transactions import is_retryable, run_in_transaction


def _integrity_error(orig: Exception) -> IntegrityError:
    return IntegrityError("INSERT INTO harvest_wallets ...", {}, orig)


class PgIntegrityError(Exception):
    def __init__(self, sqlstate: str):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


@pytest.mark.unit
class TestRetryPolicy:
    def test_unique_race_is_retryable(self):
        exc = _integrity_error(sqlite3.IntegrityError("UNIQUE constraint failed: harvest_wallets.id"))
        assert is_retryable(exc)

    def test_not_null_is_not_retryable(self):
        exc = _integrity_error(
            sqlite3.IntegrityError("NOT NULL constraint failed: picker_weigh_entries.weight_kg")
        )
        assert not is_retryable(exc)

    def test_postgres_sqlstate(self):
        assert is_retryable(_integrity_error(PgIntegrityError("23505")))
        # check_violation
        assert not is_retryable(_integrity_error(PgIntegrityError("23514")))


@pytest.mark.integration
@pytest.mark.asyncio
class TestRunInTransaction:
    async def test_constraint_failure_raised_on_first_attempt(self, session_factory):
        calls = 0

        async def work(db):
            nonlocal calls
            calls += 1
            raise _integrity_error(
                sqlite3.IntegrityError("NOT NULL constraint failed: picker_weigh_entries.weight_kg")
            )

        with pytest.raises(IntegrityError):
            await run_in_transaction(session_factory, work, attempts=5, backoff_base=0)
        assert calls == 1

    async def test_unique_race_retried(self, session_factory):
        calls = 0

        async def work(db):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise _integrity_error(
                    sqlite3.IntegrityError("UNIQUE constraint failed: harvest_wallets.id")
                )
            return "created"

        assert await run_in_transaction(session_factory, work, attempts=5, backoff_base=0) == "created"
        assert calls == 2
