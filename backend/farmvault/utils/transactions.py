"""Transaction helpers for multi-row ledger writes.

run_in_transaction() opens a fresh session, runs `work(db)` inside one
BEGIN/COMMIT, and re-runs the whole unit when the database reports a
concurrency conflict:

  - StaleDataError     optimistic version check failed (wallet or picker changed under us)
  - OperationalError   deadlock / lock timeout / "database is locked"
  - IntegrityError     only a unique-key violation: two writers raced to
                       create the same wallet, usage row or picker number

Any other integrity failure (NOT NULL, foreign key, CHECK) is a bad write,
not a race, and propagates on the first attempt.  Business exceptions
raised by `work` are never retried either; they roll the transaction back
and propagate unchanged.  `work` must therefore read everything it
decides on inside the transaction; each retry starts from a clean read.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy import Select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger("farmvault.transactions")

T = TypeVar("T")

CONFLICT_ERRORS = (StaleDataError, OperationalError, IntegrityError)

# SQLSTATE for unique_violation (PostgreSQL, reported by asyncpg and psycopg2)
UNIQUE_VIOLATION = "23505"


def lock_for_update(stmt: Select) -> Select:
    """Apply row-level locking for critical reads.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; the version_id columns
    still catch the conflict at UPDATE time there.
    """
    return stmt.with_for_update()


def is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code:
        return code == UNIQUE_VIOLATION
    return "UNIQUE constraint failed" in str(orig)


def is_retryable(exc: Exception) -> bool:
    if isinstance(exc, IntegrityError):
        return is_unique_violation(exc)
    return True


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    attempts: int = 3,
    backoff_base: float = 0.05,
    retry_on: tuple[type[Exception], ...] = CONFLICT_ERRORS,
) -> T:
    """Execute `work` atomically, retrying on concurrency conflicts."""
    for attempt in range(attempts):
        async with session_factory() as db:
            try:
                async with db.begin():
                    return await work(db)
            except retry_on as exc:
                name = getattr(work, "__name__", "work")
                if not is_retryable(exc):
                    logger.error("Transaction %s failed: %s", name, exc)
                    raise
                if attempt >= attempts - 1:
                    logger.error(
                        "Transaction %s failed after %d attempts: %s", name, attempts, exc,
                    )
                    raise
                logger.info(
                    "Transaction conflict on %s (attempt %d/%d), retrying: %s",
                    name, attempt + 1, attempts, exc.__class__.__name__,
                )
        await asyncio.sleep(backoff_base * (2 ** attempt))
    raise RuntimeError("run_in_transaction called with attempts < 1")
