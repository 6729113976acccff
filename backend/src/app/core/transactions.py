"""Unit-of-work helper shared by every mutating auction operation.

A unit of work either commits completely or is rolled back. Store failures are
translated into the domain taxonomy and serialization conflicts are retried a
bounded number of times.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import AuctionError, ConcurrencyError, PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL: serialization_failure, deadlock_detected, lock_not_available
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01", "55P03"})

RETRY_BACKOFF_SECONDS = 0.02


def translate_db_error(exc: SQLAlchemyError) -> AuctionError:
    """Map a SQLAlchemy error onto ConcurrencyError or PersistenceError."""
    if isinstance(exc, IntegrityError):
        # Constraints are validated before writing, so a violation here means
        # another transaction changed the row between our read and write.
        return ConcurrencyError(f"Conflicting concurrent write: {exc.orig}")

    if isinstance(exc, DBAPIError):
        orig = exc.orig
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in RETRYABLE_SQLSTATES:
            return ConcurrencyError(f"Transaction serialization failure ({sqlstate})")
        if isinstance(exc, OperationalError) and "database is locked" in str(orig):
            return ConcurrencyError("Timed out waiting for the database write lock")

    return PersistenceError(f"Data store error: {exc.__class__.__name__}")


async def run_in_transaction(
    db: AsyncSession,
    work: Callable[[], Awaitable[T]],
    *,
    label: str = "transaction",
    max_attempts: int | None = None,
) -> T:
    """Run ``work`` and commit, rolling back on any failure.

    Args:
        db: Session the work operates on
        work: Coroutine factory, called once per attempt
        label: Name used in log lines
        max_attempts: Attempts before a ConcurrencyError is surfaced

    Returns:
        Whatever ``work`` returns

    Raises:
        AuctionError: Domain errors from ``work`` and translated store errors
    """
    attempts = max_attempts or settings.TRANSACTION_MAX_RETRIES
    attempt = 0

    while True:
        attempt += 1
        try:
            result = await work()
            await db.commit()
            return result
        except ConcurrencyError as e:
            await db.rollback()
            if attempt >= attempts:
                raise
            logger.warning(f"{label}: attempt {attempt}/{attempts} conflicted ({e.message}), retrying")
        except AuctionError:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            error = translate_db_error(e)
            if not isinstance(error, ConcurrencyError) or attempt >= attempts:
                raise error from e
            logger.warning(f"{label}: attempt {attempt}/{attempts} conflicted ({error.message}), retrying")
        except OSError as e:
            await db.rollback()
            raise PersistenceError("Data store is unreachable") from e

        await asyncio.sleep(RETRY_BACKOFF_SECONDS * attempt)
