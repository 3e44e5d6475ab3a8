"""Atomic units of work over an AsyncSession.

Every coin movement and every badge award runs inside ``run_atomic``:
the operation's writes are committed together or rolled back together,
and transient write conflicts are retried a bounded number of times.
Callers must hand in a session without pending writes.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import structlog
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ganithub.config import get_settings
from ganithub.gamification.errors import GamificationError, StorageConflict, StorageUnavailable

logger = structlog.get_logger()

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
_CONFLICT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def translate_storage_error(exc: SQLAlchemyError) -> GamificationError:
    """Map a SQLAlchemy error onto StorageConflict or StorageUnavailable."""
    if isinstance(exc, IntegrityError):
        return StorageConflict(f"Write conflict: {exc.orig}")
    if isinstance(exc, DBAPIError):
        orig = exc.orig
        code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if code in _CONFLICT_SQLSTATES or "database is locked" in str(orig).lower():
            return StorageConflict(f"Lock conflict: {orig}")
    return StorageUnavailable(f"Storage error: {exc}")


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Commit on success, roll back on every failure path."""
    try:
        yield db
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise translate_storage_error(exc) from exc
    except BaseException:
        await db.rollback()
        raise


async def run_atomic(
    db: AsyncSession,
    operation: Callable[..., Awaitable[T]],
    /,
    *args: Any,
    attempts: int | None = None,
    **kwargs: Any,
) -> T:
    """Run ``operation(db, *args, **kwargs)`` as one atomic unit, retrying on StorageConflict."""
    settings = get_settings()
    max_attempts = max(1, attempts if attempts is not None else settings.ledger_conflict_retries)
    name = getattr(operation, "__name__", repr(operation))

    attempt = 0
    while True:
        attempt += 1
        try:
            async with atomic(db):
                return await operation(db, *args, **kwargs)
        except StorageConflict as exc:
            if attempt >= max_attempts:
                logger.error("storage_conflict_exhausted", operation=name, attempts=attempt, error=exc.detail)
                raise
            logger.warning("storage_conflict_retry", operation=name, attempt=attempt, error=exc.detail)
            await asyncio.sleep(settings.ledger_retry_backoff_seconds * attempt)
