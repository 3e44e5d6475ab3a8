"""Append-only coin transaction log with source-keyed idempotency."""

from __future__ import annotations

import enum

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ganithub.db.models import CoinTransaction
from ganithub.gamification.errors import DuplicateSource, InvalidAmount

logger = structlog.get_logger()


class Direction(str, enum.Enum):
    EARNED = "earned"
    SPENT = "spent"


class SourceKind:
    """Known source kinds. Activity kinds are used as source kinds directly."""

    BADGE_EARNED = "badge_earned"
    MANUAL_AWARD = "manual_award"
    COIN_SPEND = "coin_spend"


def validate_amount(amount: object) -> int:
    """Return ``amount`` if it is a positive integer, else raise InvalidAmount."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(f"Coin amount must be a positive integer, got {amount!r}")
    return amount


async def has_source(db: AsyncSession, user_id: int, source_kind: str, source_ref: str) -> bool:
    """Check whether a transaction for this idempotency key already exists."""
    result = await db.execute(
        select(CoinTransaction.id).where(
            CoinTransaction.user_id == user_id,
            CoinTransaction.source_kind == source_kind,
            CoinTransaction.source_ref == source_ref,
        )
    )
    return result.first() is not None


async def append_transaction(
    db: AsyncSession,
    user_id: int,
    direction: Direction | str,
    amount: int,
    reason: str,
    source_kind: str,
    source_ref: str | int | None = None,
) -> CoinTransaction:
    """Append a transaction row and flush it.

    Transactions without a ``source_ref`` are never deduplicated. With one,
    a second row for the same (user, source_kind, source_ref) raises
    DuplicateSource; the unique constraint backs this check under
    concurrency.
    """
    amount = validate_amount(amount)
    direction = Direction(direction)
    ref = str(source_ref) if source_ref is not None else None

    if ref is not None and await has_source(db, user_id, source_kind, ref):
        raise DuplicateSource(user_id, source_kind, ref)

    entry = CoinTransaction(
        user_id=user_id,
        direction=direction.value,
        amount=amount,
        reason=reason,
        source_kind=source_kind,
        source_ref=ref,
    )
    db.add(entry)
    await db.flush()

    logger.debug(
        "coin_transaction_appended",
        transaction_id=entry.id,
        user_id=user_id,
        direction=direction.value,
        amount=amount,
        source_kind=source_kind,
        source_ref=ref,
    )
    return entry


async def recent_transactions(db: AsyncSession, user_id: int, limit: int = 20) -> list[CoinTransaction]:
    """Newest transactions first; ties on created_at fall back to insertion order."""
    result = await db.execute(
        select(CoinTransaction)
        .where(CoinTransaction.user_id == user_id)
        .order_by(CoinTransaction.created_at.desc(), CoinTransaction.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def sum_by_direction(db: AsyncSession, user_id: int) -> tuple[int, int]:
    """Return (total earned, total spent) recomputed from the log."""
    result = await db.execute(
        select(CoinTransaction.direction, func.coalesce(func.sum(CoinTransaction.amount), 0))
        .where(CoinTransaction.user_id == user_id)
        .group_by(CoinTransaction.direction)
    )
    totals = {direction: int(total) for direction, total in result.all()}
    return totals.get(Direction.EARNED.value, 0), totals.get(Direction.SPENT.value, 0)
