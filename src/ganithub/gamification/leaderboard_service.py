"""Leaderboards computed on demand from the ledger and activity records.

Ranking is standard competition ranking: rows with equal sort metrics
share a rank and the next distinct row takes its 1-based position
(1, 2, 2, 4). Only active student accounts are ranked.
"""

from __future__ import annotations

import enum
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ganithub.config import get_settings
from ganithub.db.models import STUDENT_ROLE, Attendance, CoinTransaction, TestAttempt, User
from ganithub.gamification.ledger_service import Direction
from ganithub.gamification.schemas import LeaderboardEntry


class LeaderboardKind(str, enum.Enum):
    COINS = "coins"
    TEST_SCORES = "test_scores"
    ATTENDANCE = "attendance"


def _clamp_limit(limit: int | None) -> int:
    settings = get_settings()
    if limit is None:
        limit = settings.leaderboard_default_limit
    return max(1, min(int(limit), settings.leaderboard_max_limit))


def _ranked_students(*metrics) -> Select:
    """Active students joined to their display names, grouped per user."""
    return (
        select(User.id.label("user_id"), User.first_name, User.last_name, *metrics)
        .select_from(User)
        .where(User.role == STUDENT_ROLE, User.is_active.is_(True))
        .group_by(User.id, User.first_name, User.last_name)
    )


def _coins_query(since: datetime | None) -> Select:
    total = func.sum(CoinTransaction.amount).label("metric")
    stmt = _ranked_students(total).join(CoinTransaction, CoinTransaction.user_id == User.id)
    stmt = stmt.where(CoinTransaction.direction == Direction.EARNED.value)
    if since is not None:
        stmt = stmt.where(CoinTransaction.created_at >= since)
    return stmt.order_by(total.desc(), User.id.asc())


def _test_scores_query(since: datetime | None) -> Select:
    average = func.avg(TestAttempt.percentage).label("metric")
    attempts = func.count(TestAttempt.id).label("attempts")
    stmt = _ranked_students(average, attempts).join(TestAttempt, TestAttempt.student_id == User.id)
    stmt = stmt.where(TestAttempt.status == "completed")
    if since is not None:
        stmt = stmt.where(TestAttempt.completed_at >= since)
    return stmt.order_by(average.desc(), attempts.desc(), User.id.asc())


def _attendance_query(since: datetime | None) -> Select:
    present = func.count(Attendance.id).label("metric")
    stmt = _ranked_students(present).join(Attendance, Attendance.student_id == User.id)
    stmt = stmt.where(Attendance.status == "present")
    if since is not None:
        stmt = stmt.where(Attendance.joined_at >= since)
    return stmt.order_by(present.desc(), User.id.asc())


_QUERIES = {
    LeaderboardKind.COINS: _coins_query,
    LeaderboardKind.TEST_SCORES: _test_scores_query,
    LeaderboardKind.ATTENDANCE: _attendance_query,
}


async def iter_leaderboard(
    db: AsyncSession,
    kind: LeaderboardKind | str,
    *,
    window_days: int | None = None,
    limit: int | None = None,
    now: datetime | None = None,
) -> AsyncIterator[LeaderboardEntry]:
    """Yield ranked leaderboard rows, best first.

    ``window_days`` restricts each kind to rows whose own timestamp falls
    within the last N days; None means all time.
    """
    try:
        kind = LeaderboardKind(kind)
    except ValueError:
        raise ValueError(f"Unknown leaderboard type: {kind}") from None

    since = None
    if window_days is not None:
        since = (now or datetime.now(timezone.utc)) - timedelta(days=window_days)

    stmt = _QUERIES[kind](since).limit(_clamp_limit(limit))
    result = await db.execute(stmt)

    rank = 0
    previous_key: tuple | None = None
    for position, row in enumerate(result.all(), start=1):
        attempts = int(row.attempts) if kind is LeaderboardKind.TEST_SCORES else None
        metric = float(row.metric or 0)
        key = (metric, attempts)
        if key != previous_key:
            rank = position
            previous_key = key
        yield LeaderboardEntry(
            rank=rank,
            user_id=row.user_id,
            first_name=row.first_name,
            last_name=row.last_name,
            metric=metric,
            attempts=attempts,
        )


async def get_leaderboard(
    db: AsyncSession,
    kind: LeaderboardKind | str,
    *,
    window_days: int | None = None,
    limit: int | None = None,
    now: datetime | None = None,
) -> list[LeaderboardEntry]:
    return [
        entry
        async for entry in iter_leaderboard(db, kind, window_days=window_days, limit=limit, now=now)
    ]
