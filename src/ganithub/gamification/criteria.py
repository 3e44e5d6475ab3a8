"""Badge criteria evaluators.

An evaluator computes a user's progress value for one criteria kind.
Badges name their kind in ``criteria_kind``; the achievement engine looks
the evaluator up here, so adding a kind means registering a function:

    @register_evaluator("quiz_streak")
    async def quiz_streak(db, user_id):
        ...
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ganithub.db.models import Attendance, TestAttempt, UserCoins, VideoProgress

Evaluator = Callable[[AsyncSession, int], Awaitable[float]]

CRITERIA_EVALUATORS: dict[str, Evaluator] = {}


def register_evaluator(kind: str) -> Callable[[Evaluator], Evaluator]:
    """Register ``fn`` as the evaluator for ``kind``, replacing any previous one."""

    def decorator(fn: Evaluator) -> Evaluator:
        CRITERIA_EVALUATORS[kind] = fn
        return fn

    return decorator


def get_evaluator(kind: str) -> Evaluator | None:
    return CRITERIA_EVALUATORS.get(kind)


@register_evaluator("test_score")
async def best_test_percentage(db: AsyncSession, user_id: int) -> float:
    """Highest percentage over completed test attempts."""
    result = await db.execute(
        select(func.coalesce(func.max(TestAttempt.percentage), 0)).where(
            TestAttempt.student_id == user_id,
            TestAttempt.status == "completed",
        )
    )
    return float(result.scalar_one())


@register_evaluator("attendance")
async def classes_attended(db: AsyncSession, user_id: int) -> float:
    result = await db.execute(
        select(func.count(Attendance.id)).where(
            Attendance.student_id == user_id,
            Attendance.status == "present",
        )
    )
    return float(result.scalar_one())


@register_evaluator("video_completion")
async def videos_completed(db: AsyncSession, user_id: int) -> float:
    result = await db.execute(
        select(func.count(VideoProgress.id)).where(
            VideoProgress.student_id == user_id,
            VideoProgress.completed.is_(True),
        )
    )
    return float(result.scalar_one())


@register_evaluator("total_coins")
async def lifetime_coins(db: AsyncSession, user_id: int) -> float:
    """Lifetime coins earned; spending does not reduce progress."""
    result = await db.execute(select(UserCoins.total_earned).where(UserCoins.user_id == user_id))
    return float(result.scalar_one_or_none() or 0)
