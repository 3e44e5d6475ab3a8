"""Learning activity rewards, manual awards and coin spending."""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ganithub.gamification.achievement_engine import AchievementEngine
from ganithub.gamification.balance_service import post_transaction
from ganithub.gamification.errors import DuplicateSource, UnknownActivity
from ganithub.gamification.ledger_service import Direction, SourceKind, validate_amount
from ganithub.gamification.schemas import ActivityResult, BalanceSnapshot
from ganithub.gamification.unit_of_work import run_atomic

logger = structlog.get_logger()


@dataclass(frozen=True)
class ActivityRule:
    amount: int
    reason: str


ACTIVITY_REWARDS: dict[str, ActivityRule] = {
    "test_completion": ActivityRule(10, "Test completed"),
    "class_attendance": ActivityRule(5, "Class attended"),
    "video_completion": ActivityRule(3, "Video completed"),
    "daily_login": ActivityRule(2, "Daily login bonus"),
    "perfect_score": ActivityRule(20, "Perfect test score"),
    "streak_bonus": ActivityRule(15, "Learning streak bonus"),
}


async def _earn_and_evaluate(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    amount: int,
    reason: str,
    source_kind: str,
    source_ref: str | int | None,
) -> ActivityResult:
    try:
        await run_atomic(
            db, post_transaction, user_id, Direction.EARNED, amount, reason, source_kind, source_ref
        )
    except DuplicateSource:
        logger.info("activity_replayed", user_id=user_id, source_kind=source_kind, source_ref=str(source_ref))
        return ActivityResult()

    engine = AchievementEngine(db, redis)
    new_badges = await engine.evaluate(user_id)
    return ActivityResult(coins_awarded=amount + engine.coins_awarded, new_badges=new_badges)


async def record_activity(
    db: AsyncSession,
    user_id: int,
    activity_kind: str,
    source_ref: str | int | None = None,
    redis: object | None = None,
) -> ActivityResult:
    """Reward a learning activity and evaluate badges.

    Replaying the same (activity_kind, source_ref) for a user is a no-op
    returning a zero result.
    """
    rule = ACTIVITY_REWARDS.get(activity_kind)
    if rule is None:
        raise UnknownActivity(activity_kind)
    return await _earn_and_evaluate(db, redis, user_id, rule.amount, rule.reason, activity_kind, source_ref)


async def award_coins(
    db: AsyncSession,
    user_id: int,
    amount: int,
    reason: str = "Manual award",
    source_ref: str | int | None = None,
    redis: object | None = None,
) -> ActivityResult:
    """Admin award of an arbitrary positive amount, followed by badge evaluation."""
    amount = validate_amount(amount)
    return await _earn_and_evaluate(db, redis, user_id, amount, reason, SourceKind.MANUAL_AWARD, source_ref)


async def spend_coins(
    db: AsyncSession,
    user_id: int,
    amount: int,
    reason: str,
    source_kind: str = SourceKind.COIN_SPEND,
    source_ref: str | int | None = None,
) -> BalanceSnapshot:
    """Spend coins atomically. Raises InsufficientBalance or DuplicateSource without writing."""
    amount = validate_amount(amount)
    return await run_atomic(
        db, post_transaction, user_id, Direction.SPENT, amount, reason, source_kind, source_ref
    )
