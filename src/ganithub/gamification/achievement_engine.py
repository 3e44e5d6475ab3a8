"""Achievement engine: evaluates badge criteria and awards badge coin bonuses."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ganithub.db.models import Badge, UserBadge
from ganithub.gamification.balance_service import apply_delta, lock_balance
from ganithub.gamification.criteria import CRITERIA_EVALUATORS, Evaluator
from ganithub.gamification.errors import BadgeNotFound, DuplicateSource
from ganithub.gamification.ledger_service import Direction, SourceKind, append_transaction
from ganithub.gamification.unit_of_work import run_atomic

logger = structlog.get_logger()

BADGE_EARNED_CHANNEL = "pubsub:badge_earned"


@dataclass(frozen=True)
class BadgeRule:
    """Detached copy of a badge definition, safe to use across rollbacks."""

    id: int
    slug: str
    name: str
    criteria_kind: str
    criteria_threshold: float
    coin_reward: int

    @classmethod
    def from_badge(cls, badge: Badge) -> BadgeRule:
        return cls(
            id=badge.id,
            slug=badge.slug,
            name=badge.name,
            criteria_kind=badge.criteria_kind,
            criteria_threshold=float(badge.criteria_threshold),
            coin_reward=badge.coin_reward,
        )


class AchievementEngine:
    """Evaluates active badges for a user.

    Each badge is evaluated in its own atomic unit: the progress upsert,
    the completion flag and the coin bonus commit together or not at all.
    """

    def __init__(
        self,
        db: AsyncSession,
        redis: object | None = None,
        evaluators: Mapping[str, Evaluator] | None = None,
    ) -> None:
        self.db = db
        self.redis = redis
        self.evaluators = evaluators if evaluators is not None else CRITERIA_EVALUATORS
        # Badge bonus coins paid through this engine instance.
        self.coins_awarded = 0

    async def _load_rules(self) -> list[BadgeRule]:
        result = await self.db.execute(
            select(Badge).where(Badge.is_active.is_(True)).order_by(Badge.sort_order, Badge.id)
        )
        return [BadgeRule.from_badge(b) for b in result.scalars()]

    async def evaluate(self, user_id: int) -> list[int]:
        """Evaluate every active badge and return the ids newly earned by this call.

        Passes repeat until nothing transitions, so a badge bonus that
        pushes another criterion over its threshold is picked up here.
        """
        rules = await self._load_rules()
        earned: list[int] = []
        while True:
            transitioned = []
            for rule in rules:
                if rule.id in earned:
                    continue
                if await self._evaluate_rule(user_id, rule):
                    transitioned.append(rule.id)
            if not transitioned:
                break
            earned.extend(transitioned)
        return earned

    async def evaluate_badge(self, user_id: int, badge_id: int) -> bool:
        """Evaluate a single active badge. Returns True if it was earned by this call."""
        badge = await self.db.get(Badge, badge_id)
        if badge is None or not badge.is_active:
            raise BadgeNotFound(badge_id)
        return await self._evaluate_rule(user_id, BadgeRule.from_badge(badge))

    async def _evaluate_rule(self, user_id: int, rule: BadgeRule) -> bool:
        evaluator = self.evaluators.get(rule.criteria_kind)
        if evaluator is None:
            logger.warning(
                "badge_criteria_unsupported",
                badge_id=rule.id,
                badge_slug=rule.slug,
                criteria_kind=rule.criteria_kind,
            )
            return False

        bonus = await run_atomic(self.db, self._award_if_met, user_id, rule, evaluator)
        if bonus is None:
            return False

        self.coins_awarded += bonus
        logger.info("badge_earned", user_id=user_id, badge_id=rule.id, badge_slug=rule.slug, bonus=bonus)
        await self._emit_badge_earned(user_id, rule)
        return True

    async def _award_if_met(
        self,
        db: AsyncSession,
        user_id: int,
        rule: BadgeRule,
        evaluator: Evaluator,
    ) -> int | None:
        """Returns None when the badge was not earned, else the bonus paid."""
        # Coin-moving units take the balance lock before anything else.
        if rule.coin_reward > 0:
            await lock_balance(db, user_id)

        result = await db.execute(
            select(UserBadge)
            .where(UserBadge.user_id == user_id, UserBadge.badge_id == rule.id)
            .with_for_update(of=UserBadge)
            .execution_options(populate_existing=True)
        )
        progress = result.scalar_one_or_none()
        if progress is not None and progress.completed:
            return None

        value = float(await evaluator(db, user_id))
        now = datetime.now(timezone.utc)
        if progress is None:
            progress = UserBadge(
                user_id=user_id,
                badge_id=rule.id,
                progress_value=value,
                completed=False,
                updated_at=now,
            )
            db.add(progress)
        else:
            progress.progress_value = value
            progress.updated_at = now

        if value < rule.criteria_threshold:
            await db.flush()
            return None

        progress.completed = True
        progress.earned_at = now
        await db.flush()

        if rule.coin_reward <= 0:
            return 0
        try:
            await append_transaction(
                db,
                user_id,
                Direction.EARNED,
                rule.coin_reward,
                f"Badge earned: {rule.name}",
                SourceKind.BADGE_EARNED,
                str(rule.id),
            )
        except DuplicateSource:
            logger.warning("badge_bonus_already_paid", user_id=user_id, badge_id=rule.id)
            return 0
        await apply_delta(db, user_id, Direction.EARNED, rule.coin_reward)
        return rule.coin_reward

    async def _emit_badge_earned(self, user_id: int, rule: BadgeRule) -> None:
        """Publish a badge-earned event; delivery failures never affect the award."""
        if self.redis is None:
            return
        try:
            await self.redis.publish(  # type: ignore[attr-defined]
                BADGE_EARNED_CHANNEL,
                json.dumps({
                    "user_id": user_id,
                    "badge_id": rule.id,
                    "badge_slug": rule.slug,
                    "badge_name": rule.name,
                    "coin_reward": rule.coin_reward,
                }),
            )
        except Exception:
            logger.warning("badge_earned_publish_failed", user_id=user_id, badge_id=rule.id, exc_info=True)
