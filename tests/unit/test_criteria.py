"""Criteria evaluator tests and registry extension."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ganithub.db import models
from ganithub.gamification.achievement_engine import AchievementEngine
from ganithub.gamification.balance_service import apply_delta
from ganithub.gamification.criteria import (
    CRITERIA_EVALUATORS,
    best_test_percentage,
    classes_attended,
    get_evaluator,
    lifetime_coins,
    register_evaluator,
    videos_completed,
)


@pytest.fixture
def evaluator_registry():
    """Restore the evaluator registry after a test registers into it."""
    saved = dict(CRITERIA_EVALUATORS)
    yield CRITERIA_EVALUATORS
    CRITERIA_EVALUATORS.clear()
    CRITERIA_EVALUATORS.update(saved)


class TestBuiltinEvaluators:
    """Progress values for the built-in criteria kinds."""

    def test_builtin_kinds_registered(self):
        for kind in ["test_score", "attendance", "video_completion", "total_coins"]:
            assert get_evaluator(kind) is not None
        assert get_evaluator("login_streak") is None

    @pytest.mark.asyncio
    async def test_best_percentage_over_completed_attempts(self, db_session, student_id, add_test_attempt):
        await add_test_attempt(student_id, 72.5)
        await add_test_attempt(student_id, 88.0)
        await add_test_attempt(student_id, 99.0, status="in_progress")

        assert await best_test_percentage(db_session, student_id) == 88.0

    @pytest.mark.asyncio
    async def test_no_attempts_is_zero(self, db_session, student_id):
        assert await best_test_percentage(db_session, student_id) == 0.0

    @pytest.mark.asyncio
    async def test_attendance_counts_present_only(self, db_session, student_id, add_attendance):
        await add_attendance(student_id, count=3)
        await add_attendance(student_id, count=2, status="absent")

        assert await classes_attended(db_session, student_id) == 3.0

    @pytest.mark.asyncio
    async def test_video_completion_counts_completed(self, db_session, student_id):
        for video_id, completed in [(1, True), (2, True), (3, False)]:
            db_session.add(
                models.VideoProgress(
                    video_id=video_id,
                    student_id=student_id,
                    watched_seconds=600,
                    completed=completed,
                    completed_at=datetime.now(timezone.utc) if completed else None,
                )
            )
        await db_session.commit()

        assert await videos_completed(db_session, student_id) == 2.0

    @pytest.mark.asyncio
    async def test_total_coins_is_lifetime_earned(self, db_session, student_id):
        assert await lifetime_coins(db_session, student_id) == 0.0

        await apply_delta(db_session, student_id, "earned", 40)
        await apply_delta(db_session, student_id, "spent", 15)
        await db_session.commit()

        assert await lifetime_coins(db_session, student_id) == 40.0


class TestRegistry:
    """New criteria kinds plug in without touching the engine."""

    @pytest.mark.asyncio
    async def test_registered_kind_drives_badges(self, db_session, student_id, make_badge, evaluator_registry):
        @register_evaluator("quiz_streak")
        async def quiz_streak(db, user_id):
            return 7

        badge_id = await make_badge(criteria_kind="quiz_streak", threshold=5, coin_reward=0)

        assert get_evaluator("quiz_streak") is quiz_streak
        assert await AchievementEngine(db_session).evaluate(student_id) == [badge_id]

    @pytest.mark.asyncio
    async def test_engine_accepts_custom_evaluator_table(self, db_session, student_id, make_badge):
        async def always_full(db, user_id):
            return 100.0

        badge_id = await make_badge(criteria_kind="test_score", threshold=90, coin_reward=0)
        engine = AchievementEngine(db_session, evaluators={"test_score": always_full})

        assert await engine.evaluate(student_id) == [badge_id]
