"""Leaderboard ranking tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ganithub.db import models
from ganithub.gamification.activity_service import award_coins, spend_coins
from ganithub.gamification.leaderboard_service import LeaderboardKind, get_leaderboard, iter_leaderboard


class TestCoinsLeaderboard:
    """Lifetime and windowed coin rankings."""

    @pytest.mark.asyncio
    async def test_competition_ranking_with_ties(self, db_session, make_student):
        users = [await make_student() for _ in range(4)]
        for user_id, amount in zip(users, [50, 30, 30, 10]):
            await award_coins(db_session, user_id, amount)

        board = await get_leaderboard(db_session, LeaderboardKind.COINS)

        assert [(e.user_id, e.metric, e.rank) for e in board] == [
            (users[0], 50, 1),
            (users[1], 30, 2),
            (users[2], 30, 2),
            (users[3], 10, 4),
        ]
        assert all(e.attempts is None for e in board)

    @pytest.mark.asyncio
    async def test_limit_applies_after_ordering(self, db_session, make_student):
        users = [await make_student() for _ in range(4)]
        for user_id, amount in zip(users, [50, 30, 30, 10]):
            await award_coins(db_session, user_id, amount)

        board = await get_leaderboard(db_session, "coins", limit=3)

        assert [e.user_id for e in board] == users[:3]
        assert [e.rank for e in board] == [1, 2, 2]

    @pytest.mark.asyncio
    async def test_spending_does_not_lower_rank(self, db_session, make_student):
        a, b = await make_student(), await make_student()
        await award_coins(db_session, a, 40)
        await award_coins(db_session, b, 30)
        await spend_coins(db_session, a, 35, "Avatar frame")

        board = await get_leaderboard(db_session, "coins")

        assert [e.user_id for e in board] == [a, b]

    @pytest.mark.asyncio
    async def test_window_filters_old_transactions(self, db_session, make_student):
        a, b = await make_student(), await make_student()
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        rows = [(a, 100, now - timedelta(days=30)), (a, 5, now - timedelta(days=1)), (b, 20, now - timedelta(days=2))]
        for i, (user_id, amount, created_at) in enumerate(rows):
            db_session.add(
                models.CoinTransaction(
                    user_id=user_id,
                    direction="earned",
                    amount=amount,
                    reason="seed",
                    source_kind="manual_award",
                    source_ref=str(i),
                    created_at=created_at,
                )
            )
        await db_session.commit()

        weekly = await get_leaderboard(db_session, "coins", window_days=7, now=now)
        all_time = await get_leaderboard(db_session, "coins", now=now)

        assert [(e.user_id, e.metric) for e in weekly] == [(b, 20), (a, 5)]
        assert [(e.user_id, e.metric) for e in all_time] == [(a, 105), (b, 20)]


class TestTestScoresLeaderboard:
    """Average percentage rankings."""

    @pytest.mark.asyncio
    async def test_ties_broken_by_attempt_count(self, db_session, make_student, add_test_attempt):
        a, b, c = await make_student(), await make_student(), await make_student()
        await add_test_attempt(a, 80)
        for pct in [70, 90]:
            await add_test_attempt(b, pct)
        await add_test_attempt(c, 95)
        await add_test_attempt(c, 10, status="in_progress")

        board = await get_leaderboard(db_session, LeaderboardKind.TEST_SCORES)

        assert [(e.user_id, e.metric, e.attempts, e.rank) for e in board] == [
            (c, 95, 1, 1),
            (b, 80, 2, 2),
            (a, 80, 1, 3),
        ]

    @pytest.mark.asyncio
    async def test_equal_average_and_attempts_share_rank(self, db_session, make_student, add_test_attempt):
        a, b = await make_student(), await make_student()
        await add_test_attempt(a, 75)
        await add_test_attempt(b, 75)

        board = await get_leaderboard(db_session, "test_scores")

        assert [(e.user_id, e.rank) for e in board] == [(a, 1), (b, 1)]


class TestAttendanceLeaderboard:
    @pytest.mark.asyncio
    async def test_counts_present_rows(self, db_session, make_student, add_attendance):
        a, b = await make_student(), await make_student()
        await add_attendance(a, count=2)
        await add_attendance(a, count=3, status="absent")
        await add_attendance(b, count=4)

        board = [entry async for entry in iter_leaderboard(db_session, "attendance")]

        assert [(e.user_id, e.metric, e.rank) for e in board] == [(b, 4, 1), (a, 2, 2)]


class TestArguments:
    """Kind validation and limit clamping."""

    @pytest.mark.asyncio
    async def test_unknown_kind(self, db_session):
        with pytest.raises(ValueError, match="Unknown leaderboard type"):
            await get_leaderboard(db_session, "streaks")

    @pytest.mark.asyncio
    async def test_limit_clamped_to_one(self, db_session, make_student):
        a, b = await make_student(), await make_student()
        await award_coins(db_session, a, 5)
        await award_coins(db_session, b, 3)

        assert len(await get_leaderboard(db_session, "coins", limit=0)) == 1

    @pytest.mark.asyncio
    async def test_limit_clamped_to_max(self, db_session, make_student, monkeypatch):
        from ganithub.config import get_settings

        monkeypatch.setattr(get_settings(), "leaderboard_max_limit", 2)
        for amount in [5, 4, 3]:
            await award_coins(db_session, await make_student(), amount)

        assert len(await get_leaderboard(db_session, "coins", limit=50)) == 2

    @pytest.mark.asyncio
    async def test_empty_board(self, db_session):
        assert await get_leaderboard(db_session, "coins") == []


class TestEligibility:
    """Only active students appear, with their display names."""

    @pytest.mark.asyncio
    async def test_staff_and_inactive_accounts_excluded(
        self, db_session, make_student, add_test_attempt, add_attendance
    ):
        student = await make_student()
        tutor = await make_student(role="tutor")
        admin = await make_student(role="admin")
        inactive = await make_student(is_active=False)
        for user_id, amount in [(student, 10), (tutor, 50), (admin, 40), (inactive, 30)]:
            await award_coins(db_session, user_id, amount)
            await add_test_attempt(user_id, 50 + amount // 2)
            await add_attendance(user_id, count=amount // 10)

        for kind in LeaderboardKind:
            board = await get_leaderboard(db_session, kind)
            assert [(e.user_id, e.rank) for e in board] == [(student, 1)], kind

    @pytest.mark.asyncio
    async def test_entries_carry_names(self, db_session, make_student):
        user_id = await make_student()
        await award_coins(db_session, user_id, 5)

        [entry] = await get_leaderboard(db_session, "coins")

        user = await db_session.get(models.User, user_id)
        assert (entry.first_name, entry.last_name) == (user.first_name, user.last_name)
        assert entry.first_name == "Student"
