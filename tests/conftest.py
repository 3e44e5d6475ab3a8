"""Shared test fixtures."""

from __future__ import annotations

import itertools
from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from ganithub.config import get_settings
from ganithub.database import close_db, get_engine, get_session, init_db
from ganithub.db import models
from ganithub.db.base import Base


@pytest.fixture(autouse=True)
def settings_env(tmp_path, monkeypatch):
    """Point settings at a throwaway SQLite file with no Redis and no retry backoff."""
    monkeypatch.setenv("GANITHUB_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'ganithub.db'}")
    monkeypatch.setenv("GANITHUB_REDIS_URL", "")
    monkeypatch.setenv("GANITHUB_LEDGER_RETRY_BACKOFF_SECONDS", "0")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def db_session(settings_env) -> AsyncGenerator[AsyncSession, None]:
    """Session on a fresh schema created from the ORM metadata."""
    await init_db(settings_env.database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    sessions = get_session()
    session = await anext(sessions)
    yield session
    await sessions.aclose()
    await close_db()


@pytest.fixture
def make_student(db_session: AsyncSession):
    """Factory creating committed student users. Returns the new user id."""
    counter = itertools.count(1)

    async def _make(role: str = "student", is_active: bool = True) -> int:
        n = next(counter)
        user = models.User(
            email=f"student{n}@ganithub.test",
            first_name="Student",
            last_name=str(n),
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        return user.id

    return _make


@pytest_asyncio.fixture
async def student_id(make_student) -> int:
    return await make_student()


@pytest.fixture
def make_badge(db_session: AsyncSession):
    """Factory creating committed badge definitions. Returns the badge id."""
    counter = itertools.count(1)

    async def _make(
        criteria_kind: str = "test_score",
        threshold: float = 90,
        coin_reward: int = 25,
        name: str | None = None,
        sort_order: int = 0,
        is_active: bool = True,
    ) -> int:
        n = next(counter)
        badge = models.Badge(
            slug=f"badge_{n}",
            name=name or f"Badge {n}",
            badge_type="achievement",
            criteria_kind=criteria_kind,
            criteria_threshold=threshold,
            coin_reward=coin_reward,
            sort_order=sort_order,
            is_active=is_active,
        )
        db_session.add(badge)
        await db_session.commit()
        return badge.id

    return _make


@pytest.fixture
def add_test_attempt(db_session: AsyncSession):
    """Record a test attempt for a student and commit it."""

    async def _add(
        student_id: int,
        percentage: float,
        status: str = "completed",
        completed_at: datetime | None = None,
        test_id: int = 1,
    ) -> int:
        attempt = models.TestAttempt(
            test_id=test_id,
            student_id=student_id,
            score=int(percentage),
            percentage=percentage,
            status=status,
            completed_at=completed_at or datetime.now(timezone.utc),
        )
        db_session.add(attempt)
        await db_session.commit()
        return attempt.id

    return _add


@pytest.fixture
def add_attendance(db_session: AsyncSession):
    """Record attendance rows for a student and commit them."""

    async def _add(student_id: int, count: int = 1, status: str = "present", joined_at: datetime | None = None) -> None:
        for i in range(count):
            db_session.add(
                models.Attendance(
                    class_id=i + 1,
                    student_id=student_id,
                    status=status,
                    duration_minutes=45,
                    joined_at=joined_at or datetime.now(timezone.utc),
                )
            )
        await db_session.commit()

    return _add
