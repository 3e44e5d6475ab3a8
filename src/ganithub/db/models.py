"""ORM models for the coin ledger, badges and the activity records they read.

The engine owns ``coin_transactions``, ``user_coins`` and ``user_badges``.
``users``, ``badges``, ``test_attempts``, ``attendance`` and
``video_progress`` belong to other subsystems and are only read here.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ganithub.db.base import Base, BigIntPK


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Users (external)
# ---------------------------------------------------------------------------


STUDENT_ROLE = "student"


class User(Base):
    """Maps to the 'users' table. Role is one of admin, tutor, student, parent."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(64), nullable=False)
    last_name: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=STUDENT_ROLE, server_default=STUDENT_ROLE)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Coin ledger
# ---------------------------------------------------------------------------


class CoinTransaction(Base):
    """Immutable coin transaction log. (user_id, source_kind, source_ref) is the idempotency key."""

    __tablename__ = "coin_transactions"
    __table_args__ = (
        UniqueConstraint("user_id", "source_kind", "source_ref", name="coin_transactions_source_key"),
        CheckConstraint("amount > 0", name="coin_transactions_amount_positive"),
        CheckConstraint("direction IN ('earned', 'spent')", name="coin_transactions_direction_check"),
        Index("idx_coin_transactions_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(256), nullable=False)
    source_kind: Mapped[str] = mapped_column(String(32), nullable=False)
    source_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class UserCoins(Base):
    """Denormalized coin balance, single row per user, updated with every transaction."""

    __tablename__ = "user_coins"
    __table_args__ = (
        CheckConstraint("current_balance >= 0", name="user_coins_balance_non_negative"),
        CheckConstraint(
            "current_balance = total_earned - total_spent",
            name="user_coins_balance_matches_totals",
        ),
    )

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    total_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    total_spent: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    current_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------


class Badge(Base):
    """Badge definitions. Created by admins or the default seed, read-only to the engine."""

    __tablename__ = "badges"
    __table_args__ = (
        CheckConstraint("coin_reward >= 0", name="badges_coin_reward_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    badge_type: Mapped[str] = mapped_column(String(16), nullable=False, default="achievement")
    criteria_kind: Mapped[str] = mapped_column(String(32), nullable=False)
    criteria_threshold: Mapped[float] = mapped_column(Float, nullable=False)
    coin_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    icon_url: Mapped[str | None] = mapped_column(String(256), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class UserBadge(Base):
    """Badge progress per user. UNIQUE(user_id, badge_id); completed never reverts."""

    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="user_badges_user_id_badge_id_key"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    badge_id: Mapped[int] = mapped_column(Integer, ForeignKey("badges.id"), nullable=False)
    progress_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    earned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    badge: Mapped[Badge] = relationship("Badge", lazy="joined")


# ---------------------------------------------------------------------------
# Activity records (external, read-only)
# ---------------------------------------------------------------------------


class TestAttempt(Base):
    """A student's attempt at a test. Percentage is 0-100."""

    __tablename__ = "test_attempts"
    __table_args__ = (
        Index("idx_test_attempts_student_status", "student_id", "status"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    test_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    student_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="completed")
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=_utcnow)


class Attendance(Base):
    """Live-class attendance rows; status is present, absent or late."""

    __tablename__ = "attendance"
    __table_args__ = (
        Index("idx_attendance_student_status", "student_id", "status"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    class_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    student_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="present")
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class VideoProgress(Base):
    """Recorded-lesson watch progress per student and video."""

    __tablename__ = "video_progress"
    __table_args__ = (
        UniqueConstraint("student_id", "video_id", name="video_progress_student_video_key"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    video_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    student_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    watched_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
