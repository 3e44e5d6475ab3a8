"""Platform-wide gamification statistics."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ganithub.config import get_settings
from ganithub.db.models import CoinTransaction, UserBadge, UserCoins
from ganithub.gamification.schemas import GamificationStats


async def get_statistics(db: AsyncSession, now: datetime | None = None) -> GamificationStats:
    """Aggregate counters for admin dashboards."""
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=get_settings().stats_active_window_days)

    balances = await db.execute(
        select(
            func.count(UserCoins.user_id).filter(UserCoins.current_balance > 0),
            func.coalesce(func.sum(UserCoins.current_balance), 0),
        )
    )
    active_users, circulation = balances.one()

    badges_earned = await db.scalar(
        select(func.count(UserBadge.id)).where(UserBadge.completed.is_(True))
    )

    weekly_active = await db.scalar(
        select(func.count(func.distinct(CoinTransaction.user_id))).where(CoinTransaction.created_at >= since)
    )

    return GamificationStats(
        active_users=int(active_users or 0),
        coins_in_circulation=int(circulation or 0),
        badges_earned=int(badges_earned or 0),
        weekly_active_users=int(weekly_active or 0),
    )
