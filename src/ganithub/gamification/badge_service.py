"""Badge lookups and per-user badge progress views."""

from __future__ import annotations

from sqlalchemy import and_, false, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ganithub.db.models import Badge, UserBadge
from ganithub.gamification.errors import BadgeNotFound
from ganithub.gamification.schemas import UserBadgeStatus, UserBadgesResponse


async def get_badge(db: AsyncSession, badge_id: int) -> Badge:
    badge = await db.get(Badge, badge_id)
    if badge is None:
        raise BadgeNotFound(badge_id)
    return badge


async def get_badge_by_slug(db: AsyncSession, slug: str) -> Badge | None:
    """Fetch a badge definition by slug."""
    result = await db.execute(select(Badge).where(Badge.slug == slug))
    return result.scalar_one_or_none()


async def get_user_badges(db: AsyncSession, user_id: int) -> UserBadgesResponse:
    """Every active badge with the user's progress.

    Completed badges come first (newest earned first), then the rest by name.
    """
    result = await db.execute(
        select(Badge, UserBadge)
        .outerjoin(UserBadge, and_(UserBadge.badge_id == Badge.id, UserBadge.user_id == user_id))
        .where(Badge.is_active.is_(True))
        .order_by(
            func.coalesce(UserBadge.completed, false()).desc(),
            UserBadge.earned_at.desc().nulls_last(),
            Badge.name.asc(),
        )
        .execution_options(populate_existing=True)
    )

    statuses = [
        UserBadgeStatus(
            badge_id=badge.id,
            slug=badge.slug,
            name=badge.name,
            description=badge.description,
            badge_type=badge.badge_type,
            criteria_kind=badge.criteria_kind,
            criteria_threshold=badge.criteria_threshold,
            coin_reward=badge.coin_reward,
            icon_url=badge.icon_url,
            progress_value=ub.progress_value if ub else 0.0,
            completed=ub.completed if ub else False,
            earned_at=ub.earned_at if ub else None,
        )
        for badge, ub in result.all()
    ]

    return UserBadgesResponse(
        badges=statuses,
        total_available=len(statuses),
        total_earned=sum(1 for s in statuses if s.completed),
    )
