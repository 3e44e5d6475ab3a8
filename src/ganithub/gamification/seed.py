"""Default badge definitions."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ganithub.db.models import Badge

logger = logging.getLogger(__name__)

DEFAULT_BADGES: list[dict] = [
    {
        "slug": "first_steps",
        "name": "First Steps",
        "description": "Complete your first test",
        "badge_type": "milestone",
        "criteria_kind": "test_score",
        "criteria_threshold": 1,
        "coin_reward": 10,
        "sort_order": 1,
    },
    {
        "slug": "math_champ",
        "name": "Math Champ",
        "description": "Score 90% or higher on a test",
        "badge_type": "achievement",
        "criteria_kind": "test_score",
        "criteria_threshold": 90,
        "coin_reward": 25,
        "sort_order": 2,
    },
    {
        "slug": "perfect_score",
        "name": "Perfect Score",
        "description": "Score 100% on a test",
        "badge_type": "achievement",
        "criteria_kind": "test_score",
        "criteria_threshold": 100,
        "coin_reward": 50,
        "sort_order": 3,
    },
    {
        "slug": "consistent_learner",
        "name": "Consistent Learner",
        "description": "Attend 10 classes",
        "badge_type": "milestone",
        "criteria_kind": "attendance",
        "criteria_threshold": 10,
        "coin_reward": 30,
        "sort_order": 4,
    },
    {
        "slug": "video_explorer",
        "name": "Video Explorer",
        "description": "Complete 5 video lessons",
        "badge_type": "milestone",
        "criteria_kind": "video_completion",
        "criteria_threshold": 5,
        "coin_reward": 20,
        "sort_order": 5,
    },
    {
        "slug": "coin_collector",
        "name": "Coin Collector",
        "description": "Earn 100 coins",
        "badge_type": "milestone",
        "criteria_kind": "total_coins",
        "criteria_threshold": 100,
        "coin_reward": 25,
        "sort_order": 6,
    },
]


async def seed_badges(db: AsyncSession) -> int:
    """Insert default badges missing by slug. Returns the number inserted."""
    result = await db.execute(select(Badge.slug))
    existing = set(result.scalars())

    seeded = 0
    for badge_data in DEFAULT_BADGES:
        if badge_data["slug"] in existing:
            continue
        db.add(Badge(**badge_data))
        seeded += 1

    await db.commit()
    logger.info("Seeded %d badge definitions", seeded)
    return seeded
