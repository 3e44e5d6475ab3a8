"""Startup and shutdown hooks for a host application's lifespan."""

import logging

from sqlalchemy.exc import SQLAlchemyError

from ganithub.config import Settings, get_settings
from ganithub.database import close_db, get_session, init_db
from ganithub.gamification.seed import seed_badges
from ganithub.logging_config import setup_logging
from ganithub.redis_client import close_redis, init_redis

logger = logging.getLogger(__name__)


async def startup(settings: Settings | None = None) -> None:
    """Configure logging, open the engine and Redis pool, seed default badges."""
    settings = settings or get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)
    if settings.redis_url:
        await init_redis(settings.redis_url)

    # Seed badge definitions (idempotent)
    try:
        async for db in get_session():
            await seed_badges(db)
            break
    except SQLAlchemyError:
        logger.warning("Badge seeding failed (tables may not exist yet)", exc_info=True)


async def shutdown() -> None:
    await close_db()
    await close_redis()
