"""structlog setup for the gamification engine.

Every event carries ``service``, ``environment`` and ``version`` so ledger
and badge events can be told apart from the host application's logs.
"""

import logging
from collections.abc import MutableMapping
from typing import Any

import structlog

from ganithub.config import Settings

SERVICE_NAME = "ganithub-gamification"

# Chatty at INFO; only surfaced when the engine itself runs at DEBUG.
_NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncio")


def service_context(settings: Settings) -> structlog.types.Processor:
    """Processor stamping service identity onto every event."""

    def _add_service(
        logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
    ) -> MutableMapping[str, Any]:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("environment", settings.environment)
        event_dict.setdefault("version", settings.app_version)
        return event_dict

    return _add_service


def setup_logging(settings: Settings) -> None:
    """Configure structlog for JSON or console output."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            service_context(settings),
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level)
    logging.getLogger("ganithub").setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)
