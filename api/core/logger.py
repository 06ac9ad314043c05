"""Centralized logging configuration using structlog.

Provides consistent, structured logging across the service:
- JSON output for production (LOG_FORMAT=json)
- Colored console output for local development (default)
- Third-party library logs (uvicorn, sqlalchemy) rendered through the same chain

Usage:
    from core import get_logger
    logger = get_logger(__name__)
    logger.info("completion.toggled", habit_id=12, date="2024-06-01")
"""

import logging
import os
import sys

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars
from structlog.types import Processor

__all__ = [
    "bind_contextvars",
    "clear_contextvars",
    "configure_logging",
    "get_logger",
]


def _get_log_level() -> int:
    """Get log level from environment, defaulting to INFO."""
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def _is_json_format() -> bool:
    """Determine if JSON output is enabled (production mode)."""
    return os.environ.get("LOG_FORMAT", "").lower() == "json"


def configure_logging() -> None:
    """Configure structlog and stdlib logging. Call once at application startup.

    This sets up:
    1. structlog processors for structured logging
    2. stdlib logging to use structlog's ProcessorFormatter
    3. Third-party library log formatting (uvicorn, sqlalchemy, alembic)
    """
    log_level = _get_log_level()
    use_json = _is_json_format()

    # Shared processors for both structlog and stdlib logs
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if use_json:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True, exception_formatter=structlog.dev.plain_traceback
        )

    structlog.configure(
        processors=shared_processors
        + [
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Third-party logs (uvicorn, sqlalchemy) get the same formatting
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # Quiet noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name, typically __name__ of the calling module.

    Returns:
        A structlog BoundLogger that supports structured key-value logging.

    Example:
        logger = get_logger(__name__)
        logger.info("habit.created", habit_id=3, user_id="user_123")
        logger.warning("migration.habit.failed", habit_id=7, error="bad key")
    """
    return structlog.stdlib.get_logger(name)
