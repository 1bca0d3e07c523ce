"""
Logging configuration.

Configures loguru sinks for workers and the scheduler.
Sets up log rotation and retention policies.
"""

import sys

from loguru import logger

from app.config.settings import Settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
    "<level>{message}</level> | {extra}"
)


def setup_logging(settings: Settings, component: str = "worker") -> None:
    """
    Configure logger with stderr and rotating file sinks.

    Args:
        settings: Application settings
        component: Process name, bound into every record
    """
    logger.remove()
    logger.configure(extra={"component": component})
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format=LOG_FORMAT,
        backtrace=settings.debug,
        diagnose=settings.debug,
    )

    if settings.log_file:
        logger.add(
            settings.log_file,
            rotation="1 day",
            retention="7 days",
            level=settings.log_level,
            encoding="utf-8",
            enqueue=True,
        )

    logger.info(f"Logging configured for {component} ({settings.environment})")
