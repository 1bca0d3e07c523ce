"""
Dramatiq broker configuration.

Task modules import this module before declaring actors so that the
actors bind to the Redis broker built here.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import (
    AgeLimit,
    Callbacks,
    CurrentMessage,
    Pipelines,
    Retries,
    ShutdownNotifications,
    TimeLimit,
)
from loguru import logger

from app.config.constants import (
    TASK_MAX_BACKOFF_MS,
    TASK_MAX_RETRIES,
    TASK_MIN_BACKOFF_MS,
)
from app.config.settings import Settings, get_settings


def create_broker(settings: Settings) -> RedisBroker:
    """
    Build the Redis broker with an explicit middleware stack.

    TimeLimit enforces the per-actor time_limit, ShutdownNotifications
    lets a running tick stop between chunks on worker shutdown,
    CurrentMessage exposes the message id for log context and Retries
    re-runs a failed tick with exponential backoff.

    Args:
        settings: Application settings (redis_* fields)

    Returns:
        RedisBroker (not yet set as the global broker)
    """
    return RedisBroker(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password or None,
        db=settings.redis_db,
        middleware=[
            AgeLimit(),
            TimeLimit(),
            ShutdownNotifications(),
            Callbacks(),
            Pipelines(),
            Retries(
                max_retries=TASK_MAX_RETRIES,
                min_backoff=TASK_MIN_BACKOFF_MS,
                max_backoff=TASK_MAX_BACKOFF_MS,
            ),
            CurrentMessage(),
        ],
    )


_settings = get_settings()
broker = create_broker(_settings)
dramatiq.set_broker(broker)

logger.info(
    f"Dramatiq broker initialized: "
    f"redis://{_settings.redis_host}:{_settings.redis_port}/{_settings.redis_db}"
)
