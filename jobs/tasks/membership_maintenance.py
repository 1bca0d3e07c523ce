"""
Membership maintenance tasks.

Expiry moves lapsed memberships to inactive; compression deletes
memberships that stayed inactive past the grace period.
"""

import dramatiq
from loguru import logger

import jobs.broker  # noqa: F401  sets the default broker before actors are declared
from app.config.constants import MAINTENANCE_TIME_LIMIT_MS, TASK_MAX_RETRIES
from app.config.settings import Settings, get_settings
from app.services.membership.service import (
    CompressResult,
    ExpireResult,
    MembershipService,
)
from jobs.async_runner import run_async, run_in_local_session


@dramatiq.actor(max_retries=TASK_MAX_RETRIES, time_limit=MAINTENANCE_TIME_LIMIT_MS)
def expire_memberships() -> None:
    """Expire active memberships past their expiry."""
    logger.info("Starting membership expiry...")

    try:
        result = run_async(run_expire_memberships(get_settings()))
    except Exception as e:
        logger.exception(f"Membership expiry failed: {type(e).__name__}")
        raise

    logger.info(f"Membership expiry complete: {result.expired_count} expired")


@dramatiq.actor(max_retries=TASK_MAX_RETRIES, time_limit=MAINTENANCE_TIME_LIMIT_MS)
def compress_inactive_users() -> None:
    """Delete long-inactive memberships and relink their referrals."""
    logger.info("Starting inactive user compression...")

    try:
        result = run_async(run_compress_inactive_users(get_settings()))
    except Exception as e:
        logger.exception(f"Inactive user compression failed: {type(e).__name__}")
        raise

    logger.info(
        f"Compression complete: {result.compressed_count} users, "
        f"{result.relinked_count} referrals relinked"
    )


async def run_expire_memberships(settings: Settings) -> ExpireResult:
    return await run_in_local_session(
        settings.database_url,
        lambda session: MembershipService(
            session, settings.membership
        ).expire_memberships(),
    )


async def run_compress_inactive_users(settings: Settings) -> CompressResult:
    return await run_in_local_session(
        settings.database_url,
        lambda session: MembershipService(
            session, settings.membership
        ).compress_inactive_users(),
    )
