"""
Job scheduler.

Enqueues the pipeline and maintenance actors on fixed intervals and
serves the health check endpoints. Work runs in dramatiq workers; the
scheduler only sends messages.

Run:
    python -m jobs.scheduler
"""

import asyncio
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from app.config.logging import setup_logging
from app.config.settings import Settings, get_settings
from app.services.payments.reserve_client import ReserveClient
from jobs.health import create_health_app, start_health_server, stop_health_server
from jobs.tasks.membership_maintenance import (
    compress_inactive_users,
    expire_memberships,
)
from jobs.tasks.payments_pipeline import process_payments


def create_scheduler() -> AsyncIOScheduler:
    """Create scheduler with single-instance, coalescing job defaults."""
    return AsyncIOScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 60,
        },
    )


def register_jobs(scheduler: AsyncIOScheduler, settings: Settings) -> None:
    """
    Register recurring jobs.

    Args:
        scheduler: Scheduler to add jobs to
        settings: Application settings (intervals)
    """
    scheduler.add_job(
        process_payments.send,
        trigger=IntervalTrigger(seconds=settings.payments.scan_interval_seconds),
        id="process_payments",
        name="Payments pipeline (scan -> sweep -> apply)",
        replace_existing=True,
    )
    scheduler.add_job(
        expire_memberships.send,
        trigger=IntervalTrigger(minutes=settings.membership.expire_interval_minutes),
        id="expire_memberships",
        name="Expire memberships",
        replace_existing=True,
    )
    scheduler.add_job(
        compress_inactive_users.send,
        trigger=IntervalTrigger(
            minutes=settings.membership.compress_interval_minutes
        ),
        id="compress_inactive_users",
        name="Compress inactive users",
        replace_existing=True,
    )

    logger.info(
        f"Scheduled jobs: payments every {settings.payments.scan_interval_seconds}s, "
        f"expiry every {settings.membership.expire_interval_minutes}m, "
        f"compression every {settings.membership.compress_interval_minutes}m"
    )


async def main() -> None:
    """Run scheduler and health server until SIGINT/SIGTERM."""
    settings = get_settings()
    setup_logging(settings, component="scheduler")

    scheduler = create_scheduler()
    register_jobs(scheduler, settings)

    reserve = ReserveClient(settings.payments)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    runner = await start_health_server(
        create_health_app(scheduler, reserve), port=settings.health_check_port
    )
    scheduler.start()
    logger.success("Scheduler started")

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down scheduler...")
        scheduler.shutdown(wait=False)
        await stop_health_server(runner)
        await reserve.close()


if __name__ == "__main__":
    asyncio.run(main())
