"""
Health check server for the scheduler process.

Endpoints:
    /liveness        process is up
    /readiness       scheduler is running
    /health          scheduler state and next run of every job
    /health/reserve  reserve service answers its own health check
"""

import asyncio

from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from app.services.payments.reserve_client import ReserveClient

SCHEDULER_KEY = web.AppKey("scheduler", AsyncIOScheduler)
RESERVE_KEY = web.AppKey("reserve", ReserveClient)


def _unavailable(status: str, error: str) -> web.Response:
    return web.json_response({"status": status, "error": error}, status=503)


async def health_handler(request: web.Request) -> web.Response:
    """Scheduler state with the registered jobs."""
    scheduler = request.app.get(SCHEDULER_KEY)
    if scheduler is None:
        return _unavailable("unhealthy", "Scheduler not initialized")

    try:
        jobs = [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": (
                    job.next_run_time.isoformat() if job.next_run_time else None
                ),
            }
            for job in scheduler.get_jobs()
        ]
    except Exception as e:
        logger.error("Health check failed", extra={"error": str(e)})
        return _unavailable("unhealthy", str(e))

    return web.json_response(
        {
            "status": "healthy" if scheduler.running else "stopped",
            "scheduler_running": scheduler.running,
            "jobs_count": len(jobs),
            "jobs": jobs,
        }
    )


async def readiness_handler(request: web.Request) -> web.Response:
    scheduler = request.app.get(SCHEDULER_KEY)
    if scheduler is None or not scheduler.running:
        return web.json_response({"status": "not_ready", "ready": False}, status=503)
    return web.json_response({"status": "ready", "ready": True})


async def liveness_handler(request: web.Request) -> web.Response:
    return web.json_response({"status": "alive", "alive": True})


async def reserve_health_handler(request: web.Request) -> web.Response:
    """
    Reserve service reachability.

    Returns:
        200 when the reserve health check passes, 503 otherwise
    """
    reserve = request.app.get(RESERVE_KEY)
    if reserve is None:
        return _unavailable("unknown", "Reserve client not configured")

    reachable = await reserve.health()
    return web.json_response(
        {
            "status": "healthy" if reachable else "unhealthy",
            "reserve_reachable": reachable,
        },
        status=200 if reachable else 503,
    )


def create_health_app(
    scheduler: AsyncIOScheduler | None = None,
    reserve: ReserveClient | None = None,
) -> web.Application:
    """
    Build the health application.

    Args:
        scheduler: Scheduler reported by /health and /readiness
        reserve: Reserve client probed by /health/reserve
    """
    app = web.Application()
    if scheduler is not None:
        app[SCHEDULER_KEY] = scheduler
    if reserve is not None:
        app[RESERVE_KEY] = reserve

    app.router.add_get("/liveness", liveness_handler)
    app.router.add_get("/readiness", readiness_handler)
    app.router.add_get("/health", health_handler)
    app.router.add_get("/health/reserve", reserve_health_handler)
    return app


async def start_health_server(
    app: web.Application,
    host: str = "0.0.0.0",
    port: int = 8081,
) -> web.AppRunner:
    """
    Serve app on host:port.

    Returns:
        AppRunner to pass to stop_health_server()
    """
    runner = web.AppRunner(app)
    await runner.setup()
    await web.TCPSite(runner, host, port).start()

    logger.info(f"Health check server listening on http://{host}:{port}")
    return runner


async def stop_health_server(runner: web.AppRunner, timeout: int = 5) -> None:
    """Clean up the runner, giving up after timeout seconds."""
    try:
        await asyncio.wait_for(runner.cleanup(), timeout=timeout)
        logger.info("Health check server stopped")
    except TimeoutError:
        logger.warning(f"Health check server cleanup timed out after {timeout}s")
