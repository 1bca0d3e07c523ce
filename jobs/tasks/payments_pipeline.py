"""
Payments pipeline task.

One scan -> sweep -> apply tick. Enqueued by the scheduler at a fixed
interval; a failed tick is retried by the broker's Retries middleware.
"""

import dramatiq
from loguru import logger

import jobs.broker  # noqa: F401  sets the default broker before actors are declared
from app.config.constants import PIPELINE_TIME_LIMIT_MS, TASK_MAX_RETRIES
from app.config.settings import Settings, get_settings
from app.services.blockchain.rpc_client import ChainRpcClient
from app.services.payments.pipeline import PaymentPipeline
from app.services.payments.reserve_client import ReserveClient
from app.services.payments.results import PipelineResult
from jobs.async_runner import create_local_session, run_async


@dramatiq.actor(max_retries=TASK_MAX_RETRIES, time_limit=PIPELINE_TIME_LIMIT_MS)
def process_payments() -> None:
    """
    Run one payments pipeline tick.

    Chain outages surface as exceptions so the tick is
    retried as a whole; no partial state needs cleanup because every
    transition is a conditional update.
    """
    logger.info("Starting payments pipeline...")

    try:
        result = run_async(run_payments_pipeline(get_settings()))
    except Exception as e:
        logger.exception(f"Payments pipeline failed: {type(e).__name__}")
        raise

    logger.info(
        f"Payments pipeline complete: {result.scan.confirmed_count} confirmed, "
        f"{result.sweep.swept_count} swept, {result.apply.applied_count} applied"
    )


async def run_payments_pipeline(settings: Settings) -> PipelineResult:
    """
    Build pipeline dependencies for one tick and run it.

    Args:
        settings: Application settings

    Returns:
        PipelineResult
    """
    rpc = ChainRpcClient(settings.payments)
    reserve = ReserveClient(settings.payments)

    try:
        async with create_local_session(settings.database_url) as session:
            pipeline = PaymentPipeline(
                session,
                settings.payments,
                settings.membership,
                rpc=rpc,
                reserve=reserve,
            )
            return await pipeline.run()
    finally:
        await reserve.close()
        rpc.close()
