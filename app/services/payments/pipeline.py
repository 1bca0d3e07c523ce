"""
Payments pipeline orchestrator.

Runs scan -> sweep -> apply sequentially within one invocation. Each
stage only reads what the previous stage wrote, and every transition is
a conditional update, so overlapping invocations are safe.
"""

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import MembershipConfig, PaymentsConfig
from app.services.blockchain.rpc_client import ChainRpcClient
from app.services.payments.chain_scanner import ChainScanner
from app.services.payments.reserve_client import ReserveClient
from app.services.payments.results import PipelineResult
from app.services.payments.settlement_applier import SettlementApplier
from app.services.payments.sweep_coordinator import SweepCoordinator
from app.utils.datetime_utils import utc_now


class PaymentPipeline:
    """Sequences the chain scanner, sweep coordinator and applier."""

    def __init__(
        self,
        session: AsyncSession,
        payments_config: PaymentsConfig,
        membership_config: MembershipConfig,
        rpc: ChainRpcClient,
        reserve: ReserveClient,
        clock=utc_now,
    ) -> None:
        """
        Initialize pipeline.

        Args:
            session: Async database session shared by all stages
            payments_config: Payments configuration
            membership_config: Membership configuration
            rpc: Chain RPC client
            reserve: Reserve service client
            clock: Callable returning current aware datetime
        """
        self.scanner = ChainScanner(session, payments_config, rpc, clock=clock)
        self.sweeper = SweepCoordinator(session, payments_config, reserve, clock=clock)
        self.applier = SettlementApplier(
            session, payments_config, membership_config, clock=clock
        )

    async def run(self) -> PipelineResult:
        """
        Run one pipeline tick.

        Returns:
            PipelineResult with per-stage counts

        Raises:
            ChainConnectionError: RPC unreachable (whole tick is retried)
            ScanWindowError: Scan aborted mid-window (whole tick is retried)
        """
        scan = await self.scanner.scan()
        sweep = await self.sweeper.sweep()
        apply = await self.applier.apply()

        logger.info(
            f"Payments pipeline: scanned {scan.scanned_from_block}-"
            f"{scan.scanned_to_block} ({scan.confirmed_count} confirmed), "
            f"swept {sweep.swept_count}/{sweep.attempted_count}, "
            f"applied {apply.applied_count}"
        )
        return PipelineResult(scan=scan, sweep=sweep, apply=apply)
