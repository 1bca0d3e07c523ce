"""
Payments services package.

On-chain payment intake and settlement:
- intents: Deposit address reservation and status queries
- chain_scanner: Transfer detection and confirmation
- reserve_client: Reserve service HTTP client
- sweep_coordinator: Sweep dispatch with retry/backoff
- settlement_applier: Idempotent membership activation
- pipeline: scan -> sweep -> apply orchestration
"""

from app.services.payments.chain_scanner import ChainScanner
from app.services.payments.intents import (
    PaymentIntentService,
    usd_cents_to_units,
)
from app.services.payments.pipeline import PaymentPipeline
from app.services.payments.reserve_client import (
    ReserveClient,
    SweepReceipt,
    SweepRequest,
)
from app.services.payments.results import (
    ApplyResult,
    PaymentIntentResult,
    PaymentStatusSnapshot,
    PipelineResult,
    ScanResult,
    SweepResult,
)
from app.services.payments.settlement_applier import SettlementApplier
from app.services.payments.sweep_coordinator import (
    SweepCoordinator,
    calculate_retry_delay,
)


__all__ = [
    # Intents
    "PaymentIntentService",
    "usd_cents_to_units",
    # Stages
    "ChainScanner",
    "SweepCoordinator",
    "SettlementApplier",
    "PaymentPipeline",
    "calculate_retry_delay",
    # Reserve
    "ReserveClient",
    "SweepReceipt",
    "SweepRequest",
    # Results
    "ApplyResult",
    "PaymentIntentResult",
    "PaymentStatusSnapshot",
    "PipelineResult",
    "ScanResult",
    "SweepResult",
]
