"""
Payment pipeline result types.
"""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class ScanResult:
    """Result of one chain scan."""

    scanned_from_block: int = 0
    scanned_to_block: int = 0
    confirmed_count: int = 0


@dataclass
class SweepResult:
    """Result of one sweep tick."""

    attempted_count: int = 0
    swept_count: int = 0
    failed_count: int = 0
    exhausted_count: int = 0


@dataclass
class ApplyResult:
    """Result of one settlement tick."""

    applied_count: int = 0
    skipped_count: int = 0
    failed_payment_ids: list[str] = field(default_factory=list)


@dataclass
class PipelineResult:
    """Aggregated scan -> sweep -> apply result."""

    scan: ScanResult
    sweep: SweepResult
    apply: ApplyResult


@dataclass
class PaymentIntentResult:
    """Deposit instructions returned to the buyer."""

    payment_id: str
    deposit_address: str
    amount_usd_cents: int
    chain: str
    tier: str
    expected_units: int


@dataclass
class PaymentStatusSnapshot:
    """Read-only view of a payment for its owner."""

    payment_id: str
    tier: str
    amount_usd_cents: int
    chain: str | None
    deposit_address: str | None
    status: str
    sweep_status: str | None
    tx_hash: str | None
    received_units: str | None
    overpayment_units: str | None
    confirmed_at: datetime | None
    swept_at: datetime | None
    applied_at: datetime | None
    created_at: datetime
    apply_failed_at: datetime | None = None

    @property
    def is_settled(self) -> bool:
        """Membership has been activated for this payment."""
        return self.applied_at is not None
