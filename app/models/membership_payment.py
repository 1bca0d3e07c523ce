"""
Membership payment model.

One row per membership purchase attempt (payment intent). Tracks the
on-chain confirmation, the reserve sweep and the settlement marker.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Sequence,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.types import (
    AddressType,
    TokenUnitsType,
    TxHashType,
    UsdCentsType,
)


class PaymentStatus:
    """On-chain confirmation status. pending -> confirmed exactly once."""

    PENDING = "pending"
    CONFIRMED = "confirmed"


class SweepStatus:
    """Reserve sweep status.

    pending|failed -> funding -> swept | failed (retry) | exhausted
    """

    PENDING = "pending"
    FUNDING = "funding"
    SWEPT = "swept"
    FAILED = "failed"
    EXHAUSTED = "exhausted"

    # Eligible for a sweep attempt
    CLAIMABLE = (PENDING, FAILED)


# Deposit address derivation indexes; never reused
payment_derivation_index_seq = Sequence(
    "payment_derivation_index_seq", start=1, metadata=Base.metadata
)


class MembershipPayment(Base):
    """
    Payment intent for a membership tier.

    applied_at is the idempotence boundary: membership activation and
    commissions happen in the same transaction that sets it.
    """

    __tablename__ = "membership_payments"
    __table_args__ = (
        CheckConstraint("amount_usd_cents > 0", name="amount_positive"),
        CheckConstraint("sweep_retry_count >= 0", name="retry_count_non_negative"),
        Index("ix_membership_payments_status_address", "status", "deposit_address"),
        Index("ix_membership_payments_sweep", "sweep_status", "applied_at"),
    )

    # Primary key
    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # Purchase
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tier: Mapped[str] = mapped_column(String(32), nullable=False)
    amount_usd_cents: Mapped[int] = mapped_column(UsdCentsType, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING
    )

    # Deposit address
    chain: Mapped[str | None] = mapped_column(String(32), nullable=True)
    deposit_address: Mapped[str | None] = mapped_column(
        AddressType, nullable=True, unique=True
    )
    derivation_index: Mapped[int | None] = mapped_column(
        Integer, nullable=True, unique=True,
        comment="Child index under the deposit xpub",
    )

    # On-chain confirmation
    tx_hash: Mapped[str | None] = mapped_column(TxHashType, nullable=True, index=True)
    from_address: Mapped[str | None] = mapped_column(AddressType, nullable=True)
    to_address: Mapped[str | None] = mapped_column(AddressType, nullable=True)
    expected_units: Mapped[str | None] = mapped_column(
        TokenUnitsType, nullable=True, comment="Minimum token units to confirm"
    )
    received_units: Mapped[str | None] = mapped_column(TokenUnitsType, nullable=True)
    overpayment_units: Mapped[str | None] = mapped_column(
        TokenUnitsType, nullable=True
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Reserve sweep
    sweep_status: Mapped[str | None] = mapped_column(
        String(20), nullable=True, default=SweepStatus.PENDING
    )
    sweep_tx_hash: Mapped[str | None] = mapped_column(TxHashType, nullable=True)
    funding_tx_hash: Mapped[str | None] = mapped_column(TxHashType, nullable=True)
    sweep_retry_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    sweep_retry_after: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    sweep_last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    sweep_attempted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    funded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    swept_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Settlement
    applied_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    apply_failed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
        comment="Set when activation was rejected; excluded from settlement",
    )
    apply_last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<MembershipPayment(id={self.id}, user_id={self.user_id}, "
            f"tier={self.tier}, status={self.status}, "
            f"sweep_status={self.sweep_status}, applied_at={self.applied_at})>"
        )
