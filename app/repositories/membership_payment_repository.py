"""
MembershipPayment repository.

Every state transition of a payment is a single conditional UPDATE
whose affected-row count decides whether the caller owns the
transition. Concurrent pipeline instances rely on this.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.membership_payment import (
    MembershipPayment,
    PaymentStatus,
    SweepStatus,
    payment_derivation_index_seq,
)
from app.repositories.base import BaseRepository


class MembershipPaymentRepository(BaseRepository[MembershipPayment]):
    """Membership payment repository with CAS state transitions."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(MembershipPayment, session)

    async def next_derivation_index(self) -> int:
        """
        Allocate the next deposit derivation index.

        Uses the database sequence where the dialect has one; otherwise
        falls back to MAX()+1 guarded by the unique constraint.
        """
        dialect = self.session.get_bind().dialect
        if dialect.supports_sequences:
            value = await self.session.scalar(
                select(payment_derivation_index_seq.next_value())
            )
            return int(value)

        value = await self.session.scalar(
            select(func.coalesce(func.max(MembershipPayment.derivation_index), 0))
        )
        return int(value) + 1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_pending_with_address(self) -> list[MembershipPayment]:
        """Get pending payments that have a deposit address assigned."""
        stmt = (
            select(MembershipPayment)
            .where(
                MembershipPayment.status == PaymentStatus.PENDING,
                MembershipPayment.deposit_address.is_not(None),
                MembershipPayment.derivation_index.is_not(None),
            )
            .order_by(MembershipPayment.created_at)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_sweep_candidates(
        self, now: datetime, limit: int
    ) -> list[MembershipPayment]:
        """
        Get confirmed payments due for a sweep attempt.

        Args:
            now: Current time (retry-after cutoff)
            limit: Batch size

        Returns:
            Payments in pending/failed sweep state, not applied, retry due
        """
        stmt = (
            select(MembershipPayment)
            .where(
                MembershipPayment.status == PaymentStatus.CONFIRMED,
                MembershipPayment.sweep_status.in_(SweepStatus.CLAIMABLE),
                MembershipPayment.applied_at.is_(None),
                MembershipPayment.deposit_address.is_not(None),
                MembershipPayment.derivation_index.is_not(None),
                or_(
                    MembershipPayment.sweep_retry_after.is_(None),
                    MembershipPayment.sweep_retry_after <= now,
                ),
            )
            .order_by(MembershipPayment.confirmed_at)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_apply_candidates(self, limit: int) -> list[MembershipPayment]:
        """Get swept payments not yet applied and not marked as failed."""
        stmt = (
            select(MembershipPayment)
            .where(
                MembershipPayment.sweep_status == SweepStatus.SWEPT,
                MembershipPayment.applied_at.is_(None),
                MembershipPayment.apply_failed_at.is_(None),
            )
            .order_by(MembershipPayment.swept_at)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_for_user(
        self, payment_id: str, user_id: int
    ) -> MembershipPayment | None:
        """Get payment only if it belongs to user."""
        return await self.get_by(id=payment_id, user_id=user_id)

    async def list_for_user(
        self, user_id: int, page: int = 1, per_page: int = 20
    ) -> tuple[list[MembershipPayment], int]:
        """
        List user's payments newest first.

        Returns:
            Tuple of (items, total_count)
        """
        total = await self.count(user_id=user_id)
        stmt = (
            select(MembershipPayment)
            .where(MembershipPayment.user_id == user_id)
            .order_by(MembershipPayment.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    # ------------------------------------------------------------------
    # Conditional transitions
    # ------------------------------------------------------------------

    async def _transition(self, *conditions: Any, **values: Any) -> bool:
        return await self.conditional_update(*conditions, **values) > 0

    async def confirm_pending(
        self,
        payment_id: str,
        *,
        chain: str,
        tx_hash: str,
        from_address: str,
        to_address: str,
        received_units: int,
        expected_units: int,
        now: datetime,
    ) -> bool:
        """
        Confirm payment: pending -> confirmed.

        Returns:
            True if this call performed the transition
        """
        overpayment = max(received_units - expected_units, 0)
        return await self._transition(
            MembershipPayment.id == payment_id,
            MembershipPayment.status == PaymentStatus.PENDING,
            status=PaymentStatus.CONFIRMED,
            chain=chain,
            tx_hash=tx_hash,
            from_address=from_address,
            to_address=to_address,
            confirmed_at=now,
            received_units=str(received_units),
            expected_units=str(expected_units),
            overpayment_units=str(overpayment),
            updated_at=now,
        )

    async def claim_for_sweep(self, payment_id: str, now: datetime) -> bool:
        """
        Claim payment for sweeping: pending|failed -> funding.

        Guarded on applied_at IS NULL so a settled payment is never swept.
        """
        return await self._transition(
            MembershipPayment.id == payment_id,
            MembershipPayment.sweep_status.in_(SweepStatus.CLAIMABLE),
            MembershipPayment.applied_at.is_(None),
            sweep_status=SweepStatus.FUNDING,
            sweep_attempted_at=now,
            updated_at=now,
        )

    async def mark_sweep_exhausted(self, payment_id: str, now: datetime) -> bool:
        """Move payment to terminal exhausted state."""
        return await self._transition(
            MembershipPayment.id == payment_id,
            MembershipPayment.sweep_status.in_(SweepStatus.CLAIMABLE),
            sweep_status=SweepStatus.EXHAUSTED,
            updated_at=now,
        )

    async def mark_sweep_failed(
        self,
        payment_id: str,
        *,
        error: str | None,
        retry_after: datetime,
        now: datetime,
    ) -> bool:
        """Record failed sweep attempt: funding -> failed, retry count + 1."""
        return await self._transition(
            MembershipPayment.id == payment_id,
            MembershipPayment.sweep_status == SweepStatus.FUNDING,
            sweep_status=SweepStatus.FAILED,
            sweep_retry_count=func.coalesce(MembershipPayment.sweep_retry_count, 0) + 1,
            sweep_retry_after=retry_after,
            sweep_last_error=error,
            updated_at=now,
        )

    async def mark_sweep_completed(
        self,
        payment_id: str,
        *,
        sweep_tx_hash: str,
        funding_tx_hash: str | None,
        swept_at: datetime,
        funded_at: datetime | None,
        now: datetime,
    ) -> bool:
        """Record successful sweep: funding -> swept."""
        return await self._transition(
            MembershipPayment.id == payment_id,
            MembershipPayment.sweep_status == SweepStatus.FUNDING,
            sweep_status=SweepStatus.SWEPT,
            sweep_tx_hash=sweep_tx_hash,
            funding_tx_hash=funding_tx_hash,
            swept_at=swept_at,
            funded_at=funded_at,
            sweep_last_error=None,
            updated_at=now,
        )

    async def claim_for_apply(self, payment_id: str, now: datetime) -> bool:
        """
        Set applied_at if still unset.

        Must run inside the same transaction as activation and
        commissions; a False result means another worker applied it.
        """
        return await self._transition(
            MembershipPayment.id == payment_id,
            MembershipPayment.applied_at.is_(None),
            MembershipPayment.apply_failed_at.is_(None),
            applied_at=now,
            updated_at=now,
        )

    async def mark_apply_failed(
        self, payment_id: str, *, error: str, now: datetime
    ) -> bool:
        """
        Record a rejected activation so the payment leaves the apply queue.

        Guarded on applied_at IS NULL; the first recorded error is kept.
        """
        return await self._transition(
            MembershipPayment.id == payment_id,
            MembershipPayment.applied_at.is_(None),
            MembershipPayment.apply_failed_at.is_(None),
            apply_failed_at=now,
            apply_last_error=error,
            updated_at=now,
        )
