"""
Settlement applier.

Turns swept payments into membership activations. Claiming applied_at,
activation and commissions share one transaction.
"""

from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.constants import EVENT_REASON_PAYMENT_CONFIRMED
from app.config.settings import MembershipConfig, PaymentsConfig
from app.models.membership_payment import MembershipPayment
from app.repositories.membership_payment_repository import (
    MembershipPaymentRepository,
)
from app.services.membership.service import MembershipService
from app.services.payments.results import ApplyResult
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import AppError


@dataclass(frozen=True)
class _SweptPayment:
    payment_id: str
    user_id: int
    tier: str
    amount_usd_cents: int
    chain: str | None
    tx_hash: str | None
    from_address: str | None
    to_address: str | None

    @classmethod
    def from_payment(cls, payment: MembershipPayment) -> "_SweptPayment":
        return cls(
            payment_id=payment.id,
            user_id=payment.user_id,
            tier=payment.tier,
            amount_usd_cents=payment.amount_usd_cents,
            chain=payment.chain,
            tx_hash=payment.tx_hash,
            from_address=payment.from_address,
            to_address=payment.to_address,
        )


class SettlementApplier:
    """Applies swept payments exactly once."""

    def __init__(
        self,
        session: AsyncSession,
        payments_config: PaymentsConfig,
        membership_config: MembershipConfig,
        clock=utc_now,
    ) -> None:
        self.session = session
        self.config = payments_config
        self.clock = clock
        self.payment_repo = MembershipPaymentRepository(session)
        self.membership_service = MembershipService(
            session, membership_config, clock=clock
        )

    async def apply(self) -> ApplyResult:
        """
        Apply a bounded batch of swept payments.

        A payment whose applied_at was set concurrently is counted as
        skipped. A business error (unknown user or plan, lifetime
        downgrade, deleted membership) marks the payment as failed so it
        is not picked again; it stays unapplied for manual resolution.

        Returns:
            ApplyResult
        """
        result = ApplyResult()
        payments = await self.payment_repo.get_apply_candidates(
            self.config.apply_batch_size
        )
        swept = [_SweptPayment.from_payment(p) for p in payments]

        for payment in swept:
            try:
                applied = await self._apply_one(payment)
            except AppError as e:
                await self.session.rollback()
                await self._record_failure(payment, e)
                result.failed_payment_ids.append(payment.payment_id)
                logger.error(
                    "Payment could not be applied",
                    extra={
                        "payment_id": payment.payment_id,
                        "user_id": payment.user_id,
                        "error_code": e.code,
                        "error": e.message,
                    },
                )
                continue
            except Exception:
                await self.session.rollback()
                raise

            if applied:
                result.applied_count += 1
            else:
                result.skipped_count += 1

        if result.applied_count or result.failed_payment_ids:
            logger.success(
                f"Apply tick: {result.applied_count} applied, "
                f"{result.skipped_count} skipped, "
                f"{len(result.failed_payment_ids)} failed"
            )
        return result

    async def _record_failure(self, payment: _SweptPayment, error: AppError) -> None:
        try:
            await self.payment_repo.mark_apply_failed(
                payment.payment_id,
                error=f"{error.code}: {error.message}",
                now=self.clock(),
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    async def _apply_one(self, payment: _SweptPayment) -> bool:
        now = self.clock()

        if not await self.payment_repo.claim_for_apply(payment.payment_id, now):
            await self.session.rollback()
            logger.debug(f"Payment {payment.payment_id} already applied")
            return False

        activation = await self.membership_service.activate(
            user_id=payment.user_id,
            tier=payment.tier,
            amount_usd_cents=payment.amount_usd_cents,
            payment_id=payment.payment_id,
            reason=EVENT_REASON_PAYMENT_CONFIRMED,
            tx_hash=payment.tx_hash,
            chain=payment.chain,
            from_address=payment.from_address,
            to_address=payment.to_address,
        )
        await self.session.commit()

        logger.info(
            f"Payment {payment.payment_id} applied: user {payment.user_id} "
            f"tier {payment.tier}, {activation.commissions_created} commissions"
        )
        return True
