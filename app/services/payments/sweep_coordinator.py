"""
Sweep coordinator.

Hands confirmed deposits to the reserve service for consolidation.

State machine (sweep_status):
    pending|failed --claim--> funding --ok--> swept
                                      --error--> failed (retry after backoff)
    pending|failed with retry_count >= max --> exhausted (terminal)
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import PaymentsConfig
from app.models.membership_payment import MembershipPayment
from app.repositories.membership_payment_repository import (
    MembershipPaymentRepository,
)
from app.services.payments.intents import usd_cents_to_units
from app.services.payments.reserve_client import (
    ReserveClient,
    SweepReceipt,
    SweepRequest,
)
from app.services.payments.results import SweepResult
from app.utils.datetime_utils import utc_now
from app.utils.security import mask_address, mask_tx_hash


def calculate_retry_delay(retry_count: int, config: PaymentsConfig) -> float:
    """
    Backoff before the next sweep attempt.

    Args:
        retry_count: Failed attempts recorded before this failure
        config: Payments configuration

    Returns:
        min(base * multiplier ** retry_count, cap) in seconds

    Examples:
        base 5s, multiplier 2, cap 3600s: 5, 10, 20, 40, ... 3600
    """
    delay = config.sweep_base_delay_seconds * (
        config.sweep_backoff_multiplier ** retry_count
    )
    return min(delay, config.sweep_max_delay_seconds)


@dataclass(frozen=True)
class _Candidate:
    """Columns needed for one sweep attempt, read before any commit."""

    payment_id: str
    derivation_index: int
    deposit_address: str
    amount_usd_cents: int
    retry_count: int

    @classmethod
    def from_payment(cls, payment: MembershipPayment) -> "_Candidate":
        return cls(
            payment_id=payment.id,
            derivation_index=payment.derivation_index,
            deposit_address=payment.deposit_address,
            amount_usd_cents=payment.amount_usd_cents,
            retry_count=payment.sweep_retry_count or 0,
        )


class SweepCoordinator:
    """Dispatches confirmed payments to the reserve service."""

    def __init__(
        self,
        session: AsyncSession,
        config: PaymentsConfig,
        reserve: ReserveClient,
        clock=utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize sweep coordinator.

        Args:
            session: Async database session
            config: Payments configuration
            reserve: Reserve service client
            clock: Callable returning current aware datetime
            sleep: Async sleep used between record retries
        """
        self.session = session
        self.config = config
        self.reserve = reserve
        self.clock = clock
        self.sleep = sleep
        self.payment_repo = MembershipPaymentRepository(session)

    async def sweep(self) -> SweepResult:
        """
        Run one sweep tick over a bounded batch of candidates.

        Reserve failures are recorded on the payment and never raised.

        Returns:
            SweepResult
        """
        result = SweepResult()
        now = self.clock()

        payments = await self.payment_repo.get_sweep_candidates(
            now, self.config.sweep_batch_size
        )
        candidates = [_Candidate.from_payment(p) for p in payments]

        for candidate in candidates:
            if candidate.retry_count >= self.config.sweep_max_retries:
                if await self.payment_repo.mark_sweep_exhausted(
                    candidate.payment_id, self.clock()
                ):
                    result.exhausted_count += 1
                    logger.error(
                        f"Sweep exhausted for payment {candidate.payment_id} "
                        f"after {candidate.retry_count} attempts; "
                        f"manual intervention required"
                    )
                await self.session.commit()
                continue

            claimed = await self.payment_repo.claim_for_sweep(
                candidate.payment_id, self.clock()
            )
            await self.session.commit()
            if not claimed:
                logger.debug(
                    f"Payment {candidate.payment_id} claimed by another worker"
                )
                continue

            result.attempted_count += 1
            request = SweepRequest(
                payment_id=candidate.payment_id,
                derivation_index=candidate.derivation_index,
                from_address=candidate.deposit_address,
                min_usdt_units=str(
                    usd_cents_to_units(candidate.amount_usd_cents, self.config)
                ),
            )

            try:
                receipt = await self.reserve.sweep(request)
            except Exception as e:
                await self._record_failure(candidate, str(e))
                result.failed_count += 1
                continue

            await self._record_success(candidate, receipt)
            # Funds moved even if the record write was lost
            result.swept_count += 1

        if result.attempted_count or result.exhausted_count:
            logger.success(
                f"Sweep tick: {result.attempted_count} attempted, "
                f"{result.swept_count} swept, {result.failed_count} failed, "
                f"{result.exhausted_count} exhausted"
            )
        return result

    async def _record_failure(self, candidate: _Candidate, error: str) -> None:
        now = self.clock()
        delay = calculate_retry_delay(candidate.retry_count, self.config)
        retry_after = now + timedelta(seconds=delay)

        await self.payment_repo.mark_sweep_failed(
            candidate.payment_id,
            error=error[:1000],
            retry_after=retry_after,
            now=now,
        )
        await self.session.commit()

        logger.warning(
            "Sweep failed, retry scheduled",
            extra={
                "payment_id": candidate.payment_id,
                "attempt": candidate.retry_count + 1,
                "retry_in_seconds": delay,
                "error": error,
            },
        )

    async def _record_success(
        self, candidate: _Candidate, receipt: SweepReceipt
    ) -> bool:
        """
        Persist the swept state with bounded local retries.

        Returns:
            True if the swept state was recorded
        """
        attempts = self.config.sweep_record_attempts
        delay = self.config.sweep_record_retry_delay_seconds

        for attempt in range(attempts):
            try:
                recorded = await self.payment_repo.mark_sweep_completed(
                    candidate.payment_id,
                    sweep_tx_hash=receipt.sweep_tx_hash,
                    funding_tx_hash=receipt.funding_tx_hash,
                    swept_at=receipt.swept_at,
                    funded_at=receipt.funded_at,
                    now=self.clock(),
                )
                await self.session.commit()
                if not recorded:
                    logger.error(
                        "Sweep completed but payment is no longer funding",
                        extra={
                            "payment_id": candidate.payment_id,
                            "sweep_tx_hash": receipt.sweep_tx_hash,
                            "funding_tx_hash": receipt.funding_tx_hash,
                        },
                    )
                    return False
                logger.info(
                    f"Payment {candidate.payment_id} swept from "
                    f"{mask_address(candidate.deposit_address)}: "
                    f"tx {mask_tx_hash(receipt.sweep_tx_hash)}"
                )
                return True
            except Exception as e:
                await self.session.rollback()
                logger.warning(
                    "Failed to record sweep result",
                    extra={
                        "payment_id": candidate.payment_id,
                        "attempt": attempt + 1,
                        "error": str(e),
                    },
                )
                if attempt < attempts - 1:
                    await self.sleep(delay * (attempt + 1))

        logger.critical(
            "CRITICAL: Sweep completed but database update failed after retries",
            extra={
                "payment_id": candidate.payment_id,
                "sweep_tx_hash": receipt.sweep_tx_hash,
                "funding_tx_hash": receipt.funding_tx_hash,
                "swept_at": receipt.swept_at.isoformat(),
            },
        )
        return False
