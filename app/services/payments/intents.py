"""
Payment intents.

Reserves a one-off deposit address for a membership purchase and
exposes read-only status views to the buyer.
"""

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import PaymentsConfig
from app.models.membership import MembershipStatus
from app.models.membership_payment import (
    MembershipPayment,
    PaymentStatus,
    SweepStatus,
)
from app.models.user import User
from app.repositories.membership_payment_repository import (
    MembershipPaymentRepository,
)
from app.repositories.membership_repository import MembershipRepository
from app.services.blockchain.address_derivation import DepositAddressDeriver
from app.services.membership.plans import MembershipPlanService
from app.services.payments.results import PaymentIntentResult, PaymentStatusSnapshot
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import (
    LifetimeDowngradeError,
    NotFoundError,
    ValidationError,
)
from app.utils.security import mask_address


def usd_cents_to_units(amount_usd_cents: int, config: PaymentsConfig) -> int:
    """
    Convert USD cents to token base units (1 token = 1 USD).

    Examples:
        10000 cents with 6 decimals -> 100_000_000 units
    """
    return amount_usd_cents * config.units_per_cent


def to_status_snapshot(payment: MembershipPayment) -> PaymentStatusSnapshot:
    return PaymentStatusSnapshot(
        payment_id=payment.id,
        tier=payment.tier,
        amount_usd_cents=payment.amount_usd_cents,
        chain=payment.chain,
        deposit_address=payment.deposit_address,
        status=payment.status,
        sweep_status=payment.sweep_status,
        tx_hash=payment.tx_hash,
        received_units=payment.received_units,
        overpayment_units=payment.overpayment_units,
        confirmed_at=payment.confirmed_at,
        swept_at=payment.swept_at,
        applied_at=payment.applied_at,
        created_at=payment.created_at,
        apply_failed_at=payment.apply_failed_at,
    )


class PaymentIntentService:
    """Creates payment intents and answers status queries."""

    def __init__(
        self,
        session: AsyncSession,
        config: PaymentsConfig,
        deriver: DepositAddressDeriver | None = None,
        clock=utc_now,
    ) -> None:
        """
        Initialize intent service.

        Args:
            session: Async database session
            config: Payments configuration
            deriver: Deposit address deriver (built from config.xpub if None)
            clock: Callable returning current aware datetime
        """
        self.session = session
        self.config = config
        self.deriver = deriver or DepositAddressDeriver(config.xpub)
        self.clock = clock
        self.payment_repo = MembershipPaymentRepository(session)
        self.membership_repo = MembershipRepository(session)
        self.plan_service = MembershipPlanService(session)

    async def create_payment_intent(
        self, user_id: int, tier: str
    ) -> PaymentIntentResult:
        """
        Reserve a deposit address for a membership purchase.

        Args:
            user_id: Buyer
            tier: Plan tier

        Returns:
            PaymentIntentResult with deposit instructions

        Raises:
            NotFoundError: Unknown user or plan
            ValidationError: Plan not purchasable or membership deleted
            LifetimeDowngradeError: User already holds a lifetime membership
                and asked for a finite tier
        """
        user = await self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        plan = await self.plan_service.require_active_plan(tier)

        membership = await self.membership_repo.get_for_user(user_id)
        if membership is not None and membership.status == MembershipStatus.DELETED:
            raise ValidationError("Membership has been deleted")
        if (
            membership is not None
            and membership.is_non_expiring
            and not plan.is_lifetime
        ):
            raise LifetimeDowngradeError(
                "Lifetime membership cannot be replaced by a finite plan"
            )

        try:
            derivation_index = await self.payment_repo.next_derivation_index()
            deposit_address = self.deriver.derive(derivation_index)
            expected_units = usd_cents_to_units(plan.price_usd_cents, self.config)
            now = self.clock()

            payment = await self.payment_repo.create(
                user_id=user_id,
                tier=plan.tier,
                amount_usd_cents=plan.price_usd_cents,
                status=PaymentStatus.PENDING,
                chain=self.config.chain,
                deposit_address=deposit_address,
                derivation_index=derivation_index,
                expected_units=str(expected_units),
                sweep_status=SweepStatus.PENDING,
                sweep_retry_count=0,
                created_at=now,
                updated_at=now,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            f"Payment intent created: {payment.id} user {user_id} tier {tier} "
            f"-> {mask_address(deposit_address)} (index {derivation_index})"
        )

        return PaymentIntentResult(
            payment_id=payment.id,
            deposit_address=deposit_address,
            amount_usd_cents=plan.price_usd_cents,
            chain=self.config.chain,
            tier=plan.tier,
            expected_units=expected_units,
        )

    async def get_payment_status(
        self, payment_id: str, user_id: int
    ) -> PaymentStatusSnapshot:
        """
        Get status of a payment owned by user.

        Raises:
            NotFoundError: No such payment for this user
        """
        payment = await self.payment_repo.get_for_user(payment_id, user_id)
        if payment is None:
            raise NotFoundError("Payment", payment_id)
        return to_status_snapshot(payment)

    async def list_user_payments(
        self, user_id: int, page: int = 1, per_page: int = 20
    ) -> tuple[list[PaymentStatusSnapshot], int]:
        """
        List user's payments, newest first.

        Returns:
            Tuple of (snapshots, total_count)
        """
        page = max(page, 1)
        per_page = min(max(per_page, 1), 100)
        payments, total = await self.payment_repo.list_for_user(
            user_id, page=page, per_page=per_page
        )
        return [to_status_snapshot(p) for p in payments], total
