"""
Commission engine.

Allocates a payment's commission pool to the payer's upline: the direct
sponsor gets the sponsor share, deeper levels get the network share.
Runs inside the caller's transaction and never commits.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import MembershipConfig
from app.repositories.commission_repository import CommissionRepository
from app.repositories.membership_repository import MembershipRepository
from app.services.referral.chain_manager import ReferralChainManager
from app.services.referral.config import SPONSOR_LEVEL
from app.utils.datetime_utils import utc_now


@dataclass(frozen=True)
class CommissionSplit:
    """Per-level amounts for one payment, in cents."""

    pool_cents: int
    sponsor_cents: int
    network_cents: int


@dataclass
class CommissionResult:
    """Result of commission creation."""

    payment_id: str
    created_count: int = 0
    total_cents: int = 0
    already_existed: bool = False
    skipped_user_ids: list[int] = field(default_factory=list)


def _floor_cents(amount: Decimal) -> int:
    return int(amount.to_integral_value(rounding=ROUND_FLOOR))


def calculate_commission_split(
    amount_usd_cents: int, config: MembershipConfig
) -> CommissionSplit:
    """
    Split payment amount into sponsor and network shares.

    Each share is floored to whole cents. Whatever the flooring leaves in
    the pool (pool minus sponsor minus all network levels) is added to
    the sponsor share.

    Args:
        amount_usd_cents: Payment amount
        config: Membership config (percentages and depth)

    Returns:
        CommissionSplit

    Examples:
        10000 cents, 50% pool, 20% sponsor, 5% x 6 network
        -> pool 5000, sponsor 2000, network 500
    """
    amount = Decimal(amount_usd_cents)
    pool = _floor_cents(amount * config.pool_percent)
    sponsor = _floor_cents(amount * config.sponsor_percent)
    network = _floor_cents(amount * config.network_percent)

    network_levels = config.max_upline_depth - SPONSOR_LEVEL
    remainder = pool - (sponsor + network * network_levels)

    return CommissionSplit(
        pool_cents=pool,
        sponsor_cents=sponsor + max(remainder, 0),
        network_cents=network,
    )


class CommissionEngine:
    """Creates commission ledger rows for a settled payment."""

    def __init__(
        self,
        session: AsyncSession,
        config: MembershipConfig,
        clock=utc_now,
    ) -> None:
        """
        Initialize commission engine.

        Args:
            session: Async database session (caller owns the transaction)
            config: Membership configuration
            clock: Callable returning current aware datetime
        """
        self.session = session
        self.config = config
        self.clock = clock
        self.chain_manager = ReferralChainManager(session)
        self.commission_repo = CommissionRepository(session)
        self.membership_repo = MembershipRepository(session)

    async def create_commissions(
        self,
        payment_id: str,
        from_user_id: int,
        amount_usd_cents: int,
        now: datetime | None = None,
    ) -> CommissionResult:
        """
        Create commissions for payment once.

        If any commission row already exists for payment_id nothing is
        created. Ancestors without a currently active membership are
        skipped; their share is not redistributed.

        Args:
            payment_id: Payment that generated the commissions
            from_user_id: Paying user
            amount_usd_cents: Payment amount
            now: Creation timestamp

        Returns:
            CommissionResult
        """
        now = now or self.clock()
        result = CommissionResult(payment_id=payment_id)

        if await self.commission_repo.exists_for_payment(payment_id):
            logger.info(
                "Commissions already exist for payment, skipping",
                extra={"payment_id": payment_id},
            )
            result.already_existed = True
            return result

        upline = await self.chain_manager.get_upline(
            from_user_id, self.config.max_upline_depth
        )
        if not upline:
            logger.debug(
                "No upline for user",
                extra={"user_id": from_user_id, "payment_id": payment_id},
            )
            return result

        split = calculate_commission_split(amount_usd_cents, self.config)
        active_ids = await self.membership_repo.get_active_user_ids(
            [entry.user_id for entry in upline], now
        )

        rows: list[dict] = []
        for entry in upline:
            if entry.user_id not in active_ids:
                result.skipped_user_ids.append(entry.user_id)
                continue

            if entry.level == SPONSOR_LEVEL:
                amount = split.sponsor_cents
            else:
                amount = split.network_cents
            if amount <= 0:
                continue

            rows.append(
                {
                    "payment_id": payment_id,
                    "from_user_id": from_user_id,
                    "to_user_id": entry.user_id,
                    "level": entry.level,
                    "amount_usd_cents": amount,
                    "created_at": now,
                }
            )
            result.total_cents += amount

        result.created_count = await self.commission_repo.bulk_create(rows)

        logger.info(
            "Commissions created",
            extra={
                "payment_id": payment_id,
                "from_user_id": from_user_id,
                "created": result.created_count,
                "total_cents": result.total_cents,
                "skipped_inactive": len(result.skipped_user_ids),
            },
        )
        return result
