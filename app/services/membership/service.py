"""
Membership state machine.

Module: service.py
States: inactive -> active -> inactive -> deleted (terminal).
Activation, expiry and compression of memberships. Activation does not
commit so it can share a transaction with payment settlement.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.constants import (
    EVENT_REASON_COMPRESSED,
    EVENT_REASON_EXPIRED,
    EVENT_REASON_MANUAL,
)
from app.config.settings import MembershipConfig
from app.models.membership import MembershipStatus
from app.models.membership_payment import MembershipPayment, PaymentStatus
from app.models.user import User
from app.repositories.membership_payment_repository import (
    MembershipPaymentRepository,
)
from app.repositories.membership_plan_repository import MembershipPlanRepository
from app.repositories.membership_repository import MembershipRepository
from app.repositories.referral_repository import ReferralRepository
from app.repositories.user_repository import UserRepository
from app.services.membership.plans import calculate_expires_at
from app.services.referral.commission_engine import CommissionEngine
from app.utils.datetime_utils import as_utc, utc_now
from app.utils.exceptions import (
    LifetimeDowngradeError,
    NotFoundError,
    ValidationError,
)


@dataclass
class ActivationResult:
    """Result of membership activation."""

    payment_id: str
    status: str
    tier: str
    expires_at: datetime | None
    commissions_created: int


@dataclass
class ExpireResult:
    expired_count: int


@dataclass
class CompressResult:
    compressed_count: int
    relinked_count: int


class MembershipService:
    """Membership lifecycle operations."""

    def __init__(
        self,
        session: AsyncSession,
        config: MembershipConfig,
        clock=utc_now,
    ) -> None:
        """
        Initialize membership service.

        Args:
            session: Async database session
            config: Membership configuration
            clock: Callable returning current aware datetime
        """
        self.session = session
        self.config = config
        self.clock = clock
        self.membership_repo = MembershipRepository(session)
        self.plan_repo = MembershipPlanRepository(session)
        self.payment_repo = MembershipPaymentRepository(session)
        self.referral_repo = ReferralRepository(session)
        self.user_repo = UserRepository(session)
        self.commission_engine = CommissionEngine(session, config, clock=clock)

    async def activate(
        self,
        user_id: int,
        tier: str,
        amount_usd_cents: int,
        payment_id: str | None = None,
        reason: str = EVENT_REASON_MANUAL,
        tx_hash: str | None = None,
        chain: str | None = None,
        from_address: str | None = None,
        to_address: str | None = None,
    ) -> ActivationResult:
        """
        Activate or renew membership inside the current transaction.

        Renewal stacks onto the current expiry while the membership is
        active and not yet expired; otherwise the new period starts now.
        Also upserts the payment ledger row and creates commissions once
        per payment. Does not commit.

        Args:
            user_id: Member
            tier: Plan tier to activate
            amount_usd_cents: Amount paid (commission base)
            payment_id: Existing payment; a confirmed ledger row is
                created when absent
            reason: Membership event reason
            tx_hash: On-chain transaction (manual credits may omit)
            chain: Chain name
            from_address: Payer address
            to_address: Deposit address

        Returns:
            ActivationResult

        Raises:
            NotFoundError: Unknown user or plan
            LifetimeDowngradeError: Finite tier over a lifetime membership
            ValidationError: Membership was deleted
        """
        now = self.clock()

        user = await self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        plan = await self.plan_repo.get_by_id(tier)
        if plan is None:
            raise NotFoundError("Membership plan", tier)

        membership = await self.membership_repo.get_for_user(user_id, for_update=True)
        previous_status = membership.status if membership else MembershipStatus.INACTIVE

        if membership is not None:
            if membership.status == MembershipStatus.DELETED:
                raise ValidationError("Membership has been deleted")
            if membership.is_non_expiring and plan.duration_days is not None:
                raise LifetimeDowngradeError(
                    f"User {user_id} has a lifetime membership; "
                    f"cannot switch to {tier}"
                )

        base = now
        if membership is not None and membership.status == MembershipStatus.ACTIVE:
            current_expiry = as_utc(membership.expires_at)
            if current_expiry is not None and current_expiry > now:
                base = current_expiry
        expires_at = calculate_expires_at(plan.duration_days, base)

        if membership is None:
            await self.membership_repo.create(
                user_id=user_id,
                tier=tier,
                status=MembershipStatus.ACTIVE,
                starts_at=now,
                activated_at=now,
                expires_at=expires_at,
                inactive_at=None,
                created_at=now,
                updated_at=now,
            )
        else:
            membership.tier = tier
            membership.status = MembershipStatus.ACTIVE
            membership.activated_at = now
            membership.expires_at = expires_at
            membership.inactive_at = None
            membership.updated_at = now
            await self.session.flush()

        await self.user_repo.set_membership(
            [user_id],
            status=MembershipStatus.ACTIVE,
            now=now,
            tier=tier,
            expires_at=expires_at,
            update_tier=True,
        )
        await self.membership_repo.record_events(
            [
                {
                    "user_id": user_id,
                    "from_status": previous_status,
                    "to_status": MembershipStatus.ACTIVE,
                    "reason": reason,
                    "created_at": now,
                }
            ]
        )

        payment = await self._ensure_payment_confirmed(
            payment_id=payment_id,
            user_id=user_id,
            tier=tier,
            amount_usd_cents=amount_usd_cents,
            tx_hash=tx_hash,
            chain=chain,
            from_address=from_address,
            to_address=to_address,
            now=now,
        )

        commissions = await self.commission_engine.create_commissions(
            payment_id=payment.id,
            from_user_id=user_id,
            amount_usd_cents=amount_usd_cents,
            now=now,
        )

        logger.info(
            f"Membership activated: user {user_id} tier {tier} "
            f"({previous_status} -> active, expires {expires_at or 'never'})"
        )

        return ActivationResult(
            payment_id=payment.id,
            status=MembershipStatus.ACTIVE,
            tier=tier,
            expires_at=expires_at,
            commissions_created=commissions.created_count,
        )

    async def _ensure_payment_confirmed(
        self,
        payment_id: str | None,
        user_id: int,
        tier: str,
        amount_usd_cents: int,
        tx_hash: str | None,
        chain: str | None,
        from_address: str | None,
        to_address: str | None,
        now: datetime,
    ) -> MembershipPayment:
        payment = None
        if payment_id is not None:
            payment = await self.payment_repo.get_by_id(payment_id)

        if payment is None:
            # Manual credit: ledger row only, nothing for the sweep stage
            data = {
                "user_id": user_id,
                "tier": tier,
                "status": PaymentStatus.CONFIRMED,
                "amount_usd_cents": amount_usd_cents,
                "chain": chain,
                "tx_hash": tx_hash,
                "from_address": from_address,
                "to_address": to_address,
                "sweep_status": None,
                "confirmed_at": now,
                "applied_at": now,
                "created_at": now,
            }
            if payment_id is not None:
                data["id"] = payment_id
            return await self.payment_repo.create(**data)

        if payment.status != PaymentStatus.CONFIRMED:
            payment.status = PaymentStatus.CONFIRMED
            payment.confirmed_at = now
            await self.session.flush()
        return payment

    async def activate_membership(
        self,
        user_id: int,
        tier: str,
        amount_usd_cents: int,
        payment_id: str | None = None,
        reason: str = EVENT_REASON_MANUAL,
        **payment_details: str | None,
    ) -> ActivationResult:
        """
        Activate membership in its own transaction (administrative).

        Same arguments as activate(); commits on success and rolls back
        on any error.
        """
        try:
            result = await self.activate(
                user_id=user_id,
                tier=tier,
                amount_usd_cents=amount_usd_cents,
                payment_id=payment_id,
                reason=reason,
                **payment_details,
            )
            await self.session.commit()
            return result
        except Exception:
            await self.session.rollback()
            raise

    async def expire_memberships(self) -> ExpireResult:
        """
        Move active memberships past their expiry to inactive.

        Membership rows, user status and events are written in one
        transaction.
        """
        now = self.clock()
        try:
            expiring = await self.membership_repo.get_expired_active(now)
            if not expiring:
                return ExpireResult(expired_count=0)

            user_ids = [m.user_id for m in expiring]
            await self.membership_repo.set_status(
                user_ids,
                from_status=MembershipStatus.ACTIVE,
                to_status=MembershipStatus.INACTIVE,
                now=now,
                inactive_at=now,
            )
            await self.user_repo.set_membership(
                user_ids, status=MembershipStatus.INACTIVE, now=now
            )
            await self.membership_repo.record_events(
                [
                    {
                        "user_id": uid,
                        "from_status": MembershipStatus.ACTIVE,
                        "to_status": MembershipStatus.INACTIVE,
                        "reason": EVENT_REASON_EXPIRED,
                        "created_at": now,
                    }
                    for uid in user_ids
                ]
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Expired {len(user_ids)} memberships")
        return ExpireResult(expired_count=len(user_ids))

    async def compress_inactive_users(self) -> CompressResult:
        """
        Delete memberships inactive longer than the grace period.

        Before a user is marked deleted, their direct referrals are
        relinked to the user's own sponsor so the remaining tree stays
        connected. The user row and commission history are kept.
        """
        now = self.clock()
        cutoff = now - timedelta(days=self.config.deletion_grace_days)
        relinked_total = 0

        try:
            candidates = await self.membership_repo.get_compressible(cutoff)
            if not candidates:
                return CompressResult(compressed_count=0, relinked_count=0)

            for candidate in candidates:
                user_id = candidate.user_id
                sponsor_id = await self.referral_repo.get_sponsor_id(user_id)
                relinked = await self.referral_repo.relink_children(
                    user_id, sponsor_id, now
                )
                relinked_total += relinked

                await self.membership_repo.record_events(
                    [
                        {
                            "user_id": user_id,
                            "from_status": MembershipStatus.INACTIVE,
                            "to_status": MembershipStatus.DELETED,
                            "reason": EVENT_REASON_COMPRESSED,
                            "created_at": now,
                        }
                    ]
                )
                await self.membership_repo.set_status(
                    [user_id],
                    from_status=MembershipStatus.INACTIVE,
                    to_status=MembershipStatus.DELETED,
                    now=now,
                )
                await self.user_repo.set_membership(
                    [user_id], status=MembershipStatus.DELETED, now=now
                )
                logger.debug(
                    f"Compressed user {user_id}: {relinked} referrals "
                    f"moved to sponsor {sponsor_id}"
                )

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            f"Compressed {len(candidates)} inactive users, "
            f"relinked {relinked_total} referrals"
        )
        return CompressResult(
            compressed_count=len(candidates), relinked_count=relinked_total
        )
