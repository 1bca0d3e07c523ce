"""
Integration tests for the settlement applier.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from app.models import MembershipPayment, MembershipStatus, PaymentStatus, SweepStatus
from app.repositories.commission_repository import CommissionRepository
from app.repositories.membership_payment_repository import (
    MembershipPaymentRepository,
)
from app.repositories.membership_repository import MembershipRepository
from app.services.payments.settlement_applier import SettlementApplier
from app.utils.datetime_utils import as_utc
from tests.factories import (
    START,
    compress_member,
    create_payment,
    create_user,
    set_membership,
)


async def _swept(session, user_id: int, tier: str = "annual", amount: int = 29900):
    return await create_payment(
        session,
        user_id,
        tier=tier,
        amount_usd_cents=amount,
        status=PaymentStatus.CONFIRMED,
        sweep_status=SweepStatus.SWEPT,
        confirmed_at=START,
        swept_at=START,
    )


@pytest.fixture
def applier(session, payments_config, membership_config, clock):
    return SettlementApplier(session, payments_config, membership_config, clock=clock)


class TestSettlementApplier:
    """apply()."""

    @pytest.mark.asyncio
    async def test_swept_payment_activates_membership(
        self, session, applier, plans, clock
    ):
        """Membership, applied_at and sponsor commission come in together."""
        sponsor = await create_user(session, "sponsor@example.com")
        await set_membership(session, sponsor.id, expires_at=START + timedelta(days=30))
        buyer = await create_user(session, "buyer@example.com", sponsor.id)
        payment = await _swept(session, buyer.id)

        result = await applier.apply()

        assert result.applied_count == 1
        stored = await session.get(MembershipPayment, payment.id, populate_existing=True)
        assert as_utc(stored.applied_at) == START
        membership = await MembershipRepository(session).get_for_user(buyer.id)
        assert membership.status == MembershipStatus.ACTIVE
        assert as_utc(membership.expires_at) == START + timedelta(days=365)
        events = await MembershipRepository(session).get_events(buyer.id)
        assert events[-1].reason == "payment_confirmed"
        rows = await CommissionRepository(session).get_for_payment(payment.id)
        assert [(r.to_user_id, r.amount_usd_cents) for r in rows] == [
            (sponsor.id, 5980)
        ]

    @pytest.mark.asyncio
    async def test_applied_only_once(self, session, applier, plans):
        buyer = await create_user(session, "buyer@example.com")
        await _swept(session, buyer.id)

        await applier.apply()
        second = await applier.apply()

        assert second.applied_count == 0
        assert second.skipped_count == 0
        events = await MembershipRepository(session).get_events(buyer.id)
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_concurrent_applier_skips(
        self,
        session,
        session_maker,
        payments_config,
        membership_config,
        clock,
        plans,
    ):
        """A worker holding a stale candidate list loses the applied_at claim."""
        buyer = await create_user(session, "buyer@example.com")
        await _swept(session, buyer.id)

        async with session_maker() as other:
            stale = await MembershipPaymentRepository(other).get_apply_candidates(10)

            first = await SettlementApplier(
                session, payments_config, membership_config, clock=clock
            ).apply()

            late = SettlementApplier(
                other, payments_config, membership_config, clock=clock
            )
            late.payment_repo.get_apply_candidates = AsyncMock(return_value=stale)
            second = await late.apply()

        assert first.applied_count == 1
        assert second.applied_count == 0
        assert second.skipped_count == 1
        events = await MembershipRepository(session).get_events(buyer.id)
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_business_error_marks_payment_failed(
        self, session, applier, plans
    ):
        """Lifetime holder paying for a finite tier is reported once, not applied."""
        buyer = await create_user(session, "buyer@example.com")
        await set_membership(session, buyer.id, tier="lifetime", expires_at=None)
        payment_id = (await _swept(session, buyer.id)).id
        other_buyer = await create_user(session, "other@example.com")
        other_payment_id = (await _swept(session, other_buyer.id)).id

        result = await applier.apply()

        assert result.failed_payment_ids == [payment_id]
        assert result.applied_count == 1
        stored = await session.get(MembershipPayment, payment_id, populate_existing=True)
        assert stored.applied_at is None
        assert as_utc(stored.apply_failed_at) == START
        assert stored.apply_last_error.startswith("LIFETIME_DOWNGRADE")
        applied = await session.get(
            MembershipPayment, other_payment_id, populate_existing=True
        )
        assert applied.applied_at is not None

        again = await applier.apply()
        assert again.failed_payment_ids == []
        assert again.applied_count == 0

    @pytest.mark.asyncio
    async def test_unswept_payments_ignored(self, session, applier, plans):
        buyer = await create_user(session, "buyer@example.com")
        await create_payment(
            session,
            buyer.id,
            status=PaymentStatus.CONFIRMED,
            sweep_status=SweepStatus.FUNDING,
            confirmed_at=START,
        )

        result = await applier.apply()

        assert result.applied_count == 0
        assert await MembershipRepository(session).get_for_user(buyer.id) is None

    @pytest.mark.asyncio
    async def test_failed_payments_do_not_block_queue(
        self, session, applier, plans, payments_config, membership_config, clock
    ):
        """A full batch of rejected payments is set aside; later payments apply."""
        deleted = await create_user(session, "deleted@example.com")
        await compress_member(session, deleted.id, membership_config, clock)
        for i in range(payments_config.apply_batch_size):
            await create_payment(
                session,
                deleted.id,
                tier="annual",
                amount_usd_cents=29900,
                status=PaymentStatus.CONFIRMED,
                sweep_status=SweepStatus.SWEPT,
                confirmed_at=START,
                swept_at=START + timedelta(minutes=i),
            )
        buyer = await create_user(session, "buyer@example.com")
        good_id = (
            await create_payment(
                session,
                buyer.id,
                tier="annual",
                amount_usd_cents=29900,
                status=PaymentStatus.CONFIRMED,
                sweep_status=SweepStatus.SWEPT,
                confirmed_at=START,
                swept_at=START + timedelta(hours=1),
            )
        ).id

        first = await applier.apply()
        second = await applier.apply()

        assert len(first.failed_payment_ids) == payments_config.apply_batch_size
        assert first.applied_count == 0
        assert second.failed_payment_ids == []
        assert second.applied_count == 1
        good = await session.get(MembershipPayment, good_id, populate_existing=True)
        assert good.applied_at is not None
        remaining = await MembershipPaymentRepository(session).get_apply_candidates(
            payments_config.apply_batch_size
        )
        assert remaining == []
