"""
Integration tests for membership activation, expiry and compression.
"""

import uuid
from datetime import timedelta

import pytest

from app.models import (
    MembershipPayment,
    MembershipStatus,
    PaymentStatus,
    User,
)
from app.repositories.membership_payment_repository import (
    MembershipPaymentRepository,
)
from app.repositories.membership_repository import MembershipRepository
from app.repositories.referral_repository import ReferralRepository
from app.services.membership.service import MembershipService
from app.utils.datetime_utils import as_utc
from app.utils.exceptions import (
    LifetimeDowngradeError,
    NotFoundError,
    ValidationError,
)
from tests.factories import START, create_payment, create_user, set_membership


async def _membership(session, user_id: int):
    return await MembershipRepository(session).get_for_user(user_id)


async def _user(session, user_id: int) -> User:
    return await session.get(User, user_id, populate_existing=True)


@pytest.fixture
def service(session, membership_config, clock):
    return MembershipService(session, membership_config, clock=clock)


class TestActivateMembership:
    """Activation and renewal."""

    @pytest.mark.asyncio
    async def test_first_activation(self, session, service, plans):
        """New member gets a membership, an event and a manual ledger row."""
        user = await create_user(session, "member@example.com")

        result = await service.activate_membership(user.id, "annual", 29900)

        assert result.status == MembershipStatus.ACTIVE
        assert result.expires_at == START + timedelta(days=365)
        membership = await _membership(session, user.id)
        assert membership.status == MembershipStatus.ACTIVE
        assert membership.tier == "annual"
        assert as_utc(membership.expires_at) == START + timedelta(days=365)

        stored_user = await _user(session, user.id)
        assert stored_user.membership_status == MembershipStatus.ACTIVE
        assert stored_user.membership_tier == "annual"

        events = await MembershipRepository(session).get_events(user.id)
        assert [(e.from_status, e.to_status, e.reason) for e in events] == [
            ("inactive", "active", "manual_credit")
        ]

        payment = await session.get(MembershipPayment, result.payment_id)
        assert payment.status == PaymentStatus.CONFIRMED
        assert payment.sweep_status is None
        assert payment.applied_at is not None
        assert payment.amount_usd_cents == 29900

    @pytest.mark.asyncio
    async def test_renewal_stacks_on_current_expiry(self, session, service, plans):
        """Active membership is extended from its expiry, not from now."""
        user = await create_user(session, "member@example.com")
        current_expiry = START + timedelta(days=10)
        await set_membership(session, user.id, expires_at=current_expiry)

        result = await service.activate_membership(user.id, "trial_weekly", 900)

        assert result.expires_at == current_expiry + timedelta(days=7)
        membership = await _membership(session, user.id)
        assert membership.tier == "trial_weekly"

    @pytest.mark.asyncio
    async def test_renewal_after_expiry_starts_now(self, session, service, plans):
        """Past expiry is ignored even if the expiry job has not run yet."""
        user = await create_user(session, "member@example.com")
        await set_membership(session, user.id, expires_at=START - timedelta(days=1))

        result = await service.activate_membership(user.id, "annual", 29900)

        assert result.expires_at == START + timedelta(days=365)

    @pytest.mark.asyncio
    async def test_reactivation_from_inactive(self, session, service, plans):
        """Inactive membership becomes active again and inactive_at is cleared."""
        user = await create_user(session, "member@example.com")
        await set_membership(
            session,
            user.id,
            status=MembershipStatus.INACTIVE,
            expires_at=START - timedelta(days=3),
            inactive_at=START - timedelta(days=3),
        )

        await service.activate_membership(user.id, "annual", 29900)

        membership = await _membership(session, user.id)
        assert membership.status == MembershipStatus.ACTIVE
        assert membership.inactive_at is None
        events = await MembershipRepository(session).get_events(user.id)
        assert events[-1].from_status == MembershipStatus.INACTIVE

    @pytest.mark.asyncio
    async def test_lifetime_cannot_be_downgraded(self, session, service, plans):
        """Finite tier over lifetime is rejected and nothing is written."""
        user = await create_user(session, "member@example.com")
        user_id = user.id
        await set_membership(session, user_id, tier="lifetime", expires_at=None)

        with pytest.raises(LifetimeDowngradeError):
            await service.activate_membership(user_id, "annual", 29900)

        membership = await _membership(session, user_id)
        assert membership.tier == "lifetime"
        assert membership.expires_at is None
        _items, total = await MembershipPaymentRepository(session).list_for_user(
            user_id
        )
        assert total == 0

    @pytest.mark.asyncio
    async def test_lifetime_renewed_with_lifetime(self, session, service, plans):
        user = await create_user(session, "member@example.com")
        await set_membership(session, user.id, tier="lifetime", expires_at=None)

        result = await service.activate_membership(user.id, "lifetime", 49900)

        assert result.expires_at is None
        assert (await _membership(session, user.id)).expires_at is None

    @pytest.mark.asyncio
    async def test_unknown_user(self, service, plans):
        with pytest.raises(NotFoundError):
            await service.activate_membership(999, "annual", 29900)

    @pytest.mark.asyncio
    async def test_unknown_plan(self, session, service, plans):
        user = await create_user(session, "member@example.com")

        with pytest.raises(NotFoundError):
            await service.activate_membership(user.id, "platinum", 29900)

    @pytest.mark.asyncio
    async def test_deleted_membership_cannot_activate(self, session, service, plans):
        """Deleted is terminal."""
        user = await create_user(session, "member@example.com")
        await set_membership(
            session, user.id, status=MembershipStatus.DELETED, expires_at=START
        )

        with pytest.raises(ValidationError):
            await service.activate_membership(user.id, "annual", 29900)

    @pytest.mark.asyncio
    async def test_existing_pending_payment_confirmed(self, session, service, plans):
        """Given payment id of a pending intent, that row is confirmed in place."""
        user = await create_user(session, "member@example.com")
        payment = await create_payment(session, user.id, amount_usd_cents=29900)

        result = await service.activate_membership(
            user.id, "annual", 29900, payment_id=payment.id
        )

        assert result.payment_id == payment.id
        stored = await session.get(MembershipPayment, payment.id, populate_existing=True)
        assert stored.status == PaymentStatus.CONFIRMED
        assert stored.confirmed_at is not None
        _items, total = await MembershipPaymentRepository(session).list_for_user(
            user.id
        )
        assert total == 1

    @pytest.mark.asyncio
    async def test_unknown_payment_id_creates_row(self, session, service, plans):
        """External payment id without a row gets a ledger row with that id."""
        user = await create_user(session, "member@example.com")
        payment_id = str(uuid.uuid4())

        result = await service.activate_membership(
            user.id,
            "annual",
            29900,
            payment_id=payment_id,
            tx_hash="0x" + "12" * 32,
            chain="bsc",
        )

        assert result.payment_id == payment_id
        stored = await session.get(MembershipPayment, payment_id)
        assert stored.tx_hash == "0x" + "12" * 32
        assert stored.chain == "bsc"


class TestExpireMemberships:
    """expire_memberships()."""

    @pytest.mark.asyncio
    async def test_expired_active_become_inactive(self, session, service, plans):
        expired = await create_user(session, "expired@example.com")
        current = await create_user(session, "current@example.com")
        lifetime = await create_user(session, "lifetime@example.com")
        await set_membership(
            session, expired.id, expires_at=START - timedelta(seconds=1)
        )
        await set_membership(session, current.id, expires_at=START + timedelta(days=1))
        await set_membership(session, lifetime.id, tier="lifetime", expires_at=None)

        result = await service.expire_memberships()

        assert result.expired_count == 1
        membership = await _membership(session, expired.id)
        assert membership.status == MembershipStatus.INACTIVE
        assert as_utc(membership.inactive_at) == START
        assert (await _user(session, expired.id)).membership_status == "inactive"
        events = await MembershipRepository(session).get_events(expired.id)
        assert events[-1].reason == "expired"

        assert (await _membership(session, current.id)).status == "active"
        assert (await _membership(session, lifetime.id)).status == "active"

    @pytest.mark.asyncio
    async def test_nothing_to_expire(self, service, plans):
        result = await service.expire_memberships()

        assert result.expired_count == 0


class TestCompressInactiveUsers:
    """compress_inactive_users()."""

    @pytest.mark.asyncio
    async def test_children_relinked_to_grand_sponsor(self, session, service, plans):
        """Compressed user's referrals move up; user row is kept as deleted."""
        root = await create_user(session, "root@example.com")
        middle = await create_user(session, "middle@example.com", root.id)
        child_a = await create_user(session, "a@example.com", middle.id)
        child_b = await create_user(session, "b@example.com", middle.id)
        await set_membership(
            session,
            middle.id,
            status=MembershipStatus.INACTIVE,
            expires_at=START - timedelta(days=10),
            inactive_at=START - timedelta(days=8),
        )

        result = await service.compress_inactive_users()

        assert result.compressed_count == 1
        assert result.relinked_count == 2
        referrals = ReferralRepository(session)
        assert await referrals.get_sponsor_id(child_a.id) == root.id
        assert await referrals.get_sponsor_id(child_b.id) == root.id
        assert await referrals.get_direct_referral_ids(middle.id) == []

        assert (await _membership(session, middle.id)).status == "deleted"
        stored = await _user(session, middle.id)
        assert stored is not None
        assert stored.membership_status == "deleted"
        events = await MembershipRepository(session).get_events(middle.id)
        assert (events[-1].from_status, events[-1].to_status, events[-1].reason) == (
            "inactive",
            "deleted",
            "compressed",
        )

    @pytest.mark.asyncio
    async def test_root_compression_detaches_children(self, session, service, plans):
        """Children of a compressed root become roots themselves."""
        root = await create_user(session, "root@example.com")
        child = await create_user(session, "child@example.com", root.id)
        await set_membership(
            session,
            root.id,
            status=MembershipStatus.INACTIVE,
            inactive_at=START - timedelta(days=30),
        )

        await service.compress_inactive_users()

        assert await ReferralRepository(session).get_sponsor_id(child.id) is None

    @pytest.mark.asyncio
    async def test_within_grace_period_untouched(self, session, service, plans):
        user = await create_user(session, "recent@example.com")
        await set_membership(
            session,
            user.id,
            status=MembershipStatus.INACTIVE,
            inactive_at=START - timedelta(days=6),
        )

        result = await service.compress_inactive_users()

        assert result.compressed_count == 0
        assert (await _membership(session, user.id)).status == "inactive"
