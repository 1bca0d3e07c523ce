"""
Integration tests for upline traversal and commission creation.
"""

from datetime import timedelta

import pytest

from app.models import MembershipStatus, PaymentStatus, Referral
from app.repositories.commission_repository import CommissionRepository
from app.services.referral.chain_manager import ReferralChainManager
from app.services.referral.commission_engine import CommissionEngine
from app.utils.exceptions import NotFoundError, ValidationError
from tests.factories import (
    START,
    compress_member,
    create_chain,
    create_payment,
    create_user,
    set_membership,
)


async def _activate_all(session, users, expires_at=None) -> None:
    for user in users:
        await set_membership(
            session, user.id, expires_at=expires_at or START + timedelta(days=30)
        )


async def _payment(session, user_id: int):
    return await create_payment(
        session, user_id, status=PaymentStatus.CONFIRMED, sweep_status=None
    )


class TestReferralUpline:
    """ReferralChainManager.get_upline()."""

    @pytest.mark.asyncio
    async def test_levels_ordered_from_direct_sponsor(self, session):
        users = await create_chain(session, 5)
        leaf = users[-1]

        upline = await ReferralChainManager(session).get_upline(leaf.id, 10)

        assert [(e.user_id, e.level) for e in upline] == [
            (users[3].id, 1),
            (users[2].id, 2),
            (users[1].id, 3),
            (users[0].id, 4),
        ]

    @pytest.mark.asyncio
    async def test_bounded_by_depth(self, session):
        users = await create_chain(session, 12)

        upline = await ReferralChainManager(session).get_upline(users[-1].id, 3)

        assert [e.user_id for e in upline] == [u.id for u in users[-2:-5:-1]]

    @pytest.mark.asyncio
    async def test_root_has_no_upline(self, session):
        users = await create_chain(session, 3)

        assert await ReferralChainManager(session).get_upline(users[0].id, 7) == []

    @pytest.mark.asyncio
    async def test_stops_at_cycle(self, session):
        """Corrupt data with a loop does not cause an endless walk."""
        a = await create_user(session, "a@example.com")
        b = await create_user(session, "b@example.com", a.id)
        session.add(Referral(user_id=a.id, sponsor_id=b.id))
        await session.commit()

        upline = await ReferralChainManager(session).get_upline(b.id, 7)

        assert [e.user_id for e in upline] == [a.id]


class TestReferralLink:
    """ReferralChainManager.upsert_referral_link()."""

    @pytest.mark.asyncio
    async def test_link_created_once(self, session):
        sponsor = await create_user(session, "sponsor@example.com")
        other = await create_user(session, "other@example.com")
        user = await create_user(session, "user@example.com")
        manager = ReferralChainManager(session)

        assert await manager.upsert_referral_link(user.id, sponsor.id) is True
        assert await manager.upsert_referral_link(user.id, other.id) is False

        upline = await manager.get_upline(user.id, 1)
        assert upline[0].user_id == sponsor.id

    @pytest.mark.asyncio
    async def test_self_sponsor_rejected(self, session):
        user = await create_user(session, "user@example.com")

        with pytest.raises(ValidationError):
            await ReferralChainManager(session).upsert_referral_link(user.id, user.id)

    @pytest.mark.asyncio
    async def test_unknown_sponsor(self, session):
        user = await create_user(session, "user@example.com")

        with pytest.raises(NotFoundError):
            await ReferralChainManager(session).upsert_referral_link(user.id, 999)

    @pytest.mark.asyncio
    async def test_deleted_sponsor_rejected(self, session, membership_config, clock):
        """Nobody is placed under a member removed by compression."""
        sponsor = await create_user(session, "sponsor@example.com")
        await compress_member(session, sponsor.id, membership_config, clock)
        newcomer = await create_user(session, "newcomer@example.com")
        manager = ReferralChainManager(session)

        with pytest.raises(ValidationError):
            await manager.upsert_referral_link(newcomer.id, sponsor.id)

        assert await manager.get_upline(newcomer.id, 1) == []

    @pytest.mark.asyncio
    async def test_loop_rejected(self, session):
        """A user cannot be placed under their own downline."""
        users = await create_chain(session, 3)
        root = users[0]
        with pytest.raises(ValidationError):
            await ReferralChainManager(session).upsert_referral_link(
                root.id, users[-1].id
            )


class TestCommissionEngine:
    """CommissionEngine.create_commissions()."""

    @pytest.mark.asyncio
    async def test_sponsor_and_network_levels(self, session, membership_config, clock):
        """Level 1 gets the sponsor share, levels 2-7 the network share, no deeper."""
        users = await create_chain(session, 9)
        payer = users[-1]
        await _activate_all(session, users[:-1])
        payment = await _payment(session, payer.id)

        result = await CommissionEngine(
            session, membership_config, clock=clock
        ).create_commissions(payment.id, payer.id, 10000)
        await session.commit()

        assert result.created_count == 7
        assert result.total_cents == 2000 + 6 * 500
        rows = await CommissionRepository(session).get_for_payment(payment.id)
        assert [(r.level, r.to_user_id, r.amount_usd_cents) for r in rows] == [
            (1, users[7].id, 2000),
            (2, users[6].id, 500),
            (3, users[5].id, 500),
            (4, users[4].id, 500),
            (5, users[3].id, 500),
            (6, users[2].id, 500),
            (7, users[1].id, 500),
        ]
        assert all(r.from_user_id == payer.id for r in rows)

    @pytest.mark.asyncio
    async def test_inactive_ancestors_skipped(self, session, membership_config, clock):
        """Inactive sponsor earns nothing; deeper active levels still do."""
        users = await create_chain(session, 4)
        payer = users[-1]
        await set_membership(
            session,
            users[2].id,
            status=MembershipStatus.INACTIVE,
            inactive_at=START,
        )
        await _activate_all(session, users[:2])
        payment = await _payment(session, payer.id)

        result = await CommissionEngine(
            session, membership_config, clock=clock
        ).create_commissions(payment.id, payer.id, 10000)
        await session.commit()

        assert result.skipped_user_ids == [users[2].id]
        rows = await CommissionRepository(session).get_for_payment(payment.id)
        assert [(r.level, r.amount_usd_cents) for r in rows] == [(2, 500), (3, 500)]

    @pytest.mark.asyncio
    async def test_lapsed_but_not_yet_expired_by_job(
        self, session, membership_config, clock
    ):
        """Active status with a past expiry does not earn."""
        users = await create_chain(session, 2)
        await _activate_all(session, users[:1], expires_at=START - timedelta(hours=1))
        payment = await _payment(session, users[1].id)

        result = await CommissionEngine(
            session, membership_config, clock=clock
        ).create_commissions(payment.id, users[1].id, 10000)

        assert result.created_count == 0
        assert result.skipped_user_ids == [users[0].id]

    @pytest.mark.asyncio
    async def test_created_once_per_payment(self, session, membership_config, clock):
        users = await create_chain(session, 3)
        await _activate_all(session, users[:-1])
        payment = await _payment(session, users[-1].id)
        engine = CommissionEngine(session, membership_config, clock=clock)

        await engine.create_commissions(payment.id, users[-1].id, 10000)
        await session.commit()
        again = await engine.create_commissions(payment.id, users[-1].id, 10000)

        assert again.already_existed is True
        assert again.created_count == 0
        rows = await CommissionRepository(session).get_for_payment(payment.id)
        assert len(rows) == 2

    @pytest.mark.asyncio
    async def test_no_upline(self, session, membership_config, clock):
        user = await create_user(session, "solo@example.com")
        payment = await _payment(session, user.id)

        result = await CommissionEngine(
            session, membership_config, clock=clock
        ).create_commissions(payment.id, user.id, 10000)

        assert result.created_count == 0
        assert result.skipped_user_ids == []
