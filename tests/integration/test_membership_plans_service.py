"""
Integration tests for membership plan management.
"""

import pytest

from app.services.membership.plans import MembershipPlanService
from app.utils.exceptions import ConflictError, NotFoundError, ValidationError


class TestMembershipPlanService:
    """Plan catalogue CRUD."""

    @pytest.mark.asyncio
    async def test_default_plans_seeded_once(self, session, plans):
        service = MembershipPlanService(session)

        assert [p.tier for p in plans] == ["trial_weekly", "annual", "lifetime"]
        assert await service.seed_default_plans() == 0

        lifetime = await service.get_plan("lifetime")
        assert lifetime.duration_days is None
        assert lifetime.is_lifetime is True

    @pytest.mark.asyncio
    async def test_create_plan(self, session, plans):
        service = MembershipPlanService(session)

        plan = await service.create_plan(
            "monthly", "Monthly", price_usd_cents=2900, duration_days=30, sort_order=1
        )

        assert plan.tier == "monthly"
        assert (await service.require_active_plan("monthly")).price_usd_cents == 2900

    @pytest.mark.asyncio
    async def test_duplicate_tier(self, session, plans):
        with pytest.raises(ConflictError):
            await MembershipPlanService(session).create_plan(
                "annual", "Annual again", price_usd_cents=100, duration_days=365
            )

    @pytest.mark.asyncio
    async def test_invalid_price(self, session, plans):
        with pytest.raises(ValidationError):
            await MembershipPlanService(session).create_plan(
                "free", "Free", price_usd_cents=0, duration_days=30
            )

    @pytest.mark.asyncio
    async def test_update_plan(self, session, plans):
        service = MembershipPlanService(session)

        plan = await service.update_plan("annual", price_usd_cents=25000, is_active=False)

        assert plan.price_usd_cents == 25000
        assert [p.tier for p in await service.list_plans()] == [
            "trial_weekly",
            "lifetime",
        ]
        assert len(await service.list_plans(include_inactive=True)) == 3

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self, session, plans):
        with pytest.raises(ValidationError):
            await MembershipPlanService(session).update_plan("annual", color="gold")

    @pytest.mark.asyncio
    async def test_update_missing_plan(self, session, plans):
        with pytest.raises(NotFoundError):
            await MembershipPlanService(session).update_plan("platinum", name="Gold")
