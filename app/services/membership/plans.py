"""
Membership plans.

Catalogue management for purchasable tiers and expiry calculation.
"""

from datetime import datetime, timedelta
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.membership import MembershipTier
from app.models.membership_plan import MembershipPlan
from app.repositories.membership_plan_repository import MembershipPlanRepository
from app.utils.exceptions import ConflictError, NotFoundError, ValidationError

DEFAULT_PLANS: list[dict[str, Any]] = [
    {
        "tier": MembershipTier.TRIAL_WEEKLY,
        "name": "Weekly trial",
        "price_usd_cents": 900,
        "duration_days": 7,
        "sort_order": 0,
    },
    {
        "tier": MembershipTier.ANNUAL,
        "name": "Annual",
        "price_usd_cents": 29900,
        "duration_days": 365,
        "sort_order": 1,
    },
    {
        "tier": MembershipTier.LIFETIME,
        "name": "Lifetime",
        "price_usd_cents": 49900,
        "duration_days": None,
        "sort_order": 2,
    },
]

_UPDATABLE_FIELDS = {
    "name",
    "description",
    "price_usd_cents",
    "duration_days",
    "is_active",
    "sort_order",
}


def calculate_expires_at(
    duration_days: int | None, base: datetime
) -> datetime | None:
    """
    Compute membership expiry.

    Args:
        duration_days: Plan duration, None for lifetime
        base: Start of the new period

    Returns:
        base + duration, or None for lifetime plans
    """
    if duration_days is None:
        return None
    return base + timedelta(days=duration_days)


def validate_plan_input(data: dict[str, Any]) -> None:
    """
    Validate plan fields that are present in data.

    Raises:
        ValidationError: On the first invalid field
    """
    if "tier" in data and not str(data["tier"] or "").strip():
        raise ValidationError("Plan tier is required")
    if "name" in data and not str(data["name"] or "").strip():
        raise ValidationError("Plan name is required")
    if "price_usd_cents" in data and (
        data["price_usd_cents"] is None or data["price_usd_cents"] <= 0
    ):
        raise ValidationError("Plan price must be greater than 0")
    if data.get("duration_days") is not None and data["duration_days"] <= 0:
        raise ValidationError("Plan duration must be greater than 0 days")
    if "sort_order" in data and (
        data["sort_order"] is None or data["sort_order"] < 0
    ):
        raise ValidationError("Plan sort order must be 0 or greater")


class MembershipPlanService:
    """CRUD for membership plans. Write methods commit."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.plan_repo = MembershipPlanRepository(session)

    async def list_plans(self, include_inactive: bool = False) -> list[MembershipPlan]:
        return await self.plan_repo.list_plans(include_inactive=include_inactive)

    async def get_plan(self, tier: str) -> MembershipPlan | None:
        return await self.plan_repo.get_by_id(tier)

    async def require_plan(self, tier: str) -> MembershipPlan:
        """Get plan or raise NotFoundError."""
        plan = await self.get_plan(tier)
        if plan is None:
            raise NotFoundError("Membership plan", tier)
        return plan

    async def require_active_plan(self, tier: str) -> MembershipPlan:
        """Get purchasable plan or raise."""
        plan = await self.require_plan(tier)
        if not plan.is_active:
            raise ValidationError("Plan is not available")
        return plan

    async def create_plan(
        self,
        tier: str,
        name: str,
        price_usd_cents: int,
        duration_days: int | None,
        description: str | None = None,
        is_active: bool = True,
        sort_order: int = 0,
    ) -> MembershipPlan:
        """
        Create plan.

        Raises:
            ValidationError: Invalid fields
            ConflictError: Tier already exists
        """
        data = {
            "tier": tier,
            "name": name,
            "description": description,
            "price_usd_cents": price_usd_cents,
            "duration_days": duration_days,
            "is_active": is_active,
            "sort_order": sort_order,
        }
        validate_plan_input(data)

        if await self.get_plan(tier) is not None:
            raise ConflictError("Plan already exists")

        plan = await self.plan_repo.create(**data)
        await self.session.commit()

        logger.info(f"Membership plan created: {tier}")
        return plan

    async def update_plan(self, tier: str, **changes: Any) -> MembershipPlan:
        """
        Update plan fields.

        Args:
            tier: Plan tier
            **changes: Any of name, description, price_usd_cents,
                duration_days, is_active, sort_order

        Raises:
            ValidationError: No or unknown fields, or invalid values
            NotFoundError: Plan does not exist
        """
        if not changes:
            raise ValidationError("No plan fields provided")
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown plan fields: {', '.join(sorted(unknown))}")
        validate_plan_input(changes)

        plan = await self.plan_repo.update(tier, **changes)
        if plan is None:
            raise NotFoundError("Membership plan", tier)
        await self.session.commit()

        logger.info(f"Membership plan updated: {tier} ({', '.join(sorted(changes))})")
        return plan

    async def seed_default_plans(self) -> int:
        """
        Insert built-in plans that are missing.

        Returns:
            Number of plans created
        """
        created = 0
        for data in DEFAULT_PLANS:
            if await self.get_plan(data["tier"]) is None:
                await self.plan_repo.create(**data)
                created += 1
        if created:
            await self.session.commit()
            logger.info(f"Seeded {created} default membership plans")
        return created
