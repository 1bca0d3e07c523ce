"""
MembershipPlan repository.

Data access layer for MembershipPlan model.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.membership_plan import MembershipPlan
from app.repositories.base import BaseRepository


class MembershipPlanRepository(BaseRepository[MembershipPlan]):
    """Membership plan repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize membership plan repository."""
        super().__init__(MembershipPlan, session)

    async def list_plans(self, include_inactive: bool = False) -> list[MembershipPlan]:
        """
        List plans ordered for display.

        Args:
            include_inactive: Include plans that cannot be purchased

        Returns:
            Plans ordered by sort_order, then name
        """
        stmt = select(MembershipPlan)
        if not include_inactive:
            stmt = stmt.where(MembershipPlan.is_active.is_(True))
        stmt = stmt.order_by(MembershipPlan.sort_order, MembershipPlan.name)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
