"""
Commission repository.

Data access layer for Commission model.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.commission import Commission
from app.repositories.base import BaseRepository


class CommissionRepository(BaseRepository[Commission]):
    """Commission repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission repository."""
        super().__init__(Commission, session)

    async def exists_for_payment(self, payment_id: str) -> bool:
        """Check whether commissions were already created for payment."""
        return await self.exists(payment_id=payment_id)

    async def get_for_payment(self, payment_id: str) -> list[Commission]:
        """Get commission rows for payment ordered by level."""
        stmt = (
            select(Commission)
            .where(Commission.payment_id == payment_id)
            .order_by(Commission.level)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def bulk_create(self, items: list[dict]) -> int:
        """
        Insert commission rows in one statement.

        Returns:
            Number of inserted rows
        """
        return await self.insert_many(items)

    async def total_for_user(self, user_id: int) -> int:
        """Sum of commissions earned by user in cents."""
        stmt = select(func.coalesce(func.sum(Commission.amount_usd_cents), 0)).where(
            Commission.to_user_id == user_id
        )
        result = await self.session.execute(stmt)
        return int(result.scalar() or 0)
