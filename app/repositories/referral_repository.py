"""
Referral repository.

Data access layer for Referral model.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.referral import Referral
from app.repositories.base import BaseRepository


class ReferralRepository(BaseRepository[Referral]):
    """Referral repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize referral repository."""
        super().__init__(Referral, session)

    async def get_sponsor_id(self, user_id: int) -> int | None:
        """
        Get direct sponsor of user.

        Args:
            user_id: User ID

        Returns:
            Sponsor user ID or None if user has no sponsor
        """
        stmt = select(Referral.sponsor_id).where(Referral.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_direct_referral_ids(self, sponsor_id: int) -> list[int]:
        """Get IDs of users directly sponsored by sponsor_id."""
        stmt = select(Referral.user_id).where(Referral.sponsor_id == sponsor_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def relink_children(
        self, sponsor_id: int, new_sponsor_id: int | None, now: datetime
    ) -> int:
        """
        Move all direct referrals of sponsor_id under new_sponsor_id.

        Returns:
            Number of relinked users
        """
        return await self.conditional_update(
            Referral.sponsor_id == sponsor_id,
            sponsor_id=new_sponsor_id,
            updated_at=now,
        )

    async def set_sponsor_if_absent(
        self, user_id: int, sponsor_id: int, now: datetime
    ) -> bool:
        """
        Link user to sponsor unless a sponsor is already set.

        Returns:
            True if the link was written
        """
        edge = await self.get_by_id(user_id)
        if edge is None:
            await self.create(user_id=user_id, sponsor_id=sponsor_id)
            return True

        updated = await self.conditional_update(
            Referral.user_id == user_id,
            Referral.sponsor_id.is_(None),
            sponsor_id=sponsor_id,
            updated_at=now,
        )
        return updated > 0
