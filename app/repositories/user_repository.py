"""
User repository.

Keeps the denormalized membership columns on users in sync.
"""

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """User repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(User, session)

    async def set_membership(
        self,
        user_ids: list[int],
        *,
        status: str,
        now: datetime,
        tier: str | None = None,
        expires_at: datetime | None = None,
        update_tier: bool = False,
    ) -> int:
        """
        Update denormalized membership columns for users.

        Args:
            user_ids: Users to update
            status: New membership status
            now: Update timestamp
            tier: Tier to store when update_tier is set
            expires_at: Expiry to store when update_tier is set
            update_tier: Also overwrite tier and expiry

        Returns:
            Number of updated rows
        """
        if not user_ids:
            return 0

        values: dict = {"membership_status": status, "updated_at": now}
        if update_tier:
            values["membership_tier"] = tier
            values["membership_expires_at"] = expires_at

        return await self.conditional_update(User.id.in_(user_ids), **values)
