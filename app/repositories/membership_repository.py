"""
Membership repository.

Data access layer for Membership and MembershipEvent models.
"""

from datetime import datetime

from sqlalchemy import insert, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.membership import Membership, MembershipEvent, MembershipStatus
from app.repositories.base import BaseRepository


class MembershipRepository(BaseRepository[Membership]):
    """Membership repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize membership repository."""
        super().__init__(Membership, session)

    async def get_for_user(
        self, user_id: int, for_update: bool = False
    ) -> Membership | None:
        """Get membership of user, optionally locking the row."""
        stmt = (
            select(Membership)
            .where(Membership.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_user_ids(
        self, user_ids: list[int], now: datetime
    ) -> set[int]:
        """
        Filter user IDs down to those with a currently active membership.

        Memberships past their expiry count as inactive even if the
        expiry job has not run yet.

        Args:
            user_ids: Candidate user IDs
            now: Current time

        Returns:
            Set of user IDs whose membership status is active
        """
        if not user_ids:
            return set()
        stmt = select(Membership.user_id).where(
            Membership.user_id.in_(user_ids),
            Membership.status == MembershipStatus.ACTIVE,
            or_(Membership.expires_at.is_(None), Membership.expires_at > now),
        )
        result = await self.session.execute(stmt)
        return set(result.scalars().all())

    async def get_expired_active(self, now: datetime) -> list[Membership]:
        """Get active memberships whose finite expiry is in the past."""
        stmt = (
            select(Membership)
            .where(
                Membership.status == MembershipStatus.ACTIVE,
                Membership.expires_at.is_not(None),
                Membership.expires_at < now,
            )
            .with_for_update(skip_locked=True)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_compressible(self, cutoff: datetime) -> list[Membership]:
        """Get inactive memberships that went inactive at or before cutoff."""
        stmt = (
            select(Membership)
            .where(
                Membership.status == MembershipStatus.INACTIVE,
                Membership.inactive_at.is_not(None),
                Membership.inactive_at <= cutoff,
            )
            .order_by(Membership.inactive_at)
            .with_for_update(skip_locked=True)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def set_status(
        self,
        user_ids: list[int],
        *,
        from_status: str,
        to_status: str,
        now: datetime,
        inactive_at: datetime | None = None,
    ) -> int:
        """
        Move memberships from one status to another.

        Only rows still in from_status are touched.

        Returns:
            Number of updated rows
        """
        if not user_ids:
            return 0
        values: dict = {"status": to_status, "updated_at": now}
        if inactive_at is not None:
            values["inactive_at"] = inactive_at
        return await self.conditional_update(
            Membership.user_id.in_(user_ids),
            Membership.status == from_status,
            **values,
        )

    async def record_events(
        self,
        events: list[dict],
    ) -> None:
        """
        Record membership status transitions.

        Args:
            events: Dicts with user_id, from_status, to_status, reason,
                created_at
        """
        if not events:
            return
        await self.session.execute(insert(MembershipEvent), events)

    async def get_events(self, user_id: int) -> list[MembershipEvent]:
        """Get membership events for user, oldest first."""
        stmt = (
            select(MembershipEvent)
            .where(MembershipEvent.user_id == user_id)
            .order_by(MembershipEvent.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
