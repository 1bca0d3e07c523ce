"""
Referral chain management module.

Handles upline traversal and sponsor link creation.
"""

from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.membership import MembershipStatus
from app.models.user import User
from app.repositories.referral_repository import ReferralRepository
from app.services.referral.config import MAX_UPLINE_DEPTH_LIMIT
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import NotFoundError, ValidationError


@dataclass(frozen=True)
class UplineEntry:
    """Ancestor of a user in the referral graph."""

    user_id: int
    level: int


class ReferralChainManager:
    """Manages referral chain operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize chain manager."""
        self.session = session
        self.referral_repo = ReferralRepository(session)

    async def get_upline(self, user_id: int, max_depth: int) -> list[UplineEntry]:
        """
        Walk sponsors upward from user.

        Iterative and bounded: at most max_depth lookups, stops at the
        first missing sponsor or at a node already visited.

        Args:
            user_id: Starting user (not included in the result)
            max_depth: Number of levels to collect

        Returns:
            Ancestors ordered by level, level 1 = direct sponsor
        """
        depth = min(max_depth, MAX_UPLINE_DEPTH_LIMIT)
        upline: list[UplineEntry] = []
        visited = {user_id}
        current = user_id
        level = 1

        while level <= depth:
            sponsor_id = await self.referral_repo.get_sponsor_id(current)
            if sponsor_id is None:
                break
            if sponsor_id in visited:
                logger.warning(
                    "Referral loop detected",
                    extra={
                        "user_id": user_id,
                        "loop_at": sponsor_id,
                        "level": level,
                    },
                )
                break
            visited.add(sponsor_id)
            upline.append(UplineEntry(user_id=sponsor_id, level=level))
            current = sponsor_id
            level += 1

        logger.debug(
            "Referral upline retrieved",
            extra={
                "user_id": user_id,
                "depth": depth,
                "chain_length": len(upline),
            },
        )
        return upline

    async def upsert_referral_link(self, user_id: int, sponsor_id: int) -> bool:
        """
        Attach user to sponsor unless a sponsor is already set.

        Args:
            user_id: User being referred
            sponsor_id: Referring user

        Returns:
            True if link was created, False if user already had a sponsor

        Raises:
            ValidationError: Self-referral, deleted sponsor or loop
            NotFoundError: Sponsor does not exist
        """
        if user_id == sponsor_id:
            raise ValidationError("Users cannot sponsor themselves")

        sponsor = await self.session.get(User, sponsor_id, populate_existing=True)
        if sponsor is None:
            raise NotFoundError("User", sponsor_id)
        if sponsor.membership_status == MembershipStatus.DELETED:
            raise ValidationError("Sponsor membership has been deleted")

        # Sponsor's own upline must not contain the user
        sponsor_chain = await self.get_upline(sponsor_id, MAX_UPLINE_DEPTH_LIMIT)
        if any(entry.user_id == user_id for entry in sponsor_chain):
            raise ValidationError("Referral link would create a loop")

        created = await self.referral_repo.set_sponsor_if_absent(
            user_id, sponsor_id, utc_now()
        )
        await self.session.commit()

        if created:
            logger.info(
                "Referral link created",
                extra={"user_id": user_id, "sponsor_id": sponsor_id},
            )
        return created
