"""
PaymentChainCursor repository.

Cursor writes are monotonic: a lower block never overwrites a higher one.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payment_chain_cursor import PaymentChainCursor
from app.repositories.base import BaseRepository


class PaymentChainCursorRepository(BaseRepository[PaymentChainCursor]):
    """Chain cursor repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(PaymentChainCursor, session)

    async def get_last_scanned(self, chain: str, contract: str) -> int | None:
        """
        Get last scanned block.

        Returns:
            Block number or None if chain was never scanned
        """
        stmt = select(PaymentChainCursor.last_scanned_block).where(
            PaymentChainCursor.chain == chain,
            PaymentChainCursor.contract == contract,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def advance(self, chain: str, contract: str, block: int) -> int:
        """
        Move cursor forward to block (never backwards).

        Args:
            chain: Chain name
            contract: Token contract address
            block: Last fully scanned block

        Returns:
            Cursor value after the call
        """
        cursor = await self.get_by_id((chain, contract))
        if cursor is None:
            await self.create(chain=chain, contract=contract, last_scanned_block=block)
            return block

        moved = await self.conditional_update(
            PaymentChainCursor.chain == chain,
            PaymentChainCursor.contract == contract,
            PaymentChainCursor.last_scanned_block < block,
            last_scanned_block=block,
        )
        if moved:
            return block
        await self.session.refresh(cursor)
        return cursor.last_scanned_block
