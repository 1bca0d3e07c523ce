"""
Payment chain cursor model.

Tracks the last scanned block per (chain, token contract) so the
deposit scanner can resume after restart.
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.types import AddressType, BlockNumberType


class PaymentChainCursor(Base):
    """
    Scan watermark.

    last_scanned_block never decreases; it is only moved after a window
    (or a prefix of it) has been fully processed.
    """

    __tablename__ = "payment_chain_cursors"

    # Token/chain identification
    chain: Mapped[str] = mapped_column(String(32), primary_key=True)
    contract: Mapped[str] = mapped_column(AddressType, primary_key=True)

    last_scanned_block: Mapped[int] = mapped_column(
        BlockNumberType, nullable=False, default=0
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentChainCursor(chain={self.chain}, "
            f"block={self.last_scanned_block})>"
        )
