"""
Commission model.

Immutable ledger of referral commissions generated by a payment.
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.types import UsdCentsType


class Commission(Base):
    """
    One commission row per (payment, level).

    Level 1 is the direct sponsor; deeper levels are the network.
    """

    __tablename__ = "commissions"
    __table_args__ = (
        UniqueConstraint("payment_id", "level", name="uq_commissions_payment_level"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payment_id: Mapped[str] = mapped_column(
        ForeignKey("membership_payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    to_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_usd_cents: Mapped[int] = mapped_column(UsdCentsType, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<Commission(payment_id={self.payment_id}, level={self.level}, "
            f"to_user_id={self.to_user_id}, amount={self.amount_usd_cents})>"
        )
