"""
Referral model.

One edge per user pointing at their sponsor (upline).
"""

from datetime import UTC, datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class Referral(Base):
    """
    Referral edge: user_id -> sponsor_id.

    Set once at signup; rewritten only when the sponsor is compressed
    out of the graph (children are relinked to the sponsor's sponsor).
    """

    __tablename__ = "referrals"
    __table_args__ = (
        CheckConstraint("user_id <> sponsor_id", name="no_self_sponsor"),
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    sponsor_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
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
        return f"<Referral(user_id={self.user_id}, sponsor_id={self.sponsor_id})>"
