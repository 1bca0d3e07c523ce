"""
Membership plan model.

Catalogue of purchasable tiers with price and duration.
"""

from datetime import UTC, datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.types import UsdCentsType


class MembershipPlan(Base):
    """Membership plan keyed by tier."""

    __tablename__ = "membership_plans"
    __table_args__ = (
        CheckConstraint("price_usd_cents > 0", name="price_positive"),
        CheckConstraint(
            "duration_days IS NULL OR duration_days > 0", name="duration_positive"
        ),
        CheckConstraint("sort_order >= 0", name="sort_order_non_negative"),
    )

    tier: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price_usd_cents: Mapped[int] = mapped_column(UsdCentsType, nullable=False)
    duration_days: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="NULL = lifetime"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

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

    @property
    def is_lifetime(self) -> bool:
        return self.duration_days is None

    def __repr__(self) -> str:
        return (
            f"<MembershipPlan(tier={self.tier}, price={self.price_usd_cents}, "
            f"days={self.duration_days}, active={self.is_active})>"
        )
