"""
Membership models.

Per-user subscription state and its append-only transition history.
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class MembershipStatus:
    """Membership status constants.

    inactive -> active -> inactive -> deleted (terminal)
    """

    INACTIVE = "inactive"
    ACTIVE = "active"
    DELETED = "deleted"


class MembershipTier:
    """Built-in tier identifiers (plans may define more)."""

    TRIAL_WEEKLY = "trial_weekly"
    ANNUAL = "annual"
    LIFETIME = "lifetime"


class Membership(Base):
    """
    Current membership for a user.

    expires_at NULL means non-expiring (lifetime). Such a membership can
    only be renewed with another non-expiring tier while not deleted.
    """

    __tablename__ = "memberships"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    tier: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MembershipStatus.INACTIVE, index=True
    )

    # Lifecycle timestamps
    starts_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    activated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True,
        comment="NULL = lifetime",
    )
    inactive_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
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

    @property
    def is_non_expiring(self) -> bool:
        """Lifetime membership that has not been deleted."""
        return self.expires_at is None and self.status != MembershipStatus.DELETED

    def __repr__(self) -> str:
        return (
            f"<Membership(user_id={self.user_id}, tier={self.tier}, "
            f"status={self.status}, expires_at={self.expires_at})>"
        )


class MembershipEvent(Base):
    """Membership status transition (audit trail)."""

    __tablename__ = "membership_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<MembershipEvent(user_id={self.user_id}, "
            f"{self.from_status}->{self.to_status}, reason={self.reason})>"
        )
