"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from app.models.base import Base
from app.models.commission import Commission
from app.models.membership import (
    Membership,
    MembershipEvent,
    MembershipStatus,
    MembershipTier,
)
from app.models.membership_payment import (
    MembershipPayment,
    PaymentStatus,
    SweepStatus,
    payment_derivation_index_seq,
)
from app.models.membership_plan import MembershipPlan
from app.models.payment_chain_cursor import PaymentChainCursor
from app.models.referral import Referral
from app.models.user import User

__all__ = [
    "Base",
    "Commission",
    "Membership",
    "MembershipEvent",
    "MembershipPayment",
    "MembershipPlan",
    "MembershipStatus",
    "MembershipTier",
    "PaymentChainCursor",
    "PaymentStatus",
    "Referral",
    "SweepStatus",
    "User",
    "payment_derivation_index_seq",
]
