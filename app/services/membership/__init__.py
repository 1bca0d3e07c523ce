"""
Membership services package.

Contains:
- plans: Plan catalogue and expiry calculation
- service: Membership state machine (activate, expire, compress)
"""

from app.services.membership.plans import (
    DEFAULT_PLANS,
    MembershipPlanService,
    calculate_expires_at,
)
from app.services.membership.service import (
    ActivationResult,
    CompressResult,
    ExpireResult,
    MembershipService,
)


__all__ = [
    # Plans
    "DEFAULT_PLANS",
    "MembershipPlanService",
    "calculate_expires_at",
    # State machine
    "ActivationResult",
    "CompressResult",
    "ExpireResult",
    "MembershipService",
]
