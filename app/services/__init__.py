"""
Services.

Business logic layer.
"""

# Membership
from app.services.membership import (
    MembershipPlanService,
    MembershipService,
)

# Payments
from app.services.payments import (
    ChainScanner,
    PaymentIntentService,
    PaymentPipeline,
    ReserveClient,
    SettlementApplier,
    SweepCoordinator,
)

# Referral
from app.services.referral import CommissionEngine, ReferralChainManager


__all__ = [
    # Membership
    "MembershipPlanService",
    "MembershipService",
    # Payments
    "ChainScanner",
    "PaymentIntentService",
    "PaymentPipeline",
    "ReserveClient",
    "SettlementApplier",
    "SweepCoordinator",
    # Referral
    "CommissionEngine",
    "ReferralChainManager",
]
