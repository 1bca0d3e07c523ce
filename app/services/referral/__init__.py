"""
Referral services package.

Contains modular services for referral processing:
- config: Level constants (SPONSOR_LEVEL)
- chain_manager: Upline traversal and sponsor links
- commission_engine: Commission split and ledger creation
"""

from app.services.referral.chain_manager import ReferralChainManager, UplineEntry
from app.services.referral.commission_engine import (
    CommissionEngine,
    CommissionResult,
    CommissionSplit,
    calculate_commission_split,
)
from app.services.referral.config import SPONSOR_LEVEL


__all__ = [
    # Configuration
    "SPONSOR_LEVEL",
    # Graph
    "ReferralChainManager",
    "UplineEntry",
    # Commissions
    "CommissionEngine",
    "CommissionResult",
    "CommissionSplit",
    "calculate_commission_split",
]
