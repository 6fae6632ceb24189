"""
Energy Allocation - Monthly Settlement Engine
=============================================

Settles, per time-of-day period, how much energy each production site
supplies to each consumption site, and what is banked or lapsed.

Features:
- Priority-ordered greedy matching, peak periods first
- Captive shareholding scaling at match time
- Banking and lapse of unmatched production
- FIFO reconciliation of hand-edited allocations
- Versioned record migration

Usage:
    # API Server
    python run_api.py --port 8000
"""

__version__ = "1.0.0"
__author__ = "Energy Allocation Team"

from .models.period import Period, is_peak, is_compatible
from .models.units import (
    ProducerKind,
    ProductionUnit,
    ConsumptionUnit,
    BankedBalance,
    ShareholdingRecord,
)
from .models.allocation import (
    AllocationRecord,
    BankingAllocationRecord,
    LapseAllocationRecord,
    BankingUsage,
)
from .engine.matching import MatchingEngine, SettlementResult, settle_month
from .engine.reconciliation import ReconciliationEngine, DepositLedger
from .validators.errors import ValidationError, InvalidInputError, ChargeConflictError

__all__ = [
    # Version
    "__version__",
    # Periods
    "Period",
    "is_peak",
    "is_compatible",
    # Units
    "ProducerKind",
    "ProductionUnit",
    "ConsumptionUnit",
    "BankedBalance",
    "ShareholdingRecord",
    # Records
    "AllocationRecord",
    "BankingAllocationRecord",
    "LapseAllocationRecord",
    "BankingUsage",
    # Engine
    "MatchingEngine",
    "SettlementResult",
    "settle_month",
    "ReconciliationEngine",
    "DepositLedger",
    # Errors
    "ValidationError",
    "InvalidInputError",
    "ChargeConflictError",
]
