"""
Energy Allocation Engine
========================

Shareholding scaling, normalization, matching, banking and reconciliation.
"""

from .shareholding import apply_share, build_share_map, share_totals
from .normalizer import (
    RemainingCapacity,
    has_remaining,
    normalize_production,
    normalize_consumption,
    normalize_banked,
)
from .matching import (
    MatchingEngine,
    MatchStep,
    SettlementResult,
    parse_overrides,
    settle_month,
)
from .banking import aggregate_banked_balances
from .reconciliation import (
    AdjustmentKind,
    BankDeposit,
    DepositLedger,
    ReconciliationAdjustment,
    ReconciliationEngine,
    ReconciliationResult,
)

__all__ = [
    # Shareholding
    "apply_share",
    "build_share_map",
    "share_totals",
    # Normalizer
    "RemainingCapacity",
    "has_remaining",
    "normalize_production",
    "normalize_consumption",
    "normalize_banked",
    # Matching
    "MatchingEngine",
    "MatchStep",
    "SettlementResult",
    "parse_overrides",
    "settle_month",
    # Banking
    "aggregate_banked_balances",
    # Reconciliation
    "AdjustmentKind",
    "BankDeposit",
    "DepositLedger",
    "ReconciliationAdjustment",
    "ReconciliationEngine",
    "ReconciliationResult",
]
