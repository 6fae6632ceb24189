"""
Energy Allocation Data Models
=============================

Core data structures for monthly settlement.
"""

from .period import (
    Period,
    ALL_PERIODS,
    PEAK_PERIODS,
    NON_PEAK_PERIODS,
    SETTLEMENT_ORDER,
    is_peak,
    is_compatible,
    empty_quantities,
    coerce_quantities,
    quantities_to_dict,
)
from .units import (
    ProducerKind,
    ProductionUnit,
    ConsumptionUnit,
    BankedBalance,
    ShareholdingRecord,
)
from .allocation import (
    RecordType,
    AdjustmentType,
    AllocationRecord,
    BankingAllocationRecord,
    LapseAllocationRecord,
    BankingUsage,
    AllocationSummary,
    summarize_records,
)
from .keys import (
    RecordKey,
    build_pk,
    parse_pk,
    month_key,
    parse_month_key,
    financial_year_of,
    prior_months_in_financial_year,
)
from .migration import migrate_record

__all__ = [
    # Periods
    "Period",
    "ALL_PERIODS",
    "PEAK_PERIODS",
    "NON_PEAK_PERIODS",
    "SETTLEMENT_ORDER",
    "is_peak",
    "is_compatible",
    "empty_quantities",
    "coerce_quantities",
    "quantities_to_dict",
    # Units
    "ProducerKind",
    "ProductionUnit",
    "ConsumptionUnit",
    "BankedBalance",
    "ShareholdingRecord",
    # Records
    "RecordType",
    "AdjustmentType",
    "AllocationRecord",
    "BankingAllocationRecord",
    "LapseAllocationRecord",
    "BankingUsage",
    "AllocationSummary",
    "summarize_records",
    # Keys
    "RecordKey",
    "build_pk",
    "parse_pk",
    "month_key",
    "parse_month_key",
    "financial_year_of",
    "prior_months_in_financial_year",
    "migrate_record",
]
