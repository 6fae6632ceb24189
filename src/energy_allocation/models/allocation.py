"""
Allocation Record Models
========================

Output records of a settlement run.

Record Types:
- ALLOCATION: production site -> consumption site, per period
- BANKING: unmatched production of a banking-enabled site
- LAPSE: unmatched production forfeited for the month

Charge Rule:
- At most one allocation per (production site, month) may carry charge=True
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from .keys import build_pk
from .period import (
    ALL_PERIODS,
    Period,
    PeriodQuantities,
    coerce_quantities,
    empty_quantities,
    non_peak_total,
    peak_total,
    quantities_to_dict,
    total,
)


class RecordType(Enum):
    """Settlement record type"""
    ALLOCATION = "ALLOCATION"
    BANKING = "BANKING"
    LAPSE = "LAPSE"


class AdjustmentType(Enum):
    """Manual correction tag on an allocation"""
    NORMAL = "normal"
    INJECTION = "injection"
    REDUCTION = "reduction"


@dataclass
class AllocationRecord:
    """Units supplied by one production site to one consumption site

    Attributes:
        production_site_id: Supplying site
        consumption_site_id: Receiving site
        month: Month key (MMYYYY)
        company_id: Owning company (opaque key)
        allocated: Credited units per period (after shareholding)
        charge: Site carries the month's charges
        adjustment_type: normal / injection / reduction
        adjustments: Per-period correction applied outside matching
        version: Incremented on every edit

    Example:
        >>> record = AllocationRecord("11", "204", "042025", company_id="1")
        >>> record.add(Period.P2, 50)
        >>> record.total_units()
        50
    """
    production_site_id: str
    consumption_site_id: str
    month: str
    company_id: str = ""
    allocated: PeriodQuantities = field(default_factory=empty_quantities)
    charge: bool = False
    adjustment_type: AdjustmentType = AdjustmentType.NORMAL
    adjustments: PeriodQuantities = field(default_factory=empty_quantities)
    version: int = 1
    production_site_name: str = ""
    consumption_site_name: str = ""
    producer_kind: str = ""

    record_type = RecordType.ALLOCATION

    @property
    def pk(self) -> str:
        if not self.company_id:
            return ""
        return build_pk(self.company_id, self.production_site_id, self.consumption_site_id)

    @property
    def sk(self) -> str:
        return self.month

    def add(self, period: Period, quantity: int):
        self.allocated[period] = self.allocated.get(period, 0) + quantity

    def total_units(self) -> int:
        return total(self.allocated)

    def peak_units(self) -> int:
        return peak_total(self.allocated)

    def non_peak_units(self) -> int:
        return non_peak_total(self.allocated)

    def has_allocation(self) -> bool:
        return any(self.allocated.get(p, 0) > 0 for p in ALL_PERIODS)

    def superseded_by(
        self,
        allocated: PeriodQuantities,
        charge: Optional[bool] = None,
    ) -> 'AllocationRecord':
        """New version of this record with edited values (self is untouched)"""
        return replace(
            self,
            allocated={p: allocated.get(p, 0) for p in ALL_PERIODS},
            adjustments=dict(self.adjustments),
            charge=self.charge if charge is None else bool(charge),
            version=self.version + 1,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Canonical (schema v2) representation"""
        return {
            'schema_version': 2,
            'type': self.record_type.value,
            'pk': self.pk,
            'sk': self.sk,
            'companyId': self.company_id,
            'productionSiteId': self.production_site_id,
            'consumptionSiteId': self.consumption_site_id,
            'productionSite': self.production_site_name,
            'consumptionSite': self.consumption_site_name,
            'siteType': self.producer_kind,
            'month': self.month,
            'allocated': quantities_to_dict(self.allocated),
            'charge': self.charge,
            'adjustmentType': self.adjustment_type.value,
            'adjustments': quantities_to_dict(self.adjustments),
            'version': self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AllocationRecord':
        """Build from a canonical (schema v2) dict; see migration.migrate_record"""
        return cls(
            production_site_id=data['productionSiteId'],
            consumption_site_id=data['consumptionSiteId'],
            month=data['month'],
            company_id=data.get('companyId', ''),
            allocated=coerce_quantities(data.get('allocated')),
            charge=bool(data.get('charge', False)),
            adjustment_type=AdjustmentType(data.get('adjustmentType', 'normal')),
            adjustments=coerce_quantities(data.get('adjustments')),
            version=int(data.get('version', 1)),
            production_site_name=data.get('productionSite', ''),
            consumption_site_name=data.get('consumptionSite', ''),
            producer_kind=data.get('siteType', ''),
        )


@dataclass
class LeftoverRecord:
    """Unmatched production of one site for the month"""
    production_site_id: str
    month: str
    company_id: str = ""
    quantities: PeriodQuantities = field(default_factory=empty_quantities)
    site_name: str = ""

    record_type = RecordType.LAPSE

    @property
    def pk(self) -> str:
        if not self.company_id:
            return ""
        return build_pk(self.company_id, self.production_site_id)

    def add(self, period: Period, quantity: int):
        self.quantities[period] = self.quantities.get(period, 0) + quantity

    def total_units(self) -> int:
        return total(self.quantities)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'schema_version': 2,
            'type': self.record_type.value,
            'pk': self.pk,
            'sk': self.month,
            'companyId': self.company_id,
            'productionSiteId': self.production_site_id,
            'siteName': self.site_name,
            'month': self.month,
            'allocated': quantities_to_dict(self.quantities),
        }


@dataclass
class BankingAllocationRecord(LeftoverRecord):
    """Unmatched production deferred to a future month"""
    record_type = RecordType.BANKING


@dataclass
class LapseAllocationRecord(LeftoverRecord):
    """Unmatched production forfeited"""
    record_type = RecordType.LAPSE


@dataclass
class BankingUsage:
    """One draw from a banked balance

    ``quantity`` is negative: the draw reduces the bank.
    """
    production_site_id: str
    consumption_site_id: str
    month: str
    period: Period
    quantity: int
    drawn_units: int = 0
    company_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        allocated = {p.key: 0 for p in ALL_PERIODS}
        allocated[self.period.key] = self.quantity
        return {
            'type': RecordType.BANKING.value,
            'companyId': self.company_id,
            'productionSiteId': self.production_site_id,
            'consumptionSiteId': self.consumption_site_id,
            'month': self.month,
            'allocated': allocated,
            'drawnUnits': self.drawn_units,
        }


@dataclass
class AllocationSummary:
    """Aggregate totals of a record set"""
    total: int = 0
    peak: int = 0
    non_peak: int = 0
    counts: Dict[str, int] = field(default_factory=lambda: {t.value: 0 for t in RecordType})
    totals: Dict[str, int] = field(default_factory=lambda: {t.value: 0 for t in RecordType})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': self.total,
            'peak': self.peak,
            'nonPeak': self.non_peak,
            'counts': dict(self.counts),
            'totals': dict(self.totals),
        }


def summarize_records(records: Iterable[Any]) -> AllocationSummary:
    """Totals, peak/non-peak split and per-type counts"""
    summary = AllocationSummary()
    for record in records:
        quantities = getattr(record, 'allocated', None)
        if quantities is None:
            quantities = record.quantities
        units = total(quantities)
        summary.total += units
        summary.peak += peak_total(quantities)
        summary.non_peak += non_peak_total(quantities)
        kind = record.record_type.value
        summary.counts[kind] += 1
        summary.totals[kind] += units
    return summary


def find_allocation(
    records: List[AllocationRecord],
    production_site_id: str,
    consumption_site_id: str,
    month: str,
) -> Optional[AllocationRecord]:
    for record in records:
        if (record.production_site_id == production_site_id
                and record.consumption_site_id == consumption_site_id
                and record.month == month):
            return record
    return None
