"""
Energy Unit Models
==================

Monthly production, consumption and banked-balance snapshots.

Producer Kinds:
- SOLAR: served first, leftovers lapse unless banking is enabled
- WIND: served after solar; banking-enabled wind is served last
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .period import (
    ALL_PERIODS,
    Period,
    PeriodQuantities,
    coerce_quantities,
    empty_quantities,
    quantities_to_dict,
    total,
)


class ProducerKind(Enum):
    """Generator technology"""
    SOLAR = "SOLAR"
    WIND = "WIND"

    @classmethod
    def parse(cls, value: Any) -> 'ProducerKind':
        if isinstance(value, ProducerKind):
            return value
        text = str(value or "").strip().upper()
        try:
            return cls(text)
        except ValueError:
            raise ValueError(f"Unknown producer kind: {value!r}")


def _check_quantities(quantities: Dict[Period, int], owner: str) -> PeriodQuantities:
    checked = empty_quantities()
    for period in ALL_PERIODS:
        value = quantities.get(period, 0)
        if value < 0:
            raise ValueError(f"{owner}: {period.name} cannot be negative, got {value}")
        checked[period] = value
    return checked


def _require(value: Optional[str], name: str) -> str:
    text = "" if value is None else str(value).strip()
    if not text:
        raise ValueError(f"{name} is required")
    return text


@dataclass
class ProductionUnit:
    """Monthly production of one generating site

    Attributes:
        production_site_id: Production site ID
        company_id: Owning (generator) company ID
        month: Month key (MMYYYY)
        kind: SOLAR or WIND
        banking_enabled: Unmatched units are banked instead of lapsed
        quantities: Generated units per period

    Example:
        >>> unit = ProductionUnit(
        ...     production_site_id="11",
        ...     company_id="1",
        ...     month="042025",
        ...     kind=ProducerKind.WIND,
        ...     banking_enabled=True,
        ...     quantities={Period.P1: 100, Period.P2: 50},
        ... )
        >>> unit.total_units()
        150
    """
    production_site_id: str
    company_id: str
    month: str
    kind: ProducerKind = ProducerKind.SOLAR
    banking_enabled: bool = False
    quantities: PeriodQuantities = field(default_factory=empty_quantities)
    site_name: str = ""

    def __post_init__(self):
        self.production_site_id = _require(self.production_site_id, "production_site_id")
        self.company_id = _require(self.company_id, "company_id")
        self.kind = ProducerKind.parse(self.kind)
        self.quantities = _check_quantities(self.quantities, f"production {self.production_site_id}")

    def total_units(self) -> int:
        return total(self.quantities)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'productionSiteId': self.production_site_id,
            'companyId': self.company_id,
            'month': self.month,
            'type': self.kind.value,
            'bankingEnabled': self.banking_enabled,
            'siteName': self.site_name,
            **quantities_to_dict(self.quantities),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProductionUnit':
        return cls(
            production_site_id=data.get('productionSiteId'),
            company_id=data.get('companyId'),
            month=data.get('month', ''),
            kind=ProducerKind.parse(data.get('type')),
            banking_enabled=bool(data.get('bankingEnabled', False)),
            quantities=coerce_quantities(data),
            site_name=data.get('siteName', ''),
        )


@dataclass
class ConsumptionUnit:
    """Monthly demand of one consuming site"""
    consumption_site_id: str
    company_id: str
    month: str
    quantities: PeriodQuantities = field(default_factory=empty_quantities)
    site_name: str = ""

    def __post_init__(self):
        self.consumption_site_id = _require(self.consumption_site_id, "consumption_site_id")
        self.company_id = _require(self.company_id, "company_id")
        self.quantities = _check_quantities(self.quantities, f"consumption {self.consumption_site_id}")

    def total_units(self) -> int:
        return total(self.quantities)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'consumptionSiteId': self.consumption_site_id,
            'companyId': self.company_id,
            'month': self.month,
            'siteName': self.site_name,
            **quantities_to_dict(self.quantities),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConsumptionUnit':
        return cls(
            consumption_site_id=data.get('consumptionSiteId'),
            company_id=data.get('companyId'),
            month=data.get('month', ''),
            quantities=coerce_quantities(data),
            site_name=data.get('siteName', ''),
        )


@dataclass
class BankedBalance:
    """Previously deferred surplus of one production site

    Either a single month's banking record or the running balance of a
    financial year (``financial_year`` set, ``month`` empty).
    """
    production_site_id: str
    company_id: str
    quantities: PeriodQuantities = field(default_factory=empty_quantities)
    month: str = ""
    financial_year: Optional[int] = None
    site_name: str = ""

    def __post_init__(self):
        self.production_site_id = _require(self.production_site_id, "production_site_id")
        self.company_id = _require(self.company_id, "company_id")
        self.quantities = _check_quantities(self.quantities, f"banked {self.production_site_id}")

    def total_units(self) -> int:
        return total(self.quantities)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'productionSiteId': self.production_site_id,
            'companyId': self.company_id,
            'month': self.month,
            'financialYear': self.financial_year,
            'siteName': self.site_name,
            **quantities_to_dict(self.quantities),
        }


@dataclass
class ShareholdingRecord:
    """Captive ownership share of a shareholder in a generator company

    Attributes:
        generator_company_id: Company owning the production sites
        shareholder_company_id: Company holding the share
        percentage: Share in [0, 100]
    """
    generator_company_id: str
    shareholder_company_id: str
    percentage: float = 100.0

    def __post_init__(self):
        self.generator_company_id = _require(self.generator_company_id, "generator_company_id")
        self.shareholder_company_id = _require(self.shareholder_company_id, "shareholder_company_id")
        try:
            self.percentage = float(self.percentage)
        except (TypeError, ValueError):
            raise ValueError(f"percentage must be numeric, got {self.percentage!r}")
        if not 0 <= self.percentage <= 100:
            raise ValueError(
                f"Shareholding percentage must be between 0 and 100, got {self.percentage}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'generatorCompanyId': self.generator_company_id,
            'shareholderCompanyId': self.shareholder_company_id,
            'allocationPercentage': self.percentage,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ShareholdingRecord':
        return cls(
            generator_company_id=data.get('generatorCompanyId'),
            shareholder_company_id=data.get('shareholderCompanyId'),
            percentage=data.get('allocationPercentage', data.get('shareholdingPercentage', 100)),
        )
