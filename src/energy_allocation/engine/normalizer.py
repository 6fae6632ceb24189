"""
Unit Normalizer
===============

Converts production, consumption and banked-balance records into the
per-run remaining-capacity view consumed by the matching engine.

Raw dict aliases:
- site id: ``productionSiteId`` / ``consumptionSiteId`` / ``id``
- name: ``siteName`` / ``name``
- kind: ``type`` / ``producerKind``
- banking flag: ``bankingEnabled`` / ``banking`` (1, "1", true)
- period values at the root or under ``allocated``
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from ..models.period import (
    ALL_PERIODS,
    Period,
    PeriodQuantities,
    coerce_quantities,
    empty_quantities,
)
from ..models.units import BankedBalance, ConsumptionUnit, ProducerKind, ProductionUnit
from ..validators.errors import InvalidInputError


@dataclass
class RemainingCapacity:
    """Mutable scratch view of one unit during a settlement run

    Attributes:
        site_id: Production or consumption site ID
        company_id: Owning company ID
        month: Month key of the source record
        remaining: Unmatched quantity per period (consumed destructively)
        original: Reported quantity per period (read-only)
        kind: Producer kind (None for consumers)
        banking_enabled: Producer leftovers are banked
    """
    site_id: str
    company_id: str
    month: str = ""
    remaining: PeriodQuantities = field(default_factory=empty_quantities)
    original: PeriodQuantities = field(default_factory=empty_quantities)
    kind: Optional[ProducerKind] = None
    banking_enabled: bool = False
    site_name: str = ""

    def take(self, period: Period, quantity: int):
        if quantity > self.remaining[period]:
            raise ValueError(
                f"Cannot take {quantity} from {self.site_id} {period.name}: "
                f"only {self.remaining[period]} left"
            )
        self.remaining[period] -= quantity

    def residual(self) -> Dict[str, int]:
        return {p.key: self.remaining[p] for p in ALL_PERIODS if self.remaining[p] > 0}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'siteId': self.site_id,
            'companyId': self.company_id,
            'siteName': self.site_name,
            'month': self.month,
            'remaining': {p.key: self.remaining[p] for p in ALL_PERIODS},
        }


def has_remaining(unit: RemainingCapacity) -> bool:
    """True if any period still has unmatched quantity"""
    return any(unit.remaining.get(p, 0) > 0 for p in ALL_PERIODS)


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y")
    return bool(value)


def _raw_quantities(data: Dict[str, Any], label: str) -> PeriodQuantities:
    values = dict(data.get('allocated') or {})
    # Root-level period values take precedence over the nested ones
    for period in ALL_PERIODS:
        for spelling in (period.key, period.name):
            if data.get(spelling) is not None:
                values[period.key] = data[spelling]
    return coerce_quantities(values, label)


def _production_from_raw(data: Dict[str, Any]) -> ProductionUnit:
    site_id = data.get('productionSiteId', data.get('id'))
    banking = data.get('bankingEnabled', data.get('banking', False))
    return ProductionUnit(
        production_site_id=site_id,
        company_id=data.get('companyId'),
        month=str(data.get('month') or data.get('sk') or ''),
        kind=data.get('type', data.get('producerKind')),
        banking_enabled=_truthy(banking),
        quantities=_raw_quantities(data, f"production {site_id}"),
        site_name=data.get('siteName', data.get('name', '')) or '',
    )


def _consumption_from_raw(data: Dict[str, Any]) -> ConsumptionUnit:
    site_id = data.get('consumptionSiteId', data.get('id'))
    return ConsumptionUnit(
        consumption_site_id=site_id,
        company_id=data.get('companyId'),
        month=str(data.get('month') or data.get('sk') or ''),
        quantities=_raw_quantities(data, f"consumption {site_id}"),
        site_name=data.get('siteName', data.get('name', '')) or '',
    )


def _banked_from_raw(data: Dict[str, Any]) -> BankedBalance:
    site_id = data.get('productionSiteId', data.get('id'))
    financial_year = data.get('financialYear')
    return BankedBalance(
        production_site_id=site_id,
        company_id=data.get('companyId'),
        quantities=_raw_quantities(data, f"banked {site_id}"),
        month=str(data.get('month') or data.get('sk') or ''),
        financial_year=int(financial_year) if financial_year is not None else None,
        site_name=data.get('siteName', data.get('name', '')) or '',
    )


def _collect(items, convert, expected_type, label: str) -> List[Any]:
    """Convert every item, reporting all failures at once"""
    units = []
    errors = []
    for index, item in enumerate(items or []):
        try:
            unit = item if isinstance(item, expected_type) else convert(dict(item))
        except (ValueError, TypeError) as e:
            errors.append({'type': label, 'index': index, 'message': str(e)})
            continue
        units.append(unit)

    if errors:
        raise InvalidInputError(f"Invalid {label} input: {len(errors)} error(s)", errors)
    return units


def load_production(items: Iterable[Union[ProductionUnit, Dict[str, Any]]]) -> List[ProductionUnit]:
    return _collect(items, _production_from_raw, ProductionUnit, "production")


def load_consumption(items: Iterable[Union[ConsumptionUnit, Dict[str, Any]]]) -> List[ConsumptionUnit]:
    return _collect(items, _consumption_from_raw, ConsumptionUnit, "consumption")


def load_banked(items: Iterable[Union[BankedBalance, Dict[str, Any]]]) -> List[BankedBalance]:
    return _collect(items, _banked_from_raw, BankedBalance, "banked")


def normalize_production(
    items: Iterable[Union[ProductionUnit, Dict[str, Any]]],
) -> List[RemainingCapacity]:
    """Remaining-capacity view of production units

    Raises:
        InvalidInputError: Negative quantity or missing identity
    """
    return [
        RemainingCapacity(
            site_id=unit.production_site_id,
            company_id=unit.company_id,
            month=unit.month,
            remaining=dict(unit.quantities),
            original=dict(unit.quantities),
            kind=unit.kind,
            banking_enabled=unit.banking_enabled,
            site_name=unit.site_name,
        )
        for unit in load_production(items)
    ]


def normalize_consumption(
    items: Iterable[Union[ConsumptionUnit, Dict[str, Any]]],
) -> List[RemainingCapacity]:
    return [
        RemainingCapacity(
            site_id=unit.consumption_site_id,
            company_id=unit.company_id,
            month=unit.month,
            remaining=dict(unit.quantities),
            original=dict(unit.quantities),
            site_name=unit.site_name,
        )
        for unit in load_consumption(items)
    ]


def normalize_banked(
    items: Iterable[Union[BankedBalance, Dict[str, Any]]],
) -> List[RemainingCapacity]:
    return [
        RemainingCapacity(
            site_id=unit.production_site_id,
            company_id=unit.company_id,
            month=unit.month,
            remaining=dict(unit.quantities),
            original=dict(unit.quantities),
            banking_enabled=True,
            site_name=unit.site_name,
        )
        for unit in load_banked(items)
    ]
