"""
Allocation Validator
====================

Validation logic for settlement inputs and allocation edits.

Validation Rules:
1. Charge Uniqueness: at most one charged allocation per (production site, month)
2. Charge Units: a charged allocation must carry at least one unit
3. Minimum Allocation: an edit with no period above zero becomes all-zero
4. Non-negative Quantities: edited period values must be >= 0
5. Consumer Priority: exclusion filter, then priority ascending, then site name
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from ..models.allocation import AllocationRecord
from ..models.period import ALL_PERIODS, Period, PeriodQuantities, coerce_quantity, empty_quantities
from .errors import ChargeConflictError, InvalidInputError

# Consumers without an explicit priority are served after all ranked ones
UNRANKED_PRIORITY = 10 ** 6


@dataclass
class ConsumerPriorityConfig:
    """Consumer ordering and membership for one settlement run

    Attributes:
        priorities: consumption site ID -> priority (lower is served first)
        included: Explicitly included consumption site IDs
        excluded: Explicitly excluded consumption site IDs
        exclude_by_default: Only explicitly included sites take part

    Example:
        >>> config = ConsumerPriorityConfig(priorities={"204": 1, "205": 2})
        >>> config.is_selected("204")
        True
    """
    priorities: Dict[str, int] = field(default_factory=dict)
    included: Set[str] = field(default_factory=set)
    excluded: Set[str] = field(default_factory=set)
    exclude_by_default: bool = False

    def is_selected(self, site_id: str) -> bool:
        if self.exclude_by_default:
            return site_id in self.included
        return site_id not in self.excluded

    def priority_of(self, site_id: str) -> int:
        return int(self.priorities.get(site_id, UNRANKED_PRIORITY))

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ConsumerPriorityConfig':
        data = data or {}
        return cls(
            priorities={str(k): int(v) for k, v in (data.get('priorities') or {}).items()},
            included={str(s) for s in data.get('included') or []},
            excluded={str(s) for s in data.get('excluded') or []},
            exclude_by_default=bool(data.get('excludeByDefault', False)),
        )


def order_consumers(consumers: Iterable[Any], config: Optional[ConsumerPriorityConfig]) -> List[Any]:
    """Effective consumer order fed to the matching engine

    Works on anything exposing ``site_id`` and ``site_name`` (normalized
    remaining-capacity units). Without a config the given order is kept.
    """
    consumers = list(consumers)
    if config is None:
        return consumers

    selected = [c for c in consumers if config.is_selected(c.site_id)]
    return sorted(
        selected,
        key=lambda c: (config.priority_of(c.site_id), c.site_name or "", c.site_id),
    )


def validate_charge_uniqueness(
    edited: AllocationRecord,
    records: Iterable[AllocationRecord],
) -> Tuple[bool, Optional[str]]:
    """Validate that no other allocation of the same site and month is charged

    Args:
        edited: Allocation about to be saved
        records: Current allocation records

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not edited.charge:
        return True, None

    for record in records:
        if record is edited:
            continue
        if record.consumption_site_id == edited.consumption_site_id \
                and record.production_site_id == edited.production_site_id:
            continue
        if (record.production_site_id == edited.production_site_id
                and record.month == edited.month
                and record.charge):
            return False, (
                f"Production site {edited.production_site_id} already has a charged "
                f"allocation for {edited.month} (consumption site {record.consumption_site_id})"
            )
    return True, None


def validate_charge_units(edited: AllocationRecord) -> Tuple[bool, Optional[str]]:
    """A charged allocation must carry at least one unit"""
    if edited.charge and not edited.has_allocation():
        return False, "Cannot set charge on an allocation with zero units"
    return True, None


def normalize_minimum_allocation(values: Mapping[Any, Any]) -> Tuple[PeriodQuantities, bool]:
    """Coerce edited period values; all-zero unless some period is positive

    Returns:
        Tuple of (quantities, is_zero_allocation)

    Raises:
        InvalidInputError: Negative or non-numeric value
    """
    quantities = empty_quantities()
    errors = []
    for raw_key, raw_value in values.items():
        try:
            period = Period.parse(raw_key)
        except ValueError:
            continue
        try:
            quantities[period] = coerce_quantity(raw_value, period.name)
        except ValueError as e:
            errors.append({'type': 'quantity', 'period': period.name, 'message': str(e)})

    if errors:
        raise InvalidInputError(f"Allocation edit rejected with {len(errors)} error(s)", errors)

    if not any(quantities[p] > 0 for p in ALL_PERIODS):
        return empty_quantities(), True
    return quantities, False


class AllocationValidator:
    """Validator for allocation edits

    Example:
        >>> validator = AllocationValidator()
        >>> is_valid, errors = validator.validate_edit(edited, records)
        >>> if not is_valid:
        ...     for error in errors:
        ...         print(error['message'])
    """

    def __init__(self, require_units_for_charge: bool = True):
        self.require_units_for_charge = require_units_for_charge

    def validate_edit(
        self,
        edited: AllocationRecord,
        records: Iterable[AllocationRecord],
    ) -> Tuple[bool, List[Dict[str, Any]]]:
        """Validate an edited allocation against the current record set

        Returns:
            Tuple of (is_valid, error_list)
        """
        errors = []

        is_valid, error = validate_charge_uniqueness(edited, records)
        if not is_valid:
            errors.append({'type': 'charge_conflict', 'message': error})

        if self.require_units_for_charge:
            is_valid, error = validate_charge_units(edited)
            if not is_valid:
                errors.append({'type': 'charge_units', 'message': error})

        return len(errors) == 0, errors

    def validate_and_raise(
        self,
        edited: AllocationRecord,
        records: Iterable[AllocationRecord],
    ):
        """Validate and raise if invalid

        Raises:
            ChargeConflictError: Another charged allocation exists
            InvalidInputError: Charge set on a zero allocation
        """
        is_valid, errors = self.validate_edit(edited, list(records))
        if is_valid:
            return

        if any(e['type'] == 'charge_conflict' for e in errors):
            raise ChargeConflictError(
                "Only one allocation per production site and month can be charged",
                errors,
            )
        raise InvalidInputError(f"Allocation edit failed with {len(errors)} error(s)", errors)
