"""
Settlement Period Model
=======================

Five fixed time-of-day settlement buckets.

Period Rules:
- Peak: P2, P3
- Non-Peak: P1, P4, P5
- Peak supply may satisfy Peak or Non-Peak demand
- Non-Peak supply may satisfy Non-Peak demand only

Persisted records key periods as ``c1`` .. ``c5``.
"""

import math
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class Period(Enum):
    """Settlement period (value is the persisted record key)"""
    P1 = "c1"
    P2 = "c2"
    P3 = "c3"
    P4 = "c4"
    P5 = "c5"

    @property
    def key(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Any) -> 'Period':
        """Accept a Period, 'P1', 'p1' or 'c1'"""
        if isinstance(value, Period):
            return value
        text = str(value).strip()
        lowered = text.lower()
        for period in cls:
            if lowered in (period.name.lower(), period.value):
                return period
        raise ValueError(f"Unknown period: {value!r}")


ALL_PERIODS = (Period.P1, Period.P2, Period.P3, Period.P4, Period.P5)
PEAK_PERIODS = (Period.P2, Period.P3)
NON_PEAK_PERIODS = (Period.P1, Period.P4, Period.P5)

# Matching order for one settlement pass
SETTLEMENT_ORDER = PEAK_PERIODS + NON_PEAK_PERIODS

PeriodQuantities = Dict[Period, int]


def is_peak(period: Period) -> bool:
    """True for P2 and P3"""
    return Period.parse(period) in PEAK_PERIODS


def is_compatible(supply_period: Period, demand_period: Period) -> bool:
    """Whether supply in one period may satisfy demand in another

    Directional: peak supply covers peak and non-peak demand, non-peak
    supply covers non-peak demand only.

    Example:
        >>> is_compatible(Period.P2, Period.P1)
        True
        >>> is_compatible(Period.P1, Period.P2)
        False
    """
    if is_peak(supply_period):
        return True
    return not is_peak(demand_period)


def empty_quantities() -> PeriodQuantities:
    return {period: 0 for period in ALL_PERIODS}


def coerce_quantity(value: Any, label: str = "quantity") -> int:
    """Coerce a raw unit value to a whole, non-negative quantity

    None and '' count as 0. Fractional values are rounded to whole units.

    Raises:
        ValueError: Non-numeric, non-finite or negative value
    """
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError(f"{label} must be numeric, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{label} must be numeric, got {value!r}")
    if math.isnan(number) or math.isinf(number):
        raise ValueError(f"{label} must be finite, got {value!r}")
    if number < 0:
        raise ValueError(f"{label} cannot be negative, got {value!r}")
    return int(round(number))


def coerce_quantities(
    values: Optional[Mapping[Any, Any]],
    label: str = "quantity",
) -> PeriodQuantities:
    """Build a full P1..P5 map from any mapping keyed by period spelling

    Missing periods default to 0; unknown keys are ignored.
    """
    quantities = empty_quantities()
    if not values:
        return quantities
    for raw_key, raw_value in values.items():
        try:
            period = Period.parse(raw_key)
        except ValueError:
            continue
        quantities[period] = coerce_quantity(raw_value, f"{label} {period.name}")
    return quantities


def quantities_to_dict(quantities: Mapping[Period, int]) -> Dict[str, int]:
    """Serialize to the persisted c1..c5 shape"""
    return {period.key: int(quantities.get(period, 0)) for period in ALL_PERIODS}


def total(quantities: Mapping[Period, int]) -> int:
    return sum(quantities.get(period, 0) for period in ALL_PERIODS)


def peak_total(quantities: Mapping[Period, int]) -> int:
    return sum(quantities.get(period, 0) for period in PEAK_PERIODS)


def non_peak_total(quantities: Mapping[Period, int]) -> int:
    return sum(quantities.get(period, 0) for period in NON_PEAK_PERIODS)
