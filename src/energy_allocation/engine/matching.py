"""
Matching Engine
===============

Greedy, priority-ordered, period-by-period settlement of one month.

Settlement Order:
1. Producer groups: SOLAR, WIND without banking, WIND with banking
2. Peak periods (P2, P3) first, then Non-Peak (P1, P4, P5)
3. Per period and group: manual overrides, then greedy matching over
   consumers in priority order, then leftover resolution (bank or lapse)
4. Per period: banking draw for consumers still short

Bookkeeping:
- Remaining capacity is decremented by the unscaled matched amount
- Allocation records are credited with the shareholding-scaled amount
- A match that scales to zero is discarded
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from src.monitoring.logging_config import log_execution

from ..models.allocation import (
    AllocationRecord,
    AllocationSummary,
    BankingAllocationRecord,
    BankingUsage,
    LapseAllocationRecord,
    LeftoverRecord,
    summarize_records,
)
from ..models.period import SETTLEMENT_ORDER, Period, coerce_quantity, is_compatible
from ..models.units import ProducerKind
from ..validators.allocation_validator import ConsumerPriorityConfig, order_consumers
from ..validators.errors import InvalidInputError
from .normalizer import (
    RemainingCapacity,
    has_remaining,
    normalize_banked,
    normalize_consumption,
    normalize_production,
)
from .shareholding import apply_share, build_share_map

logger = logging.getLogger(__name__)

OverrideKey = Tuple[str, str, Period]


class MatchSource(Enum):
    """Origin of a trace entry"""
    OVERRIDE = "override"
    GREEDY = "greedy"
    BANKING = "banking"
    LEFTOVER = "leftover"


@dataclass
class MatchStep:
    """One bookkeeping step of a settlement run"""
    period: Period
    source: MatchSource
    production_site_id: str
    consumption_site_id: Optional[str]
    matched: int
    credited: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'period': self.period.name,
            'source': self.source.value,
            'productionSiteId': self.production_site_id,
            'consumptionSiteId': self.consumption_site_id,
            'matched': self.matched,
            'credited': self.credited,
        }


@dataclass
class SettlementResult:
    """Output of one settlement run

    Attributes:
        month: Month key (MMYYYY)
        allocations: One record per producer x consumer pair with units
        banking: Leftovers of banking-enabled producers
        lapses: Leftovers of all other producers
        banking_usage: Draws from banked balances (negative quantities)
        trace: Every match, draw and leftover step in execution order
        producers: Remaining-capacity view of every settled producer
        consumers: Remaining-capacity view of every settled consumer, in
            effective priority order
        residual_producers: Producers left with capacity (always empty after
            leftover resolution, kept for diagnostics)
        residual_consumers: Consumers with unmet demand
        residual_banked: Banked balances not fully drawn
    """
    month: str
    allocations: List[AllocationRecord] = field(default_factory=list)
    banking: List[BankingAllocationRecord] = field(default_factory=list)
    lapses: List[LapseAllocationRecord] = field(default_factory=list)
    banking_usage: List[BankingUsage] = field(default_factory=list)
    trace: List[MatchStep] = field(default_factory=list)
    residual_producers: List[RemainingCapacity] = field(default_factory=list)
    residual_consumers: List[RemainingCapacity] = field(default_factory=list)
    residual_banked: List[RemainingCapacity] = field(default_factory=list)
    producers: List[RemainingCapacity] = field(default_factory=list)
    consumers: List[RemainingCapacity] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def summary(self) -> AllocationSummary:
        return summarize_records(self.allocations + self.banking + self.lapses)

    def has_residue(self) -> bool:
        return bool(self.residual_consumers)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'month': self.month,
            'allocations': [r.to_dict() for r in self.allocations],
            'banking': [r.to_dict() for r in self.banking],
            'lapses': [r.to_dict() for r in self.lapses],
            'bankingUsage': [u.to_dict() for u in self.banking_usage],
            'residue': {
                'producers': [u.to_dict() for u in self.residual_producers],
                'consumers': [u.to_dict() for u in self.residual_consumers],
                'banked': [u.to_dict() for u in self.residual_banked],
            },
            'skipped': list(self.skipped),
            'summary': self.summary.to_dict(),
        }


def parse_overrides(raw: Optional[Iterable[Any]]) -> Dict[OverrideKey, int]:
    """Manual pins as ``{(production site, consumption site, period): quantity}``

    Accepts a mapping already in that shape, or an iterable of dicts with
    ``productionSiteId``, ``consumptionSiteId``, ``period`` and ``quantity``.

    Raises:
        InvalidInputError: Unknown period or negative quantity
    """
    if not raw:
        return {}

    items = raw.items() if isinstance(raw, Mapping) else [
        ((d.get('productionSiteId'), d.get('consumptionSiteId'), d.get('period')), d.get('quantity'))
        for d in raw
    ]

    overrides: Dict[OverrideKey, int] = {}
    errors = []
    for (production_site_id, consumption_site_id, period), quantity in items:
        try:
            if not production_site_id or not consumption_site_id:
                raise ValueError("override requires production and consumption site IDs")
            key = (str(production_site_id), str(consumption_site_id), Period.parse(period))
            overrides[key] = coerce_quantity(quantity, f"override {period}")
        except ValueError as e:
            errors.append({'type': 'override', 'message': str(e)})

    if errors:
        raise InvalidInputError(f"Invalid manual overrides: {len(errors)} error(s)", errors)
    return overrides


def group_producers(producers: List[RemainingCapacity]) -> List[List[RemainingCapacity]]:
    """Producer groups in precedence order, input order kept within a group"""
    solar = [p for p in producers if p.kind == ProducerKind.SOLAR]
    wind = [p for p in producers if p.kind == ProducerKind.WIND and not p.banking_enabled]
    bankable = [p for p in producers if p.kind == ProducerKind.WIND and p.banking_enabled]
    return [solar, wind, bankable]


class MatchingEngine:
    """Settlement engine for one month

    Each call to ``settle`` builds its own remaining-capacity view, so the
    engine holds no state between runs.

    Example:
        >>> engine = MatchingEngine(share_map={"1": 100})
        >>> result = engine.settle("042025", production, consumption)
        >>> [r.total_units() for r in result.allocations]
        [110]
    """

    def __init__(
        self,
        share_map: Optional[Mapping[str, float]] = None,
        priority_config: Optional[ConsumerPriorityConfig] = None,
        overrides: Optional[Mapping[OverrideKey, int]] = None,
        strict_shareholding: bool = False,
    ):
        self.share_map = self._check_share_map(share_map or {})
        self.priority_config = priority_config
        self.overrides = parse_overrides(overrides)
        self.strict_shareholding = strict_shareholding

    # ==========================================================
    # Entry point
    # ==========================================================

    @log_execution()
    def settle(
        self,
        month: str,
        production: Iterable[Any],
        consumption: Iterable[Any],
        banked: Optional[Iterable[Any]] = None,
    ) -> SettlementResult:
        """Run one settlement pass

        Args:
            month: Month key (MMYYYY) of the run
            production: ProductionUnit or raw dicts
            consumption: ConsumptionUnit or raw dicts
            banked: BankedBalance or raw dicts available for draw

        Returns:
            SettlementResult

        Raises:
            InvalidInputError: Malformed input; nothing is settled
        """
        result = SettlementResult(month=month)

        producers = self._for_month(normalize_production(production), month, result)
        consumers = self._for_month(normalize_consumption(consumption), month, result)
        banks = normalize_banked(banked or [])
        self._check_shares(producers + banks)

        consumers = order_consumers(consumers, self.priority_config)
        groups = group_producers(producers)

        allocations: Dict[Tuple[str, str], AllocationRecord] = {}
        leftovers: Dict[str, LeftoverRecord] = {}

        for period in SETTLEMENT_ORDER:
            self._settle_period(period, month, groups, consumers, banks, allocations, leftovers, result)

        result.allocations = [r for r in allocations.values() if r.has_allocation()]
        result.banking = [r for r in leftovers.values() if isinstance(r, BankingAllocationRecord)]
        result.lapses = [r for r in leftovers.values() if isinstance(r, LapseAllocationRecord)]
        result.producers = producers
        result.consumers = consumers
        result.residual_producers = [p for p in producers if has_remaining(p)]
        result.residual_consumers = [c for c in consumers if has_remaining(c)]
        result.residual_banked = [b for b in banks if has_remaining(b)]

        self._log_outcome(result)
        return result

    # ==========================================================
    # Steps
    # ==========================================================

    def _settle_period(
        self,
        period: Period,
        month: str,
        groups: List[List[RemainingCapacity]],
        consumers: List[RemainingCapacity],
        banks: List[RemainingCapacity],
        allocations: Dict[Tuple[str, str], AllocationRecord],
        leftovers: Dict[str, LeftoverRecord],
        result: SettlementResult,
    ):
        demand = sum(c.remaining[period] for c in consumers)
        logger.debug(f"{month} {period.name}: demand {demand} across {len(consumers)} consumers")

        for group in groups:
            if any(c.remaining[period] > 0 for c in consumers):
                self._apply_overrides(period, month, group, consumers, allocations, result)
                self._match_group(period, month, group, consumers, allocations, result)
            self._resolve_leftovers(period, month, group, leftovers, result)

        if any(c.remaining[period] > 0 for c in consumers):
            self._draw_banking(period, month, consumers, banks, result)

    def _credit(
        self,
        period: Period,
        month: str,
        producer: RemainingCapacity,
        consumer: RemainingCapacity,
        quantity: int,
        source: MatchSource,
        allocations: Dict[Tuple[str, str], AllocationRecord],
        result: SettlementResult,
    ) -> int:
        """Match ``quantity`` raw units; returns the units taken"""
        if quantity <= 0 or not is_compatible(period, period):
            return 0

        credited = apply_share(quantity, producer.company_id, self.share_map, self.strict_shareholding)
        if credited <= 0:
            return 0

        producer.take(period, quantity)
        consumer.take(period, quantity)

        key = (producer.site_id, consumer.site_id)
        record = allocations.get(key)
        if record is None:
            record = AllocationRecord(
                production_site_id=producer.site_id,
                consumption_site_id=consumer.site_id,
                month=month,
                company_id=producer.company_id,
                production_site_name=producer.site_name,
                consumption_site_name=consumer.site_name,
                producer_kind=producer.kind.value if producer.kind else "",
            )
            allocations[key] = record
        record.add(period, credited)

        result.trace.append(MatchStep(period, source, producer.site_id, consumer.site_id, quantity, credited))
        return quantity

    def _apply_overrides(self, period, month, group, consumers, allocations, result):
        if not self.overrides:
            return
        for producer in group:
            for consumer in consumers:
                pinned = self.overrides.get((producer.site_id, consumer.site_id, period), 0)
                if pinned <= 0:
                    continue
                quantity = min(pinned, producer.remaining[period], consumer.remaining[period])
                taken = self._credit(period, month, producer, consumer, quantity,
                                     MatchSource.OVERRIDE, allocations, result)
                if taken < pinned:
                    logger.warning(
                        f"{month} {period.name}: override {producer.site_id}->{consumer.site_id} "
                        f"pinned {pinned}, matched {taken}"
                    )

    def _match_group(self, period, month, group, consumers, allocations, result):
        for producer in group:
            for consumer in consumers:
                if producer.remaining[period] <= 0:
                    break
                quantity = min(producer.remaining[period], consumer.remaining[period])
                self._credit(period, month, producer, consumer, quantity,
                             MatchSource.GREEDY, allocations, result)

    def _resolve_leftovers(self, period, month, group, leftovers, result):
        for producer in group:
            quantity = producer.remaining[period]
            if quantity <= 0:
                continue

            record = leftovers.get(producer.site_id)
            if record is None:
                record_class = BankingAllocationRecord if producer.banking_enabled else LapseAllocationRecord
                record = record_class(
                    production_site_id=producer.site_id,
                    month=month,
                    company_id=producer.company_id,
                    site_name=producer.site_name,
                )
                leftovers[producer.site_id] = record

            producer.take(period, quantity)
            record.add(period, quantity)
            result.trace.append(MatchStep(period, MatchSource.LEFTOVER, producer.site_id, None, quantity, quantity))
            logger.debug(
                f"{month} {period.name}: {quantity} units of {producer.site_id} -> "
                f"{record.record_type.value}"
            )

    def _draw_banking(self, period, month, consumers, banks, result):
        for consumer in consumers:
            for bank in banks:
                quantity = min(bank.remaining[period], consumer.remaining[period])
                if quantity <= 0:
                    continue

                credited = apply_share(quantity, bank.company_id, self.share_map, self.strict_shareholding)
                if credited <= 0:
                    continue

                bank.take(period, quantity)
                consumer.take(period, quantity)
                result.banking_usage.append(BankingUsage(
                    production_site_id=bank.site_id,
                    consumption_site_id=consumer.site_id,
                    month=month,
                    period=period,
                    quantity=-credited,
                    drawn_units=quantity,
                    company_id=bank.company_id,
                ))
                result.trace.append(MatchStep(period, MatchSource.BANKING, bank.site_id,
                                              consumer.site_id, quantity, credited))

    # ==========================================================
    # Helpers
    # ==========================================================

    @staticmethod
    def _for_month(units: List[RemainingCapacity], month: str, result: SettlementResult) -> List[RemainingCapacity]:
        kept = []
        for unit in units:
            if unit.month and unit.month != month:
                logger.warning(f"Skipping {unit.site_id}: month {unit.month} is not {month}")
                result.skipped.append(unit.site_id)
                continue
            kept.append(unit)
        return kept

    @staticmethod
    def _check_share_map(share_map: Mapping[str, float]) -> Dict[str, float]:
        shares = {}
        errors = []
        for company_id, value in share_map.items():
            try:
                percentage = float(value)
            except (TypeError, ValueError):
                errors.append({'type': 'shareholding', 'companyId': company_id,
                               'message': f"percentage must be numeric, got {value!r}"})
                continue
            if not 0 <= percentage <= 100:
                errors.append({'type': 'shareholding', 'companyId': company_id,
                               'message': f"Shareholding percentage must be between 0 and 100, got {percentage}"})
                continue
            shares[company_id] = percentage
        if errors:
            raise InvalidInputError(f"Invalid shareholding input: {len(errors)} error(s)", errors)
        return shares

    def _check_shares(self, units: List[RemainingCapacity]):
        if not self.strict_shareholding:
            return
        missing = sorted({u.company_id for u in units if u.company_id not in self.share_map})
        if missing:
            raise InvalidInputError(
                f"No shareholding entry for generator companies: {', '.join(missing)}",
                [{'type': 'shareholding', 'companyId': c, 'message': 'missing shareholding entry'}
                 for c in missing],
            )

    @staticmethod
    def _log_outcome(result: SettlementResult):
        summary = result.summary
        logger.info(
            f"Settled {result.month}: {len(result.allocations)} allocations, "
            f"{summary.totals['ALLOCATION']} allocated, {summary.totals['BANKING']} banked, "
            f"{summary.totals['LAPSE']} lapsed, {len(result.banking_usage)} banking draws"
        )
        for consumer in result.residual_consumers:
            logger.warning(f"{result.month}: consumer {consumer.site_id} unmatched {consumer.residual()}")


def settle_month(
    month: str,
    production: Iterable[Any],
    consumption: Iterable[Any],
    banked: Optional[Iterable[Any]] = None,
    shareholdings: Optional[Iterable[Any]] = None,
    priority_config: Optional[ConsumerPriorityConfig] = None,
    overrides: Optional[Any] = None,
    shareholder_company_id: Optional[str] = None,
    strict_shareholding: bool = False,
) -> SettlementResult:
    """Build the share map and run one settlement pass"""
    share_map = build_share_map(shareholdings or [], shareholder_company_id)
    engine = MatchingEngine(
        share_map=share_map,
        priority_config=priority_config,
        overrides=parse_overrides(overrides),
        strict_shareholding=strict_shareholding,
    )
    return engine.settle(month, production, consumption, banked)
