"""
Reconciliation Engine
=====================

Banking and lapse adjustments for a hand-edited allocation, computed
without re-running the matching engine.

Per period, ``delta = new - old``:
- delta > 0: a banking deposit for (company, production site, consumption site)
- delta < 0: a return of ``|delta|`` units, drained from earlier deposits of
  the same key oldest first; any shortfall lapses in the edited period
- delta == 0: no adjustment

Returns of an edit are drained before its own deposits are recorded.
"""

import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, List, Mapping, Optional, Tuple

from ..models.allocation import AllocationRecord
from ..models.period import ALL_PERIODS, Period, PeriodQuantities, empty_quantities

logger = logging.getLogger(__name__)

# (company, production site, consumption site)
DepositKey = Tuple[str, str, str]


class AdjustmentKind(Enum):
    """Reconciliation adjustment kind"""
    DEPOSIT = "deposit"
    UNBANK = "unbank"
    LAPSE = "lapse"


@dataclass
class BankDeposit:
    """Quantity banked from an allocation edit, drained FIFO"""
    key: DepositKey
    period: Period
    quantity: int
    sequence: int
    month: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'companyId': self.key[0],
            'productionSiteId': self.key[1],
            'consumptionSiteId': self.key[2],
            'period': self.period.name,
            'quantity': self.quantity,
            'sequence': self.sequence,
            'month': self.month,
        }


class DepositLedger:
    """FIFO deposit queues per composite key

    Callers serialize edits per production site; the ledger itself is not
    synchronized.

    Example:
        >>> ledger = DepositLedger()
        >>> key = ("1", "11", "204")
        >>> ledger.deposit(key, Period.P1, 10)
        >>> ledger.deposit(key, Period.P1, 5)
        >>> drained, shortfall = ledger.withdraw(key, 12)
        >>> ledger.balance(key), shortfall
        (3, 0)
    """

    def __init__(self):
        self._queues: Dict[DepositKey, Deque[BankDeposit]] = {}
        self._sequence = itertools.count(1)

    def deposit(self, key: DepositKey, period: Period, quantity: int, month: str = "") -> BankDeposit:
        if quantity <= 0:
            raise ValueError(f"Deposit quantity must be positive, got {quantity}")
        entry = BankDeposit(key, Period.parse(period), int(quantity), next(self._sequence), month)
        self._queues.setdefault(key, deque()).append(entry)
        return entry

    def withdraw(self, key: DepositKey, quantity: int) -> Tuple[List[Tuple[BankDeposit, int]], int]:
        """Drain up to ``quantity`` units, oldest deposit first

        Returns:
            Tuple of ([(deposit, units taken)], shortfall)
        """
        queue = self._queues.get(key)
        drained = []
        needed = quantity
        while queue and needed > 0:
            head = queue[0]
            taken = min(head.quantity, needed)
            head.quantity -= taken
            needed -= taken
            drained.append((head, taken))
            if head.quantity == 0:
                queue.popleft()
        if queue is not None and not queue:
            del self._queues[key]
        return drained, needed

    def balance(self, key: DepositKey) -> int:
        return sum(d.quantity for d in self._queues.get(key, ()))

    def deposits(self, key: DepositKey) -> List[BankDeposit]:
        return list(self._queues.get(key, ()))

    def keys(self) -> List[DepositKey]:
        return list(self._queues)


@dataclass
class ReconciliationAdjustment:
    """One banking or lapse movement caused by an edit

    ``period`` is the period the units move in: the edited period for
    deposits and lapses, the deposit's own period for unbanking.
    """
    kind: AdjustmentKind
    key: DepositKey
    period: Period
    quantity: int
    edited_period: Period
    month: str = ""
    deposit_sequence: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'companyId': self.key[0],
            'productionSiteId': self.key[1],
            'consumptionSiteId': self.key[2],
            'period': self.period.name,
            'editedPeriod': self.edited_period.name,
            'quantity': self.quantity,
            'month': self.month,
            'depositSequence': self.deposit_sequence,
        }


@dataclass
class ReconciliationResult:
    """Adjustments of one edit plus per-period banking and lapse deltas"""
    key: DepositKey
    month: str
    adjustments: List[ReconciliationAdjustment] = field(default_factory=list)

    @property
    def banking_deltas(self) -> PeriodQuantities:
        deltas = empty_quantities()
        for adj in self.adjustments:
            if adj.kind == AdjustmentKind.DEPOSIT:
                deltas[adj.period] += adj.quantity
            elif adj.kind == AdjustmentKind.UNBANK:
                deltas[adj.period] -= adj.quantity
        return deltas

    @property
    def lapse_deltas(self) -> PeriodQuantities:
        deltas = empty_quantities()
        for adj in self.adjustments:
            if adj.kind == AdjustmentKind.LAPSE:
                deltas[adj.period] += adj.quantity
        return deltas

    def is_empty(self) -> bool:
        return not self.adjustments

    def to_dict(self) -> Dict[str, Any]:
        return {
            'companyId': self.key[0],
            'productionSiteId': self.key[1],
            'consumptionSiteId': self.key[2],
            'month': self.month,
            'adjustments': [a.to_dict() for a in self.adjustments],
            'bankingDeltas': {p.key: v for p, v in self.banking_deltas.items()},
            'lapseDeltas': {p.key: v for p, v in self.lapse_deltas.items()},
        }


def deposit_key(record: AllocationRecord) -> DepositKey:
    return (record.company_id, record.production_site_id, record.consumption_site_id)


class ReconciliationEngine:
    """Post-hoc reconciliation of single-record edits

    Example:
        >>> engine = ReconciliationEngine()
        >>> result = engine.reconcile(previous, edited)
        >>> result.banking_deltas[Period.P1]
        -12
    """

    def __init__(self, ledger: Optional[DepositLedger] = None):
        self.ledger = ledger if ledger is not None else DepositLedger()

    def reconcile(self, previous: AllocationRecord, edited: AllocationRecord) -> ReconciliationResult:
        """Adjustments for replacing ``previous`` with ``edited``"""
        if deposit_key(previous) != deposit_key(edited):
            raise ValueError(
                f"Edited record {deposit_key(edited)} does not match {deposit_key(previous)}"
            )
        return self.reconcile_values(deposit_key(edited), previous.allocated, edited.allocated, edited.month)

    def reconcile_values(
        self,
        key: DepositKey,
        old: Mapping[Period, int],
        new: Mapping[Period, int],
        month: str = "",
    ) -> ReconciliationResult:
        """Adjustments for per-period values changing from ``old`` to ``new``"""
        result = ReconciliationResult(key=key, month=month)
        deltas = {p: int(new.get(p, 0)) - int(old.get(p, 0)) for p in ALL_PERIODS}

        for period in ALL_PERIODS:
            if deltas[period] < 0:
                self._return(key, period, -deltas[period], month, result)

        for period in ALL_PERIODS:
            if deltas[period] > 0:
                entry = self.ledger.deposit(key, period, deltas[period], month)
                result.adjustments.append(ReconciliationAdjustment(
                    AdjustmentKind.DEPOSIT, key, period, deltas[period], period, month, entry.sequence,
                ))

        logger.debug(
            f"Reconciled {'_'.join(key)} {month}: {len(result.adjustments)} adjustments, "
            f"remaining deposits {self.ledger.balance(key)}"
        )
        return result

    def _return(self, key, period, quantity, month, result):
        drained, shortfall = self.ledger.withdraw(key, quantity)
        for deposit, taken in drained:
            result.adjustments.append(ReconciliationAdjustment(
                AdjustmentKind.UNBANK, key, deposit.period, taken, period, month, deposit.sequence,
            ))
        if shortfall > 0:
            logger.info(f"{'_'.join(key)} {period.name}: {shortfall} units not covered by deposits, lapsing")
            result.adjustments.append(ReconciliationAdjustment(
                AdjustmentKind.LAPSE, key, period, shortfall, period, month,
            ))
