"""
Reconciliation Engine Tests
===========================

FIFO deposit ledger and per-period edit deltas
"""

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.energy_allocation.engine.reconciliation import (
    AdjustmentKind,
    DepositLedger,
    ReconciliationEngine,
)
from src.energy_allocation.models.allocation import AllocationRecord
from src.energy_allocation.models.period import Period

KEY = ("1", "11", "204")


def values(**periods):
    return {Period[name]: quantity for name, quantity in periods.items()}


# ============================================================
# Deposit Ledger
# ============================================================

class TestDepositLedger:
    """FIFO queues per composite key"""

    def test_fifo_split(self):
        ledger = DepositLedger()
        first = ledger.deposit(KEY, Period.P1, 10)
        second = ledger.deposit(KEY, Period.P1, 5)

        drained, shortfall = ledger.withdraw(KEY, 12)

        assert [(d.sequence, taken) for d, taken in drained] == [(first.sequence, 10), (second.sequence, 2)]
        assert shortfall == 0
        assert ledger.balance(KEY) == 3
        assert ledger.deposits(KEY)[0].sequence == second.sequence

    def test_keys_are_isolated(self):
        ledger = DepositLedger()
        ledger.deposit(KEY, Period.P1, 10)

        drained, shortfall = ledger.withdraw(("1", "11", "205"), 4)

        assert drained == []
        assert shortfall == 4
        assert ledger.balance(KEY) == 10

    def test_exhausted_queue_removed(self):
        ledger = DepositLedger()
        ledger.deposit(KEY, Period.P2, 3)
        ledger.withdraw(KEY, 3)
        assert ledger.keys() == []

    def test_non_positive_deposit_rejected(self):
        with pytest.raises(ValueError):
            DepositLedger().deposit(KEY, Period.P1, 0)


# ============================================================
# Reconciliation
# ============================================================

class TestReconciliationEngine:
    """Edit deltas"""

    def test_fifo_unwinding(self):
        """Deposits of 10 then 5, return of 12: 3 stay banked, nothing lapses"""
        engine = ReconciliationEngine()
        engine.reconcile_values(KEY, values(P1=0), values(P1=10), "042025")
        engine.reconcile_values(KEY, values(P1=10), values(P1=15), "042025")

        result = engine.reconcile_values(KEY, values(P1=15), values(P1=3), "042025")

        unbanked = [a for a in result.adjustments if a.kind == AdjustmentKind.UNBANK]
        assert [a.quantity for a in unbanked] == [10, 2]
        assert unbanked[0].deposit_sequence < unbanked[1].deposit_sequence
        assert result.lapse_deltas[Period.P1] == 0
        assert result.banking_deltas[Period.P1] == -12
        assert engine.ledger.balance(KEY) == 3

    def test_shortfall_lapses_in_edited_period(self):
        engine = ReconciliationEngine()
        engine.reconcile_values(KEY, values(P1=0), values(P1=15))

        result = engine.reconcile_values(KEY, values(P1=20), values(P1=0))

        assert result.banking_deltas[Period.P1] == -15
        assert result.lapse_deltas[Period.P1] == 5
        assert engine.ledger.balance(KEY) == 0

    def test_unbank_uses_deposit_period(self):
        engine = ReconciliationEngine()
        engine.reconcile_values(KEY, values(P1=0), values(P1=10))

        result = engine.reconcile_values(KEY, values(P4=6), values(P4=2))

        adjustment = result.adjustments[0]
        assert adjustment.kind == AdjustmentKind.UNBANK
        assert adjustment.period == Period.P1
        assert adjustment.edited_period == Period.P4
        assert result.banking_deltas[Period.P1] == -4
        assert result.lapse_deltas[Period.P4] == 0

    def test_zero_delta_no_adjustment(self):
        engine = ReconciliationEngine()
        result = engine.reconcile_values(KEY, values(P1=10, P2=5), values(P1=10, P2=5))

        assert result.is_empty()
        assert engine.ledger.keys() == []

    def test_returns_drained_before_same_edit_deposits(self):
        engine = ReconciliationEngine()

        result = engine.reconcile_values(KEY, values(P1=0, P2=10), values(P1=5, P2=5))

        kinds = [(a.kind, a.period) for a in result.adjustments]
        assert kinds == [(AdjustmentKind.LAPSE, Period.P2), (AdjustmentKind.DEPOSIT, Period.P1)]
        assert engine.ledger.balance(KEY) == 5

    def test_reconcile_records(self):
        previous = AllocationRecord("11", "204", "042025", company_id="1")
        previous.add(Period.P2, 40)
        edited = previous.superseded_by({Period.P2: 55})

        result = ReconciliationEngine().reconcile(previous, edited)

        assert result.key == KEY
        assert result.banking_deltas[Period.P2] == 15
        assert result.to_dict()['bankingDeltas']['c2'] == 15

    def test_reconcile_rejects_different_keys(self):
        previous = AllocationRecord("11", "204", "042025", company_id="1")
        other = AllocationRecord("11", "205", "042025", company_id="1")

        with pytest.raises(ValueError):
            ReconciliationEngine().reconcile(previous, other)
