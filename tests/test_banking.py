"""
Financial-Year Banking Tests
============================
"""

import logging
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.energy_allocation.engine.banking import aggregate_banked_balances
from src.energy_allocation.engine.matching import settle_month
from src.energy_allocation.models.allocation import BankingAllocationRecord, BankingUsage
from src.energy_allocation.models.period import Period
from src.energy_allocation.validators.errors import InvalidInputError


class TestAggregateBankedBalances:
    """Running balance within a financial year"""

    def test_sums_prior_months_only(self):
        records = [
            {'pk': '1_11', 'sk': '042024', 'c1': 100, 'c2': 10},
            {'pk': '1_11', 'sk': '052024', 'allocated': {'c1': -30}},
            {'pk': '1_11', 'sk': '062024', 'c1': 500},
            {'pk': '1_11', 'sk': '032024', 'c1': 700},
            {'companyId': '1', 'productionSiteId': '12', 'month': '052024', 'allocated': {'c4': 8}},
        ]

        balances = aggregate_banked_balances(records, "062024")

        assert [b.production_site_id for b in balances] == ['11', '12']
        first = balances[0]
        assert first.quantities[Period.P1] == 70
        assert first.quantities[Period.P2] == 10
        assert first.financial_year == 2024
        assert balances[1].quantities[Period.P4] == 8

    def test_year_boundary(self):
        records = [
            {'pk': '1_11', 'sk': '112024', 'c1': 5},
            {'pk': '1_11', 'sk': '012025', 'c1': 7},
            {'pk': '1_11', 'sk': '022025', 'c1': 9},
        ]
        balances = aggregate_banked_balances(records, "022025")
        assert balances[0].quantities[Period.P1] == 12

    def test_first_month_has_no_balance(self):
        records = [{'pk': '1_11', 'sk': '032025', 'c1': 5}]
        assert aggregate_banked_balances(records, "042025") == []

    def test_dataclass_records(self):
        deposit = BankingAllocationRecord("11", "042024", company_id="1", quantities={Period.P3: 40})
        draw = BankingUsage("11", "204", "052024", Period.P3, -15, 15, company_id="1")

        balances = aggregate_banked_balances([deposit, draw], "072024")

        assert balances[0].quantities[Period.P3] == 25

    def test_overdrawn_clamped(self, caplog):
        records = [
            {'pk': '1_11', 'sk': '042024', 'c1': 10},
            {'pk': '1_11', 'sk': '052024', 'c1': -25},
        ]

        with caplog.at_level(logging.WARNING):
            balances = aggregate_banked_balances(records, "062024")

        assert balances[0].quantities[Period.P1] == 0
        assert any('overdrawn' in r.getMessage() for r in caplog.records)

    def test_custom_financial_year_start(self):
        records = [{'pk': '1_11', 'sk': '012024', 'c1': 5}]
        balances = aggregate_banked_balances(records, "032024", start_month=1)
        assert balances[0].financial_year == 2024
        assert balances[0].quantities[Period.P1] == 5

    def test_unreadable_record(self):
        with pytest.raises(InvalidInputError):
            aggregate_banked_balances([{'sk': '042024', 'c1': 5}], "062024")
        with pytest.raises(InvalidInputError):
            aggregate_banked_balances([{'pk': '1_11', 'sk': '042024', 'c1': 'abc'}], "062024")


class TestBalanceAfterScaledDraw:
    """A draw reduces the bank by the unscaled units taken"""

    @pytest.fixture
    def chained(self):
        april = settle_month(
            "042024",
            [{'productionSiteId': 'W', 'companyId': '1', 'type': 'WIND', 'bankingEnabled': True, 'c1': 100}],
            [],
        )
        may = settle_month(
            "052024",
            [],
            [{'consumptionSiteId': 'X', 'companyId': '1', 'c1': 100}],
            banked=aggregate_banked_balances(april.banking, "052024"),
            shareholdings=[{'generatorCompanyId': '1', 'shareholderCompanyId': '9',
                            'allocationPercentage': 40}],
        )
        return april, may

    def test_usage_records_credited_and_drawn(self, chained):
        _, may = chained
        assert [(u.quantity, u.drawn_units) for u in may.banking_usage] == [(-40, 100)]

    def test_next_month_balance_is_empty(self, chained):
        april, may = chained

        balances = aggregate_banked_balances(april.banking + may.banking_usage, "062024")

        assert [b.quantities[Period.P1] for b in balances] == [0]

    def test_raw_usage_rows_use_drawn_units(self, chained):
        april, may = chained
        rows = [r.to_dict() for r in april.banking] + [u.to_dict() for u in may.banking_usage]

        balances = aggregate_banked_balances(rows, "062024")

        assert [b.quantities[Period.P1] for b in balances] == [0]
