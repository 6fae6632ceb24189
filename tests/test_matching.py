"""
Matching Engine Tests
=====================

Settlement order, conservation, priority, shareholding, banking and
leftover resolution
"""

import json
import sys
from collections import defaultdict
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.energy_allocation.engine.matching import (
    MatchSource,
    MatchingEngine,
    parse_overrides,
    settle_month,
)
from src.energy_allocation.models.period import ALL_PERIODS, Period, is_peak
from src.energy_allocation.validators.allocation_validator import ConsumerPriorityConfig
from src.energy_allocation.validators.errors import InvalidInputError

MONTH = "042025"


def production(site_id, kind="SOLAR", banking=False, company_id="1", **periods):
    return {
        'productionSiteId': site_id,
        'companyId': company_id,
        'month': MONTH,
        'type': kind,
        'bankingEnabled': banking,
        'siteName': f"Plant {site_id}",
        **periods,
    }


def consumption(site_id, company_id="1", **periods):
    return {
        'consumptionSiteId': site_id,
        'companyId': company_id,
        'month': MONTH,
        'siteName': f"Site {site_id}",
        **periods,
    }


def allocation_for(result, production_site_id, consumption_site_id):
    for record in result.allocations:
        if (record.production_site_id, record.consumption_site_id) == (production_site_id, consumption_site_id):
            return record
    return None


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def mixed_inputs():
    """Several producers of every group and three consumers"""
    producers = [
        production("W1", kind="WIND", banking=True, c1=80, c2=40, c3=10, c4=0, c5=30),
        production("S1", c1=50, c2=20, c3=20, c4=60, c5=5),
        production("W2", kind="WIND", company_id="2", c1=30, c2=30, c3=0, c4=40, c5=10),
        production("S2", company_id="3", c1=0, c2=15, c3=5, c4=25, c5=45),
    ]
    consumers = [
        consumption("X", c1=70, c2=50, c3=5, c4=50, c5=20),
        consumption("Y", c1=40, c2=30, c3=0, c4=90, c5=10),
        consumption("Z", c1=60, c2=10, c3=40, c4=0, c5=0),
    ]
    priority = ConsumerPriorityConfig(priorities={"Y": 1, "X": 2, "Z": 3})
    return producers, consumers, priority


# ============================================================
# Example Scenario
# ============================================================

class TestExampleScenario:
    """Single solar producer, single consumer"""

    def test_solar_without_banking(self):
        result = settle_month(
            MONTH,
            [production("A", c1=100, c2=50, c3=50, c4=100, c5=100)],
            [consumption("X", c1=60, c2=60, c3=0, c4=0, c5=0)],
            priority_config=ConsumerPriorityConfig(priorities={"X": 1}),
        )

        assert len(result.allocations) == 1
        record = result.allocations[0]
        assert record.allocated == {
            Period.P1: 60, Period.P2: 50, Period.P3: 0, Period.P4: 0, Period.P5: 0,
        }

        assert result.banking == []
        assert len(result.lapses) == 1
        assert result.lapses[0].quantities == {
            Period.P1: 40, Period.P2: 0, Period.P3: 50, Period.P4: 100, Period.P5: 100,
        }

        assert [c.site_id for c in result.residual_consumers] == ["X"]
        assert result.residual_consumers[0].residual() == {'c2': 10}
        assert result.residual_producers == []

    def test_peak_periods_settled_first(self):
        result = settle_month(
            MONTH,
            [production("A", c1=100, c2=50, c3=50, c4=100, c5=100)],
            [consumption("X", c1=60, c2=60)],
        )
        periods = [step.period for step in result.trace]
        first_non_peak = next(i for i, p in enumerate(periods) if not is_peak(p))
        assert all(not is_peak(p) for p in periods[first_non_peak:])


# ============================================================
# Properties
# ============================================================

class TestProperties:
    """Conservation, directionality, priority and idempotence"""

    def test_conservation(self, mixed_inputs):
        producers, consumers, priority = mixed_inputs
        result = settle_month(
            MONTH, producers, consumers,
            shareholdings=[{'generatorCompanyId': '2', 'shareholderCompanyId': '9',
                            'allocationPercentage': 50}],
            priority_config=priority,
        )

        moved = defaultdict(int)
        for step in result.trace:
            if step.source != MatchSource.BANKING:
                moved[(step.production_site_id, step.period)] += step.matched

        banked_or_lapsed = defaultdict(int)
        for record in result.banking + result.lapses:
            for period in ALL_PERIODS:
                banked_or_lapsed[(record.production_site_id, period)] += record.quantities[period]

        leftover_steps = defaultdict(int)
        for step in result.trace:
            if step.source == MatchSource.LEFTOVER:
                leftover_steps[(step.production_site_id, step.period)] += step.matched

        for unit in result.producers:
            for period in ALL_PERIODS:
                key = (unit.site_id, period)
                assert moved[key] == unit.original[period]
                assert leftover_steps[key] == banked_or_lapsed[key]

        assert result.residual_producers == []

    def test_consumer_never_over_supplied(self, mixed_inputs):
        producers, consumers, priority = mixed_inputs
        result = settle_month(MONTH, producers, consumers, priority_config=priority)

        for unit in result.consumers:
            for period in ALL_PERIODS:
                received = sum(
                    s.matched for s in result.trace
                    if s.consumption_site_id == unit.site_id and s.period == period
                )
                assert received + unit.remaining[period] == unit.original[period]

    def test_non_peak_supply_never_reaches_peak_demand(self):
        result = settle_month(
            MONTH,
            [production("A", c1=100, c4=100)],
            [consumption("X", c2=50, c3=50)],
        )
        assert result.allocations == []
        assert result.residual_consumers[0].residual() == {'c2': 50, 'c3': 50}

    def test_peak_steps_stay_in_period(self, mixed_inputs):
        producers, consumers, priority = mixed_inputs
        result = settle_month(MONTH, producers, consumers, priority_config=priority)

        for step in result.trace:
            if step.source in (MatchSource.GREEDY, MatchSource.OVERRIDE):
                record = allocation_for(result, step.production_site_id, step.consumption_site_id)
                assert record.allocated[step.period] > 0

    def test_priority_ordering(self):
        result = settle_month(
            MONTH,
            [production("A", c1=100)],
            [consumption("X", c1=60), consumption("Y", c1=60)],
            priority_config=ConsumerPriorityConfig(priorities={"X": 2, "Y": 1}),
        )

        assert allocation_for(result, "A", "Y").allocated[Period.P1] == 60
        assert allocation_for(result, "A", "X").allocated[Period.P1] == 40

    def test_priority_ties_broken_by_name(self):
        consumers = [
            dict(consumption("X", c1=60), siteName="Bravo"),
            dict(consumption("Y", c1=60), siteName="Alpha"),
        ]
        result = settle_month(
            MONTH,
            [production("A", c1=70)],
            consumers,
            priority_config=ConsumerPriorityConfig(priorities={"X": 1, "Y": 1}),
        )
        assert allocation_for(result, "A", "Y").allocated[Period.P1] == 60
        assert allocation_for(result, "A", "X").allocated[Period.P1] == 10

    def test_excluded_consumers_are_not_served(self):
        result = settle_month(
            MONTH,
            [production("A", c1=100)],
            [consumption("X", c1=60), consumption("Y", c1=60)],
            priority_config=ConsumerPriorityConfig(included={"Y"}, exclude_by_default=True),
        )
        assert allocation_for(result, "A", "X") is None
        assert allocation_for(result, "A", "Y").allocated[Period.P1] == 60
        assert [c.site_id for c in result.consumers] == ["Y"]

    def test_idempotent(self, mixed_inputs):
        producers, consumers, priority = mixed_inputs

        first = settle_month(MONTH, producers, consumers, priority_config=priority)
        second = settle_month(MONTH, producers, consumers, priority_config=priority)

        first_json = json.dumps([r.to_dict() for r in first.allocations], sort_keys=True)
        second_json = json.dumps([r.to_dict() for r in second.allocations], sort_keys=True)
        assert first_json == second_json
        assert first.to_dict() == second.to_dict()


# ============================================================
# Producer Groups and Leftovers
# ============================================================

class TestProducerGroups:
    """Group precedence and bank/lapse routing"""

    def test_solar_before_wind(self):
        result = settle_month(
            MONTH,
            [production("W", kind="WIND", c1=50), production("S", c1=50)],
            [consumption("X", c1=70)],
        )

        assert allocation_for(result, "S", "X").allocated[Period.P1] == 50
        assert allocation_for(result, "W", "X").allocated[Period.P1] == 20
        assert result.lapses[0].production_site_id == "W"
        assert result.lapses[0].quantities[Period.P1] == 30

    def test_bankable_wind_served_last_and_banked(self):
        result = settle_month(
            MONTH,
            [production("BW", kind="WIND", banking=True, c1=50), production("NW", kind="WIND", c1=50)],
            [consumption("X", c1=60)],
        )

        assert allocation_for(result, "NW", "X").allocated[Period.P1] == 50
        assert allocation_for(result, "BW", "X").allocated[Period.P1] == 10
        assert result.lapses == []
        assert len(result.banking) == 1
        assert result.banking[0].production_site_id == "BW"
        assert result.banking[0].quantities[Period.P1] == 40

    def test_leftovers_resolved_without_demand(self):
        result = settle_month(
            MONTH,
            [production("BW", kind="WIND", banking=True, c3=25)],
            [consumption("X", c1=10)],
        )
        assert result.banking[0].quantities[Period.P3] == 25
        assert result.residual_producers == []


# ============================================================
# Shareholding
# ============================================================

class TestShareholdingInMatching:
    """Scaling at match time"""

    def test_scaled_credit_unscaled_bookkeeping(self):
        result = settle_month(
            MONTH,
            [production("A", c1=75)],
            [consumption("X", c1=100)],
            shareholdings=[{'generatorCompanyId': '1', 'shareholderCompanyId': '9',
                            'allocationPercentage': 40}],
        )

        assert allocation_for(result, "A", "X").allocated[Period.P1] == 30
        assert result.lapses == []
        assert result.residual_consumers[0].remaining[Period.P1] == 25

    def test_zero_after_scaling_discarded(self):
        result = settle_month(
            MONTH,
            [production("A", c1=75)],
            [consumption("X", c1=100)],
            shareholdings=[{'generatorCompanyId': '1', 'shareholderCompanyId': '9',
                            'allocationPercentage': 0}],
        )

        assert result.allocations == []
        assert result.lapses[0].quantities[Period.P1] == 75
        assert result.residual_consumers[0].remaining[Period.P1] == 100

    def test_strict_shareholding(self):
        with pytest.raises(InvalidInputError, match="No shareholding entry"):
            settle_month(
                MONTH,
                [production("A", c1=75)],
                [consumption("X", c1=100)],
                strict_shareholding=True,
            )


# ============================================================
# Banking Draw
# ============================================================

class TestBankingDraw:
    """Draws from banked balances after production is exhausted"""

    def test_draw_recorded_as_negative_usage(self):
        result = settle_month(
            MONTH,
            [production("A", c1=60)],
            [consumption("X", c1=100)],
            banked=[{'productionSiteId': 'B', 'companyId': '2', 'c1': 30, 'c2': 5}],
        )

        assert allocation_for(result, "A", "X").allocated[Period.P1] == 60
        assert len(result.banking_usage) == 1
        usage = result.banking_usage[0]
        assert usage.production_site_id == "B"
        assert usage.consumption_site_id == "X"
        assert usage.period == Period.P1
        assert usage.quantity == -30
        assert usage.drawn_units == 30

        assert result.residual_consumers[0].remaining[Period.P1] == 10
        assert [b.site_id for b in result.residual_banked] == ["B"]
        assert result.residual_banked[0].residual() == {'c2': 5}

    def test_draw_scaled_by_banked_site_share(self):
        result = settle_month(
            MONTH,
            [],
            [consumption("X", c1=20)],
            banked=[{'productionSiteId': 'B', 'companyId': '2', 'c1': 30}],
            shareholdings=[{'generatorCompanyId': '2', 'shareholderCompanyId': '9',
                            'allocationPercentage': 50}],
        )

        usage = result.banking_usage[0]
        assert usage.drawn_units == 20
        assert usage.quantity == -10
        assert result.residual_consumers == []
        assert result.residual_banked[0].remaining[Period.P1] == 10

    def test_draw_not_counted_as_allocation(self):
        result = settle_month(
            MONTH,
            [],
            [consumption("X", c1=20)],
            banked=[{'productionSiteId': 'B', 'companyId': '2', 'c1': 30}],
        )
        assert result.allocations == []
        assert result.summary.total == 0


# ============================================================
# Overrides and Input Validation
# ============================================================

class TestOverridesAndValidation:
    """Manual pins and malformed input"""

    def test_override_matched_first(self):
        result = settle_month(
            MONTH,
            [production("A", c1=100)],
            [consumption("X", c1=100), consumption("Y", c1=50)],
            priority_config=ConsumerPriorityConfig(priorities={"X": 1, "Y": 2}),
            overrides=[{'productionSiteId': 'A', 'consumptionSiteId': 'Y', 'period': 'P1', 'quantity': 30}],
        )

        assert allocation_for(result, "A", "Y").allocated[Period.P1] == 30
        assert allocation_for(result, "A", "X").allocated[Period.P1] == 70
        assert result.trace[0].source == MatchSource.OVERRIDE

    def test_override_bounded_by_remaining(self):
        result = settle_month(
            MONTH,
            [production("A", c1=20)],
            [consumption("X", c1=100)],
            overrides={("A", "X", Period.P1): 50},
        )
        assert allocation_for(result, "A", "X").allocated[Period.P1] == 20

    def test_parse_overrides_rejects_bad_period(self):
        with pytest.raises(InvalidInputError):
            parse_overrides([{'productionSiteId': 'A', 'consumptionSiteId': 'X',
                              'period': 'P9', 'quantity': 5}])

    def test_negative_quantity_fails_whole_run(self):
        with pytest.raises(InvalidInputError) as exc_info:
            settle_month(MONTH, [production("A", c1=-5)], [consumption("X", c1=10)])
        assert exc_info.value.errors[0]['type'] == 'production'

    def test_missing_identity_fails_whole_run(self):
        with pytest.raises(InvalidInputError):
            settle_month(MONTH, [production("A", c1=5)], [{'companyId': '1', 'c1': 10}])

    def test_out_of_range_share_fails_run(self):
        with pytest.raises(InvalidInputError):
            settle_month(
                MONTH,
                [production("A", c1=5)],
                [consumption("X", c1=10)],
                shareholdings=[{'generatorCompanyId': '1', 'shareholderCompanyId': '9',
                                'allocationPercentage': 101}],
            )

    def test_engine_rejects_out_of_range_share_map(self):
        with pytest.raises(InvalidInputError) as exc_info:
            MatchingEngine(share_map={'1': 150, '2': -5, '3': 40})

        errors = exc_info.value.errors
        assert [e['companyId'] for e in errors] == ['1', '2']
        assert 'between 0 and 100' in errors[0]['message']

    def test_engine_rejects_non_numeric_share(self):
        with pytest.raises(InvalidInputError):
            MatchingEngine(share_map={'1': 'half'})

    def test_engine_share_map_within_range(self):
        result = MatchingEngine(share_map={'1': '50'}).settle(
            MONTH, [production("A", c1=40)], [consumption("X", c1=40)]
        )
        assert allocation_for(result, "A", "X").allocated[Period.P1] == 20

    def test_trace_sources_serialize_to_strings(self):
        result = settle_month(MONTH, [production("A", c1=10)], [consumption("X", c1=4)])

        sources = [step.to_dict()['source'] for step in result.trace]
        assert sources == ['greedy', 'leftover']
        assert all(isinstance(step.source, MatchSource) for step in result.trace)

    def test_other_month_skipped(self):
        other = dict(production("A", c1=100), month="052025")
        result = MatchingEngine().settle(MONTH, [other], [consumption("X", c1=10)])

        assert result.skipped == ["A"]
        assert result.allocations == []
        assert result.residual_consumers[0].remaining[Period.P1] == 10
