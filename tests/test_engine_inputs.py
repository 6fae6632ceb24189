"""
Engine Input Tests
==================

Shareholding scaler, share map construction and unit normalizer
"""

import logging
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.energy_allocation.engine.normalizer import (
    has_remaining,
    normalize_banked,
    normalize_consumption,
    normalize_production,
)
from src.energy_allocation.engine.shareholding import (
    apply_share,
    build_share_map,
    share_totals,
)
from src.energy_allocation.models.period import Period
from src.energy_allocation.models.units import ProducerKind, ProductionUnit, ShareholdingRecord
from src.energy_allocation.validators.errors import InvalidInputError


# ============================================================
# Shareholding Tests
# ============================================================

class TestApplyShare:
    """Shareholding scaler"""

    def test_scales_and_floors(self):
        assert apply_share(75, "1", {"1": 40}) == 30
        assert apply_share(10, "1", {"1": 33}) == 3
        assert apply_share(100, "1", {"1": 29}) == 29

    def test_missing_entry_defaults_to_full(self):
        assert apply_share(75, "2", {"1": 40}) == 75
        assert apply_share(75, "2", None) == 75

    def test_explicit_zero_share(self):
        assert apply_share(75, "1", {"1": 0}) == 0

    def test_strict_missing_entry(self):
        with pytest.raises(InvalidInputError) as exc_info:
            apply_share(75, "2", {"1": 40}, strict=True)
        assert exc_info.value.errors[0]['companyId'] == "2"


class TestShareMap:
    """Share map construction"""

    def test_build_from_dicts_and_records(self):
        share_map = build_share_map([
            {'generatorCompanyId': '1', 'shareholderCompanyId': '9', 'allocationPercentage': 40},
            ShareholdingRecord('2', '9', 60),
        ])
        assert share_map == {'1': 40.0, '2': 60.0}

    def test_filter_by_shareholder(self):
        records = [ShareholdingRecord('1', '9', 40), ShareholdingRecord('1', '8', 60)]
        assert build_share_map(records, shareholder_company_id='8') == {'1': 60.0}

    def test_ambiguous_duplicates_rejected(self):
        records = [ShareholdingRecord('1', '9', 40), ShareholdingRecord('1', '8', 60)]
        with pytest.raises(InvalidInputError, match="Ambiguous"):
            build_share_map(records)

    def test_identical_duplicates_allowed(self):
        records = [ShareholdingRecord('1', '9', 40), ShareholdingRecord('1', '9', 40)]
        assert build_share_map(records) == {'1': 40.0}

    def test_out_of_range_rejected(self):
        with pytest.raises(InvalidInputError):
            build_share_map([{'generatorCompanyId': '1', 'shareholderCompanyId': '9',
                              'allocationPercentage': 150}])

    def test_share_totals_warns(self, caplog):
        records = [ShareholdingRecord('1', '9', 40), ShareholdingRecord('1', '8', 50),
                   ShareholdingRecord('2', '9', 100)]

        with caplog.at_level(logging.WARNING):
            totals = share_totals(records)

        assert totals == {'1': 90.0, '2': 100.0}
        assert any('sums to 90.00%' in r.getMessage() for r in caplog.records)


# ============================================================
# Normalizer Tests
# ============================================================

class TestNormalizer:
    """Remaining-capacity view"""

    def test_raw_production_aliases(self):
        units = normalize_production([{
            'id': '11',
            'companyId': '1',
            'name': 'Wind Farm',
            'type': 'wind',
            'banking': '1',
            'c1': '100.4',
            'allocated': {'c1': 5, 'c2': 20},
        }])

        unit = units[0]
        assert unit.site_id == '11'
        assert unit.site_name == 'Wind Farm'
        assert unit.kind == ProducerKind.WIND
        assert unit.banking_enabled is True
        assert unit.remaining[Period.P1] == 100
        assert unit.remaining[Period.P2] == 20
        assert unit.remaining[Period.P5] == 0

    def test_dataclass_input(self):
        source = ProductionUnit("11", "1", "042025", quantities={Period.P1: 10})
        unit = normalize_production([source])[0]

        unit.take(Period.P1, 4)

        assert unit.remaining[Period.P1] == 6
        assert unit.original[Period.P1] == 10
        assert source.quantities[Period.P1] == 10

    def test_take_beyond_remaining(self):
        unit = normalize_consumption([{'consumptionSiteId': '204', 'companyId': '1', 'c1': 5}])[0]
        with pytest.raises(ValueError):
            unit.take(Period.P1, 6)

    def test_all_errors_reported(self):
        with pytest.raises(InvalidInputError) as exc_info:
            normalize_consumption([
                {'consumptionSiteId': '204', 'companyId': '1', 'c1': -5},
                {'consumptionSiteId': '205', 'c1': 5},
                {'consumptionSiteId': '206', 'companyId': '1', 'c1': 5},
            ])
        errors = exc_info.value.errors
        assert [e['index'] for e in errors] == [0, 1]

    def test_has_remaining(self):
        banked = normalize_banked([{'productionSiteId': '11', 'companyId': '1', 'c3': 2}])[0]
        assert banked.banking_enabled is True
        assert has_remaining(banked)

        banked.take(Period.P3, 2)
        assert not has_remaining(banked)
        assert banked.residual() == {}
