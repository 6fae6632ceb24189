"""
Settlement Reporting
====================

Tabular views of a settlement run:
- records_to_frame: one row per record (allocation, banking, lapse)
- residual_frame: unmet consumer demand and undrawn banked balances
- period_balance_frame: production vs matched vs banked vs lapsed per
  producer and period
"""

from typing import Any, Iterable, List

import pandas as pd

from .engine.matching import MatchSource, SettlementResult
from .models.allocation import RecordType
from .models.period import ALL_PERIODS, Period, is_peak


# ============================================================
# Record tables
# ============================================================

RECORD_COLUMNS = [
    'type', 'month', 'company_id', 'production_site_id', 'consumption_site_id',
    'c1', 'c2', 'c3', 'c4', 'c5', 'total', 'peak', 'non_peak', 'charge',
]


def records_to_frame(records: Iterable[Any]) -> pd.DataFrame:
    """
    Flatten allocation, banking and lapse records into one table

    Args:
        records: Any mix of AllocationRecord and leftover records

    Returns:
        DataFrame with RECORD_COLUMNS (empty frame keeps the columns)
    """
    rows = []
    for record in records:
        quantities = getattr(record, 'allocated', None)
        if quantities is None:
            quantities = record.quantities
        row = {
            'type': record.record_type.value,
            'month': record.month,
            'company_id': record.company_id,
            'production_site_id': record.production_site_id,
            'consumption_site_id': getattr(record, 'consumption_site_id', None),
            'charge': bool(getattr(record, 'charge', False)),
        }
        for period in ALL_PERIODS:
            row[period.key] = quantities.get(period, 0)
        rows.append(row)

    df = pd.DataFrame(rows, columns=RECORD_COLUMNS)
    period_cols = [p.key for p in ALL_PERIODS]
    peak_cols = [p.key for p in ALL_PERIODS if is_peak(p)]
    df[period_cols] = df[period_cols].fillna(0).astype(int)
    df['total'] = df[period_cols].sum(axis=1).astype(int)
    df['peak'] = df[peak_cols].sum(axis=1).astype(int)
    df['non_peak'] = df['total'] - df['peak']
    return df


def result_frame(result: SettlementResult) -> pd.DataFrame:
    """All output records of a run in one table"""
    return records_to_frame(result.allocations + result.banking + result.lapses)


def type_totals(df: pd.DataFrame) -> pd.DataFrame:
    """Units and record counts per record type"""
    if df.empty:
        return pd.DataFrame(
            {'records': 0, 'total': 0, 'peak': 0, 'non_peak': 0},
            index=pd.Index([t.value for t in RecordType], name='type'),
        )
    grouped = df.groupby('type').agg(
        records=('total', 'size'),
        total=('total', 'sum'),
        peak=('peak', 'sum'),
        non_peak=('non_peak', 'sum'),
    )
    return grouped.reindex([t.value for t in RecordType], fill_value=0)


# ============================================================
# Residue and balance
# ============================================================

def residual_frame(result: SettlementResult) -> pd.DataFrame:
    """Unmet consumer demand and undrawn banked units, one row per unit and period"""
    rows = []
    for role, units in (('consumer', result.residual_consumers), ('banked', result.residual_banked)):
        for unit in units:
            for period in ALL_PERIODS:
                if unit.remaining[period] > 0:
                    rows.append({
                        'role': role,
                        'site_id': unit.site_id,
                        'site_name': unit.site_name,
                        'period': period.name,
                        'remaining': unit.remaining[period],
                    })
    return pd.DataFrame(rows, columns=['role', 'site_id', 'site_name', 'period', 'remaining'])


def period_balance_frame(result: SettlementResult) -> pd.DataFrame:
    """
    Unscaled bookkeeping per producer and period

    ``balance`` is ``produced - matched - banked - lapsed`` and is zero for
    every row of a completed run.
    """
    steps = pd.DataFrame(
        [{
            'production_site_id': s.production_site_id,
            'period': s.period.name,
            'source': s.source.value,
            'matched': s.matched,
            'credited': s.credited,
        } for s in result.trace],
        columns=['production_site_id', 'period', 'source', 'matched', 'credited'],
    )
    steps = steps[steps['source'] != MatchSource.BANKING.value]

    matched = steps[steps['source'] != MatchSource.LEFTOVER.value] \
        .groupby(['production_site_id', 'period'])[['matched', 'credited']].sum()

    leftover: List[dict] = []
    for kind, records in (('banked', result.banking), ('lapsed', result.lapses)):
        for record in records:
            for period in ALL_PERIODS:
                leftover.append({
                    'production_site_id': record.production_site_id,
                    'period': period.name,
                    kind: record.quantities.get(period, 0),
                })
    leftover_df = pd.DataFrame(leftover, columns=['production_site_id', 'period', 'banked', 'lapsed'])
    leftover_df = leftover_df.fillna(0).groupby(['production_site_id', 'period']).sum()

    produced = pd.DataFrame(
        [{
            'production_site_id': unit.site_id,
            'period': period.name,
            'kind': unit.kind.value if unit.kind else '',
            'produced': unit.original[period],
        } for unit in result.producers for period in ALL_PERIODS],
        columns=['production_site_id', 'period', 'kind', 'produced'],
    ).set_index(['production_site_id', 'period'])

    df = produced.join(matched, how='left').join(leftover_df, how='left')
    for col in ('matched', 'credited', 'banked', 'lapsed'):
        df[col] = df[col].fillna(0).astype(int)
    df['balance'] = df['produced'] - df['matched'] - df['banked'] - df['lapsed']
    df['peak'] = [is_peak(Period[p]) for p in df.index.get_level_values('period')]
    return df.reset_index()
