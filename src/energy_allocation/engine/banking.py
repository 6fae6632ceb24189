"""
Financial-Year Banking
======================

Banked surplus accumulates within a financial year (April to March by
default). The balance available to a month is the sum of the banking
records of all earlier months of the same financial year, net of the
unscaled units drawn from it.
"""

import logging
import math
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Tuple

from ..models.allocation import BankingAllocationRecord, BankingUsage
from ..models.keys import (
    FINANCIAL_YEAR_START_MONTH,
    financial_year_of,
    parse_pk,
    prior_months_in_financial_year,
)
from ..models.period import ALL_PERIODS, Period
from ..models.units import BankedBalance
from ..validators.errors import InvalidInputError

logger = logging.getLogger(__name__)


def _signed(value: Any) -> int:
    """Period value that may be negative (draws are recorded as negatives)"""
    if value is None or value == "":
        return 0
    number = float(value)
    if math.isnan(number) or math.isinf(number):
        raise ValueError(f"Banking value must be finite, got {value!r}")
    return int(round(number))


def _entry(record: Any) -> Tuple[str, str, str, str, Dict[Period, int]]:
    """(company, site, site name, month, signed quantities) of one record"""
    if isinstance(record, BankingAllocationRecord):
        return (record.company_id, record.production_site_id, record.site_name,
                record.month, dict(record.quantities))

    if isinstance(record, BankingUsage):
        quantities = {p: 0 for p in ALL_PERIODS}
        # The bank loses the unscaled units, not the credited amount
        quantities[record.period] = -abs(record.drawn_units or record.quantity)
        return record.company_id, record.production_site_id, "", record.month, quantities

    data = dict(record)
    company_id = data.get('companyId', '')
    site_id = data.get('productionSiteId', '')
    if data.get('pk') and not (company_id and site_id):
        key = parse_pk(data['pk'])
        company_id, site_id = key.company_id, key.production_site_id
    # Root-level values (schema v1) take precedence over the nested ones
    allocated = dict(data.get('allocated') or {})
    for period in ALL_PERIODS:
        if data.get(period.key) is not None:
            allocated[period.key] = data[period.key]
    quantities = {p: _signed(allocated.get(p.key)) for p in ALL_PERIODS}
    drawn_units = _signed(data.get('drawnUnits'))
    if drawn_units:
        quantities = {p: -abs(drawn_units) if v < 0 else v for p, v in quantities.items()}
    record_month = str(data.get('month') or data.get('sk') or '')
    return company_id, site_id, data.get('siteName', ''), record_month, quantities


def aggregate_banked_balances(
    banking_records: Iterable[Any],
    month: str,
    start_month: int = FINANCIAL_YEAR_START_MONTH,
) -> List[BankedBalance]:
    """Running balance per production site available to ``month``

    Args:
        banking_records: BankingAllocationRecord, BankingUsage or raw
            banking dicts (schema v1 or v2) of any months
        month: Month key (MMYYYY) being settled
        start_month: First calendar month of the financial year

    Returns:
        One BankedBalance per (company, production site), in first-seen order

    Raises:
        InvalidInputError: Unreadable record
    """
    window = set(prior_months_in_financial_year(month, start_month))
    financial_year = financial_year_of(month, start_month)

    totals: "OrderedDict[Tuple[str, str], Dict[Period, int]]" = OrderedDict()
    names: Dict[Tuple[str, str], str] = {}
    errors = []

    for index, record in enumerate(banking_records or []):
        try:
            company_id, site_id, site_name, record_month, quantities = _entry(record)
        except (KeyError, ValueError, TypeError) as e:
            errors.append({'type': 'banking', 'index': index, 'message': str(e)})
            continue
        if not company_id or not site_id:
            errors.append({'type': 'banking', 'index': index,
                           'message': 'company_id and production_site_id are required'})
            continue
        if record_month not in window:
            continue

        key = (company_id, site_id)
        bucket = totals.setdefault(key, {p: 0 for p in ALL_PERIODS})
        for period in ALL_PERIODS:
            bucket[period] += quantities.get(period, 0)
        if site_name:
            names[key] = site_name

    if errors:
        raise InvalidInputError(f"Invalid banking records: {len(errors)} error(s)", errors)

    balances = []
    for (company_id, site_id), quantities in totals.items():
        overdrawn = {p.name: v for p, v in quantities.items() if v < 0}
        if overdrawn:
            logger.warning(f"Banked balance of {site_id} overdrawn in FY{financial_year}: {overdrawn}")
        balances.append(BankedBalance(
            production_site_id=site_id,
            company_id=company_id,
            quantities={p: max(v, 0) for p, v in quantities.items()},
            financial_year=financial_year,
            site_name=names.get((company_id, site_id), ''),
        ))

    logger.debug(f"Aggregated {len(balances)} banked balances for {month} (FY{financial_year})")
    return balances
