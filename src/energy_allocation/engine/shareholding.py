"""
Shareholding Scaler
===================

Captive shareholding scales each matched quantity at match time:

    credited = floor(quantity * share(generator company) / 100)

A generator company without a share entry is credited at 100% unless the
caller asks for strict shareholding.
"""

import logging
import math
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from ..models.units import ShareholdingRecord
from ..validators.errors import InvalidInputError

logger = logging.getLogger(__name__)

DEFAULT_SHARE = 100.0

ShareMap = Dict[str, float]


def apply_share(
    quantity: int,
    producer_company_id: str,
    share_map: Optional[Mapping[str, float]],
    strict: bool = False,
) -> int:
    """Credited quantity for a match of ``quantity`` raw units

    Args:
        quantity: Unscaled matched units
        producer_company_id: Generator company of the supplying site
        share_map: generator company ID -> percentage
        strict: Missing share entry is an error instead of 100%

    Returns:
        Scaled quantity, floored to whole units

    Raises:
        InvalidInputError: Missing entry in strict mode

    Example:
        >>> apply_share(75, "1", {"1": 40})
        30
        >>> apply_share(75, "2", {"1": 40})
        75
    """
    share_map = share_map or {}
    if producer_company_id in share_map:
        percentage = share_map[producer_company_id]
    elif strict:
        raise InvalidInputError(
            f"No shareholding entry for generator company {producer_company_id}",
            [{'type': 'shareholding', 'companyId': producer_company_id,
              'message': 'missing shareholding entry'}],
        )
    else:
        percentage = DEFAULT_SHARE

    # Guard float noise such as 0.29 * 100 before flooring
    return int(math.floor(quantity * float(percentage) / 100.0 + 1e-9))


def _as_record(item: Union[ShareholdingRecord, Dict[str, Any]]) -> ShareholdingRecord:
    if isinstance(item, ShareholdingRecord):
        return item
    try:
        return ShareholdingRecord.from_dict(item)
    except ValueError as e:
        raise InvalidInputError(str(e), [{'type': 'shareholding', 'message': str(e)}])


def build_share_map(
    records: Iterable[Union[ShareholdingRecord, Dict[str, Any]]],
    shareholder_company_id: Optional[str] = None,
) -> ShareMap:
    """Share map keyed by generator company

    Args:
        records: Shareholding records (dataclasses or raw dicts)
        shareholder_company_id: Only keep shares held by this company

    Raises:
        InvalidInputError: Out-of-range percentage, or two different shares
            for the same generator company
    """
    share_map: ShareMap = {}
    errors: List[Dict[str, Any]] = []

    for item in records or []:
        record = _as_record(item)
        if shareholder_company_id is not None \
                and record.shareholder_company_id != str(shareholder_company_id):
            continue

        existing = share_map.get(record.generator_company_id)
        if existing is not None and existing != record.percentage:
            errors.append({
                'type': 'shareholding',
                'companyId': record.generator_company_id,
                'message': (
                    f"Conflicting shares {existing} and {record.percentage} "
                    f"for generator company {record.generator_company_id}"
                ),
            })
            continue
        share_map[record.generator_company_id] = record.percentage

    if errors:
        raise InvalidInputError("Ambiguous shareholding records", errors)
    return share_map


def share_totals(
    records: Iterable[Union[ShareholdingRecord, Dict[str, Any]]],
) -> Dict[str, float]:
    """Sum of shares per generator company

    Totals other than 100 are logged, not rejected.
    """
    totals: Dict[str, float] = defaultdict(float)
    for item in records or []:
        record = _as_record(item)
        totals[record.generator_company_id] += record.percentage

    for company_id, value in totals.items():
        if abs(value - 100.0) > 1e-6:
            logger.warning(
                f"Shareholding for generator company {company_id} sums to {value:.2f}%"
            )
    return dict(totals)
