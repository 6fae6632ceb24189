"""
Record Schema Migration
=======================

Persisted allocation records come in two shapes:

- v1: period values and ``charge`` written both at the root and inside a
  nested ``allocated`` object, charge stored as 1/0
- v2: period values only under ``allocated``, charge as a bool,
  ``schema_version: 2``

``migrate_record`` upgrades at the boundary so the engine only sees v2.
"""

from typing import Any, Dict

from .keys import parse_pk
from .period import ALL_PERIODS, coerce_quantities, quantities_to_dict

CURRENT_SCHEMA_VERSION = 2


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return value is True or value == 1


def _migrate_v1(raw: Dict[str, Any]) -> Dict[str, Any]:
    nested = dict(raw.get('allocated') or {})
    # Root-level values win: v1 writers updated the root last
    merged = {k: v for k, v in nested.items() if k != 'charge'}
    for period in ALL_PERIODS:
        if raw.get(period.key) is not None:
            merged[period.key] = raw[period.key]

    if 'charge' in raw:
        charge = _truthy(raw['charge'])
    else:
        charge = _truthy(nested.get('charge', 0))

    record = {
        k: v for k, v in raw.items()
        if k not in {p.key for p in ALL_PERIODS} and k not in ('allocated', 'charge')
    }
    record['allocated'] = quantities_to_dict(coerce_quantities(merged, "allocated"))
    record['charge'] = charge

    if record.get('pk') and not record.get('productionSiteId'):
        key = parse_pk(record['pk'])
        record['companyId'] = record.get('companyId') or key.company_id
        record['productionSiteId'] = key.production_site_id
        if key.consumption_site_id is not None:
            record.setdefault('consumptionSiteId', key.consumption_site_id)
    if record.get('sk') and not record.get('month'):
        record['month'] = record['sk']

    record['schema_version'] = CURRENT_SCHEMA_VERSION
    return record


MIGRATIONS = {
    1: _migrate_v1,
}


def migrate_record(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Upgrade a persisted record dict to the canonical shape

    Records without ``schema_version`` are treated as v1.

    Raises:
        ValueError: Unknown (newer) schema version
    """
    version = int(raw.get('schema_version', 1))
    if version > CURRENT_SCHEMA_VERSION or version < 1:
        raise ValueError(f"Unsupported record schema version: {version}")

    record = dict(raw)
    while version < CURRENT_SCHEMA_VERSION:
        record = MIGRATIONS[version](record)
        version = int(record['schema_version'])
    return record
