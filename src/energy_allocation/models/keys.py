"""
Record Key Conventions
======================

Persisted records are keyed by:
- pk: ``companyId_productionSiteId[_consumptionSiteId]``
- sk: six-character month key ``MMYYYY``

Financial years run April to March; FY 2024 covers 042024 .. 032025.
"""

from typing import List, NamedTuple, Optional, Tuple

FINANCIAL_YEAR_START_MONTH = 4
KEY_SEPARATOR = "_"


class RecordKey(NamedTuple):
    """Decoded primary key"""
    company_id: str
    production_site_id: str
    consumption_site_id: Optional[str] = None


def build_pk(
    company_id: str,
    production_site_id: str,
    consumption_site_id: Optional[str] = None,
) -> str:
    """Encode a composite primary key

    Example:
        >>> build_pk("1", "11", "204")
        '1_11_204'
        >>> build_pk("1", "11")
        '1_11'
    """
    parts = [company_id, production_site_id]
    if consumption_site_id is not None:
        parts.append(consumption_site_id)
    for part in parts:
        text = str(part)
        if not text or KEY_SEPARATOR in text:
            raise ValueError(f"Invalid key component: {part!r}")
    return KEY_SEPARATOR.join(str(p) for p in parts)


def parse_pk(pk: str) -> RecordKey:
    """Decode ``company_production[_consumption]``"""
    parts = str(pk or "").split(KEY_SEPARATOR)
    if len(parts) not in (2, 3) or not all(parts):
        raise ValueError(f"Invalid record key: {pk!r}")
    return RecordKey(*parts)


def month_key(month: int, year: int) -> str:
    """Encode month and year as MMYYYY"""
    if not 1 <= int(month) <= 12:
        raise ValueError(f"Month must be 1-12, got {month}")
    if not 1000 <= int(year) <= 9999:
        raise ValueError(f"Year must have four digits, got {year}")
    return f"{int(month):02d}{int(year)}"


def parse_month_key(key: str) -> Tuple[int, int]:
    """Decode MMYYYY into (month, year)"""
    text = str(key or "")
    if len(text) != 6 or not text.isdigit():
        raise ValueError(f"Month key must be MMYYYY, got {key!r}")
    month, year = int(text[:2]), int(text[2:])
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be 1-12, got {month} in {key!r}")
    return month, year


def financial_year_of(key: str, start_month: int = FINANCIAL_YEAR_START_MONTH) -> int:
    """Financial year (by starting calendar year) containing a month key"""
    month, year = parse_month_key(key)
    return year if month >= start_month else year - 1


def prior_months_in_financial_year(
    key: str,
    start_month: int = FINANCIAL_YEAR_START_MONTH,
) -> List[str]:
    """Month keys from the financial year start up to the month before ``key``

    Example:
        >>> prior_months_in_financial_year("062024")
        ['042024', '052024']
        >>> prior_months_in_financial_year("022025")[-2:]
        ['122024', '012025']
    """
    month, year = parse_month_key(key)
    fy = financial_year_of(key, start_month)

    months = []
    cur_month, cur_year = start_month, fy
    while (cur_year, cur_month) < (year, month):
        months.append(month_key(cur_month, cur_year))
        cur_month += 1
        if cur_month > 12:
            cur_month, cur_year = 1, cur_year + 1
    return months
