"""
Utility functions used throughout the back office.

Period labels, decimal rounding and small request helpers live here so the
ledger services, serializers and reports all stamp and compare the same
strings.
"""

import re
from datetime import date
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional, Tuple

from django.utils import timezone

ZERO = Decimal('0.00')
FINANCIAL_YEAR_START_MONTH = 4  # April
MONEY_MAX_DIGITS = 20
MONEY_DECIMAL_PLACES = 2

_FY_LABEL_RE = re.compile(r'^(\d{4})-(\d{2})$')


def today() -> date:
    """
    Returns today's date in the active timezone. Useful for mocking/testing.
    """
    return timezone.localdate()


def round_decimal(value: Decimal, precision: str = '0.01') -> Decimal:
    """
    Rounds a Decimal to given precision using ROUND_HALF_UP method.
    """
    return value.quantize(Decimal(precision), rounding=ROUND_HALF_UP)


def to_decimal(value) -> Optional[Decimal]:
    """
    Converts an int, str or Decimal to a 2dp Decimal.

    Returns None when the value cannot be parsed, is not finite (NaN,
    Infinity) or is too large to round to 2dp, so callers can reject it
    explicitly instead of silently booking zero.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        if not parsed.is_finite():
            return None
        return round_decimal(parsed)
    except (ValueError, TypeError, InvalidOperation):
        return None


def exceeds_money_digits(value: Decimal) -> bool:
    """
    True when a 2dp amount has more digits than a money column stores
    (MONEY_MAX_DIGITS in total, MONEY_DECIMAL_PLACES of them after the point).
    """
    return abs(value) >= Decimal(10) ** (MONEY_MAX_DIGITS - MONEY_DECIMAL_PLACES)


def financial_year(input_date: date) -> str:
    """
    Financial year label (April to March) for a date.

    >>> financial_year(date(2025, 3, 15))
    '2024-25'
    >>> financial_year(date(2025, 4, 1))
    '2025-26'
    """
    year = input_date.year
    if input_date.month >= FINANCIAL_YEAR_START_MONTH:
        return f"{year}-{(year + 1) % 100:02d}"
    return f"{year - 1}-{year % 100:02d}"


def accounting_period(input_date: date) -> str:
    """Monthly accounting period label, e.g. '2024-07'."""
    return f"{input_date.year:04d}-{input_date.month:02d}"


def financial_year_bounds(label: str) -> Tuple[date, date]:
    """
    First and last day of a financial year label.

    Raises:
        ValueError: If the label is not of the form 'YYYY-YY' with consecutive years.
    """
    match = _FY_LABEL_RE.match(label or '')
    if not match:
        raise ValueError(f"Invalid financial year label: {label!r}")
    start_year = int(match.group(1))
    if (start_year + 1) % 100 != int(match.group(2)):
        raise ValueError(f"Financial year label {label!r} does not span consecutive years.")
    return date(start_year, FINANCIAL_YEAR_START_MONTH, 1), date(start_year + 1, FINANCIAL_YEAR_START_MONTH - 1, 31)


def get_query_param(request, key: str, default=None):
    """
    Safely retrieves a query parameter from a DRF request.
    """
    return request.query_params.get(key, default)
