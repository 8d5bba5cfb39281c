"""
tvl_core/validators.py

Reusable validation logic used in models and serializers.
"""

from decimal import Decimal
from typing import Iterable, Optional

from django.core.exceptions import ValidationError
from django.utils.translation import gettext_lazy as _

from .utils import financial_year_bounds, round_decimal


def validate_financial_year_label(value):
    """
    Ensures a financial year label looks like '2024-25'.
    """
    try:
        financial_year_bounds(value)
    except ValueError as exc:
        raise ValidationError(str(exc))


def validate_breakdown_total(total: Decimal, parts: Iterable[Optional[Decimal]]):
    """
    When any breakdown component is supplied, the components must add up to the total.
    Missing components count as zero.
    """
    supplied = [p for p in parts if p is not None]
    if not supplied:
        return
    breakdown_sum = round_decimal(sum(supplied, Decimal('0')))
    if breakdown_sum != round_decimal(total):
        raise ValidationError(
            _("Payment breakdown (%(sum)s) does not add up to the payment amount (%(total)s).")
            % {'sum': breakdown_sum, 'total': total}
        )
