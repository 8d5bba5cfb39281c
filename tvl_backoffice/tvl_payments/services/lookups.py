# tvl_payments/services/lookups.py

from typing import Any

from django.core.exceptions import ObjectDoesNotExist, ValidationError as DjangoValidationError
from django.db import models

from ..exceptions import RecordNotFoundError


def get_record(queryset, label: str = None, **lookup) -> Any:
    """
    `queryset.get(**lookup)` that reports a missing row (or a malformed key)
    as RecordNotFoundError. Accepts a model class or a queryset, so callers can
    pass `Model.objects.select_for_update()` to lock the row.
    """
    if isinstance(queryset, type) and issubclass(queryset, models.Model):
        queryset = queryset._default_manager.all()
    label = label or queryset.model._meta.verbose_name.title()
    try:
        return queryset.get(**lookup)
    except (ObjectDoesNotExist, DjangoValidationError, ValueError, TypeError):
        raise RecordNotFoundError(label, next(iter(lookup.values()), None))
