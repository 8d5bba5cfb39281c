# tvl_payments/models/base.py

import uuid
import logging
from decimal import Decimal

from django.db import models
from django.utils.translation import gettext_lazy as _
from django.core.exceptions import ValidationError
from django.conf import settings

from safedelete.models import SafeDeleteModel
from safedelete import SOFT_DELETE, NO_DELETE
from simple_history.models import HistoricalRecords

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


def money_field(verbose_name, **kwargs):
    """Shared definition for every stored amount: 20 digits, 2 decimal places."""
    kwargs.setdefault('max_digits', 20)
    kwargs.setdefault('decimal_places', 2)
    return models.DecimalField(verbose_name, **kwargs)


# ============================================================================
# Abstract Base Model with Soft Delete and Audit
# ============================================================================

class AuditedModel(SafeDeleteModel):
    """
    Abstract base model that includes:
    - Soft deletion support (rows are hidden, never removed)
    - Audit fields (created/updated timestamps and users)
    - Historical tracking
    """
    _safedelete_policy = SOFT_DELETE

    id = models.UUIDField(
        primary_key=True, default=uuid.uuid4, editable=False, verbose_name=_("ID")
    )
    created_at = models.DateTimeField(_("Created At"), auto_now_add=True, editable=False)
    updated_at = models.DateTimeField(_("Updated At"), auto_now=True, editable=False)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, verbose_name=_("Created By"), on_delete=models.SET_NULL,
        null=True, blank=True, related_name='created_%(app_label)s_%(class)s_set', editable=False
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, verbose_name=_("Last Updated By"), on_delete=models.SET_NULL,
        null=True, blank=True, related_name='updated_%(app_label)s_%(class)s_set', editable=False
    )

    history = HistoricalRecords(inherit=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """
        Runs full_clean on every save that is not a targeted update_fields write.
        Targeted writes come from services that have already validated the values.
        """
        if not kwargs.get('update_fields'):
            if hasattr(self, '_set_derived_fields') and callable(self._set_derived_fields):
                self._set_derived_fields()
            self.full_clean()
        super().save(*args, **kwargs)

    def __str__(self):
        name_attrs = ['voucher_number', 'pnr_number', 'booking_number', 'entry_reference', 'name']
        for attr in name_attrs:
            value = getattr(self, attr, None)
            if value:
                return str(value)
        return f"{self.__class__.__name__} (ID: {self.pk})"


class ImmutableAuditedModel(AuditedModel):
    """
    Write-once rows (allocations, ledger entries). Deletes are ignored by the
    NO_DELETE policy and any save of an existing row is rejected.
    """
    _safedelete_policy = NO_DELETE

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError(
                _("%(model)s records are immutable; append an offsetting record instead.")
                % {'model': self._meta.verbose_name}
            )
        super().save(*args, **kwargs)
