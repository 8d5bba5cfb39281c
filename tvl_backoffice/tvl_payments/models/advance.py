# tvl_payments/models/advance.py

from django.db import models
from django.utils.translation import gettext_lazy as _

from tvl_core.validators import validate_financial_year_label

from .base import AuditedModel, ZERO, money_field
from .booking import Customer


class CustomerAdvance(AuditedModel):
    """
    Cached unapplied balance of a customer for one financial year.
    Always derivable from payments and allocations; refreshed by advance_service.
    """
    customer = models.ForeignKey(
        Customer, verbose_name=_("Customer"), on_delete=models.PROTECT, related_name='advances'
    )
    financial_year = models.CharField(
        _("Financial Year"), max_length=7, validators=[validate_financial_year_label]
    )
    advance_amount = money_field(_("Advance Amount"), default=ZERO)
    last_recalculated_at = models.DateTimeField(_("Last Recalculated"), null=True, blank=True)

    class Meta:
        verbose_name = _("Customer Advance")
        verbose_name_plural = _("Customer Advances")
        unique_together = ('customer', 'financial_year')
        ordering = ['customer__name', '-financial_year']

    def __str__(self):
        return f"Advance {self.customer_id} {self.financial_year}: {self.advance_amount}"
