# tvl_payments/models/closing.py

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _
from safedelete import NO_DELETE

from tvl_core.enums import YearEndClosingStatus
from tvl_core.validators import validate_financial_year_label

from .base import AuditedModel, ZERO, money_field


class YearEndClosing(AuditedModel):
    """Snapshot of receivables and advances taken when a financial year is closed."""
    _safedelete_policy = NO_DELETE

    financial_year = models.CharField(
        _("Financial Year"), max_length=7, unique=True, validators=[validate_financial_year_label]
    )
    closing_date = models.DateField(_("Closing Date"))
    total_pending_receivables = money_field(_("Pending Receivables"), default=ZERO)
    total_advance_balance = money_field(_("Advance Balance"), default=ZERO)
    total_customers = models.PositiveIntegerField(_("Customers"), default=0)
    total_pending_pnrs = models.PositiveIntegerField(_("Pending PNRs"), default=0)
    status = models.CharField(
        _("Status"), max_length=10, choices=YearEndClosingStatus.choices, default=YearEndClosingStatus.DRAFT
    )
    remarks = models.TextField(_("Remarks"), blank=True)
    closed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, verbose_name=_("Closed By"), on_delete=models.PROTECT,
        related_name='year_end_closings'
    )

    class Meta:
        verbose_name = _("Year-End Closing")
        verbose_name_plural = _("Year-End Closings")
        ordering = ['-financial_year']

    def __str__(self):
        return f"Year-end closing {self.financial_year} ({self.get_status_display()})"
