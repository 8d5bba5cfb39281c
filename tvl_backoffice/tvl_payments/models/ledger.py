# tvl_payments/models/ledger.py

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils.translation import gettext_lazy as _

from tvl_core.enums import LedgerEntryType
from tvl_core.validators import validate_financial_year_label

from .allocation import PaymentAllocation
from .base import ImmutableAuditedModel, ZERO, money_field
from .booking import BookingAccount, TravelRecord
from .payment import Payment


class LedgerEntry(ImmutableAuditedModel):
    """
    Append-only audit row for one monetary movement. Each entry is
    self-contained: opening balance is normally zero and the running total for
    a reference is the sum of its entries.

    Entries without a travel record are account-scope (money in or out of the
    booking account); entries with one are PNR-scope (allocations and their
    reversals).
    """
    entry_type = models.CharField(_("Entry Type"), max_length=6, choices=LedgerEntryType.choices)
    entry_reference = models.CharField(_("Reference"), max_length=60, db_index=True)
    amount = money_field(_("Amount"))
    opening_balance = money_field(_("Opening Balance"), default=ZERO)
    closing_balance = money_field(_("Closing Balance"))
    remarks = models.CharField(_("Remarks"), max_length=255, blank=True)
    financial_year = models.CharField(
        _("Financial Year"), max_length=7, db_index=True, validators=[validate_financial_year_label]
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, verbose_name=_("User"), on_delete=models.PROTECT, related_name='ledger_entries'
    )
    payment = models.ForeignKey(
        Payment, verbose_name=_("Payment"), on_delete=models.PROTECT,
        null=True, blank=True, related_name='ledger_entries'
    )
    travel_record = models.ForeignKey(
        TravelRecord, verbose_name=_("PNR"), on_delete=models.PROTECT,
        null=True, blank=True, related_name='ledger_entries'
    )
    account = models.ForeignKey(
        BookingAccount, verbose_name=_("Account"), on_delete=models.PROTECT,
        null=True, blank=True, related_name='ledger_entries'
    )
    allocation = models.ForeignKey(
        PaymentAllocation, verbose_name=_("Allocation"), on_delete=models.PROTECT,
        null=True, blank=True, related_name='ledger_entries'
    )

    class Meta:
        verbose_name = _("Ledger Entry")
        verbose_name_plural = _("Ledger Entries")
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['payment', 'entry_type']),
            models.Index(fields=['travel_record', 'entry_type']),
        ]

    def clean(self):
        super().clean()
        errors = {}
        if self.amount is not None and self.amount <= ZERO:
            errors['amount'] = _("Ledger amounts are unsigned; use the entry type for direction.")
        if not any([self.payment_id, self.travel_record_id, self.account_id]):
            errors['payment'] = _("A ledger entry must reference a payment, a PNR or an account.")
        if errors:
            raise ValidationError(errors)
