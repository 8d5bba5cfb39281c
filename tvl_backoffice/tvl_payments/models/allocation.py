# tvl_payments/models/allocation.py

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from tvl_core.enums import AllocationType

from .base import ImmutableAuditedModel, ZERO, money_field
from .booking import TravelRecord
from .payment import Payment


class PaymentAllocation(ImmutableAuditedModel):
    """
    Application of part of a payment to one PNR. Normal allocations are
    positive; a refund reversal is a separate negative row of type REFUND.
    """
    payment = models.ForeignKey(
        Payment, verbose_name=_("Payment"), on_delete=models.PROTECT, related_name='allocations'
    )
    travel_record = models.ForeignKey(
        TravelRecord, verbose_name=_("PNR"), on_delete=models.PROTECT, related_name='allocations'
    )
    amount = money_field(_("Amount"))
    allocation_type = models.CharField(
        _("Allocation Type"), max_length=10, choices=AllocationType.choices, default=AllocationType.MANUAL
    )
    remarks = models.CharField(_("Remarks"), max_length=255, blank=True)
    allocated_at = models.DateTimeField(_("Allocated At"), default=timezone.now, db_index=True)
    allocated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, verbose_name=_("Allocated By"), on_delete=models.PROTECT,
        related_name='payment_allocations'
    )

    class Meta:
        verbose_name = _("Payment Allocation")
        verbose_name_plural = _("Payment Allocations")
        ordering = ['allocated_at', 'created_at']
        indexes = [
            models.Index(fields=['payment', 'allocation_type']),
        ]

    def __str__(self):
        return f"Allocation: Pmt {self.payment_id} -> PNR {self.travel_record_id} - Amt: {self.amount}"

    def clean(self):
        super().clean()
        if self.amount is None:
            return
        if self.allocation_type == AllocationType.REFUND and self.amount >= ZERO:
            raise ValidationError({'amount': _("A refund reversal must carry a negative amount.")})
        if self.allocation_type != AllocationType.REFUND and self.amount <= ZERO:
            raise ValidationError({'amount': _("Allocated amount must be greater than zero.")})
