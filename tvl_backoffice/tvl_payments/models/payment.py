# tvl_payments/models/payment.py

import logging
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q, Sum
from django.utils.translation import gettext_lazy as _

from tvl_core.enums import AllocationType, PaymentMode, PaymentStatus, VerificationStatus
from tvl_core.validators import validate_breakdown_total, validate_financial_year_label

from .base import AuditedModel, ZERO, money_field
from .booking import BookingAccount, Customer, TravelRecord

logger = logging.getLogger(__name__)

BREAKDOWN_FIELDS = ('fare_amount', 'platform_fee', 'agent_fee', 'tax_amount', 'other_amount')


class Payment(AuditedModel):
    """
    A receipt of money from a customer, or (when refund_of is set) the
    negative-amount record of money returned against an earlier receipt.
    """
    account = models.ForeignKey(
        BookingAccount, verbose_name=_("Funding Account"), on_delete=models.PROTECT, related_name='payments'
    )
    customer = models.ForeignKey(
        Customer, verbose_name=_("Customer"), on_delete=models.PROTECT, related_name='payments'
    )
    travel_record = models.ForeignKey(
        TravelRecord, verbose_name=_("Originating PNR"), on_delete=models.PROTECT,
        null=True, blank=True, related_name='originating_payments'
    )
    refund_of = models.ForeignKey(
        'self', verbose_name=_("Refund Of"), on_delete=models.PROTECT,
        null=True, blank=True, related_name='refunds'
    )

    amount = money_field(_("Amount"))
    mode = models.CharField(_("Payment Mode"), max_length=20, choices=PaymentMode.choices)
    reference_number = models.CharField(
        _("Reference No."), max_length=100, blank=True, help_text=_("UTR, cheque number or transaction id.")
    )
    payment_date = models.DateField(_("Payment Date"), db_index=True)
    received_date = models.DateField(_("Received Date"), null=True, blank=True)
    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, verbose_name=_("Received By"), on_delete=models.PROTECT,
        related_name='payments_received'
    )
    status = models.CharField(
        _("Status"), max_length=10, choices=PaymentStatus.choices, default=PaymentStatus.RECEIVED, db_index=True
    )
    financial_year = models.CharField(
        _("Financial Year"), max_length=7, db_index=True, validators=[validate_financial_year_label]
    )
    accounting_period = models.CharField(_("Accounting Period"), max_length=7, db_index=True)
    voucher_number = models.CharField(_("Voucher Number"), max_length=40, unique=True)

    fare_amount = money_field(_("Fare"), null=True, blank=True)
    platform_fee = money_field(_("Platform Fee"), null=True, blank=True)
    agent_fee = money_field(_("Agent Fee"), null=True, blank=True)
    tax_amount = money_field(_("Tax"), null=True, blank=True)
    other_amount = money_field(_("Other Charges"), null=True, blank=True)

    remarks = models.TextField(_("Remarks"), blank=True)

    verification_status = models.CharField(
        _("Verification"), max_length=10, choices=VerificationStatus.choices,
        default=VerificationStatus.PENDING, db_index=True
    )
    verified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, verbose_name=_("Verified By"), on_delete=models.SET_NULL,
        null=True, blank=True, related_name='payments_verified'
    )
    verified_at = models.DateTimeField(_("Verified At"), null=True, blank=True)

    class Meta:
        verbose_name = _("Payment")
        verbose_name_plural = _("Payments")
        ordering = ['-payment_date', '-created_at']
        indexes = [
            models.Index(fields=['customer', 'financial_year', 'status']),
        ]

    @property
    def is_refund(self) -> bool:
        return self.refund_of_id is not None

    @property
    def breakdown(self) -> dict:
        return {name: getattr(self, name) for name in BREAKDOWN_FIELDS}

    def allocated_amount(self) -> Decimal:
        """Sum of non-refund allocations, the figure bounded by the payment amount."""
        total = self.allocations.exclude(allocation_type=AllocationType.REFUND).aggregate(s=Sum('amount'))['s']
        return total or ZERO

    def net_allocated_amount(self) -> Decimal:
        """Allocations net of refund reversals."""
        return self.allocations.aggregate(s=Sum('amount'))['s'] or ZERO

    def unallocated_amount(self) -> Decimal:
        return max(ZERO, self.amount - self.allocated_amount())

    def clean(self):
        super().clean()
        errors = {}

        if self.amount is not None:
            if self.refund_of_id is None and self.amount <= ZERO:
                errors['amount'] = _("Payment amount must be greater than zero.")
            elif self.refund_of_id is not None and self.amount >= ZERO:
                errors['amount'] = _("A refund record must carry a negative amount.")

            if self.refund_of_id is None:
                try:
                    validate_breakdown_total(self.amount, [getattr(self, name) for name in BREAKDOWN_FIELDS])
                except ValidationError as exc:
                    errors['fare_amount'] = exc.messages

        for name in BREAKDOWN_FIELDS:
            value = getattr(self, name)
            if value is not None and value < ZERO:
                errors[name] = _("Breakdown components cannot be negative.")

        if errors:
            raise ValidationError(errors)


def live_payment_filter() -> Q:
    """Receipts that still count towards a customer's balance."""
    return Q(status__in=[PaymentStatus.RECEIVED, PaymentStatus.ADJUSTED], refund_of__isnull=True)
