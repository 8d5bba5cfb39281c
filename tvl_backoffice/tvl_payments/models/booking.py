# tvl_payments/models/booking.py

import logging
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _
from django.core.exceptions import ValidationError

from tvl_core.enums import AccountStatus, BookingStatus, TravelPaymentStatus
from tvl_core.utils import financial_year
from tvl_core.validators import validate_financial_year_label

from .base import AuditedModel, ZERO, money_field

logger = logging.getLogger(__name__)


class Customer(AuditedModel):
    name = models.CharField(_("Name"), max_length=200)
    email = models.EmailField(_("Email"), blank=True)
    phone = models.CharField(_("Phone"), max_length=30, blank=True)
    is_active = models.BooleanField(_("Active"), default=True)

    class Meta:
        verbose_name = _("Customer")
        verbose_name_plural = _("Customers")
        ordering = ['name']


class Booking(AuditedModel):
    """
    A customer's booking. Created and edited by the booking screens; the ledger
    engine only reads its total and writes paid/pending/status when money moves.
    """
    booking_number = models.CharField(_("Booking Number"), max_length=40, unique=True)
    customer = models.ForeignKey(
        Customer, verbose_name=_("Customer"), on_delete=models.PROTECT, related_name='bookings'
    )
    booking_date = models.DateField(_("Booking Date"))
    total_amount = money_field(
        _("Total Amount"), null=True, blank=True, validators=[MinValueValidator(ZERO)],
        help_text=_("Leave blank while the fare is not yet known.")
    )
    paid_amount = money_field(_("Paid Amount"), default=ZERO)
    pending_amount = money_field(_("Pending Amount"), null=True, blank=True)
    status = models.CharField(
        _("Status"), max_length=20, choices=BookingStatus.choices, default=BookingStatus.OPEN, db_index=True
    )

    class Meta:
        verbose_name = _("Booking")
        verbose_name_plural = _("Bookings")
        ordering = ['-booking_date', 'booking_number']


class BookingAccount(AuditedModel):
    """
    Funding envelope for one booking. received_amount is the sum of payment
    amounts, independent of how those payments were allocated.
    """
    booking = models.OneToOneField(
        Booking, verbose_name=_("Booking"), on_delete=models.PROTECT, related_name='account'
    )
    total_amount = money_field(_("Total Amount Owed"), default=ZERO, validators=[MinValueValidator(ZERO)])
    received_amount = money_field(_("Amount Received"), default=ZERO)
    pending_amount = money_field(_("Pending Amount"), default=ZERO)
    due_date = models.DateField(_("Due Date"), null=True, blank=True)
    status = models.CharField(
        _("Status"), max_length=20, choices=AccountStatus.choices, default=AccountStatus.OPEN, db_index=True
    )

    class Meta:
        verbose_name = _("Booking Account")
        verbose_name_plural = _("Booking Accounts")
        ordering = ['-created_at']

    def __str__(self):
        return f"Account for {self.booking.booking_number}"

    def _set_derived_fields(self):
        self.pending_amount = max(ZERO, (self.total_amount or ZERO) - (self.received_amount or ZERO))


class TravelRecord(AuditedModel):
    """
    A PNR: the thing being paid for. paid_amount, pending_amount and
    payment_status are a cache of the allocation rows against it and are only
    written through allocation_service.refresh_travel_record().
    """
    pnr_number = models.CharField(_("PNR"), max_length=20, unique=True)
    booking = models.ForeignKey(
        Booking, verbose_name=_("Booking"), on_delete=models.PROTECT, related_name='travel_records'
    )
    travel_date = models.DateField(_("Travel Date"))
    travel_class = models.CharField(_("Class"), max_length=30, blank=True)
    passenger_count = models.PositiveSmallIntegerField(_("Passengers"), default=1)
    total_amount = money_field(_("Total Payable"), validators=[MinValueValidator(ZERO)])
    paid_amount = money_field(_("Paid Amount"), default=ZERO, editable=False)
    pending_amount = money_field(_("Pending Amount"), default=ZERO, editable=False)
    payment_status = models.CharField(
        _("Payment Status"), max_length=10, choices=TravelPaymentStatus.choices,
        default=TravelPaymentStatus.UNPAID, editable=False, db_index=True
    )
    is_closed = models.BooleanField(
        _("Closed"), default=False, db_index=True,
        help_text=_("Set by year-end closing. Closed records accept no further allocations.")
    )
    financial_year = models.CharField(
        _("Financial Year"), max_length=7, blank=True, db_index=True,
        validators=[validate_financial_year_label]
    )

    class Meta:
        verbose_name = _("Travel Record (PNR)")
        verbose_name_plural = _("Travel Records (PNRs)")
        ordering = ['created_at', 'travel_date']
        indexes = [
            models.Index(fields=['payment_status', 'is_closed']),
        ]

    @property
    def customer_id(self):
        return self.booking.customer_id

    @staticmethod
    def derive_payment_status(total_amount: Decimal, paid_amount: Decimal) -> str:
        """UNPAID at zero, PAID once paid reaches the total, PARTIAL in between."""
        if paid_amount <= ZERO:
            return TravelPaymentStatus.UNPAID
        if paid_amount >= total_amount:
            return TravelPaymentStatus.PAID
        return TravelPaymentStatus.PARTIAL

    def apply_paid_amount(self, paid_amount: Decimal) -> None:
        """Sets paid and the two fields derived from it. Does not save."""
        self.paid_amount = paid_amount
        self.pending_amount = max(ZERO, self.total_amount - paid_amount)
        self.payment_status = self.derive_payment_status(self.total_amount, paid_amount)

    def _set_derived_fields(self):
        if not self.financial_year and self.travel_date:
            self.financial_year = financial_year(self.travel_date)
        if self._state.adding:
            self.apply_paid_amount(ZERO)

    def clean(self):
        super().clean()
        if self.total_amount is not None and self.total_amount < ZERO:
            raise ValidationError({'total_amount': _("Total payable cannot be negative.")})
