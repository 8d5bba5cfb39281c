import logging

from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from simple_history.admin import SimpleHistoryAdmin

from ..models import (
    Booking, BookingAccount, Customer, CustomerAdvance, LedgerEntry, Payment, PaymentAllocation, TravelRecord,
    VoucherSequence, YearEndClosing
)
from .admin_base import DeletionStatusListFilter, LedgerReadOnlyAdmin

logger = logging.getLogger("tvl_payments.admin")


# =============================================================================
# Reference entities (maintained by the booking screens)
# =============================================================================

@admin.register(Customer)
class CustomerAdmin(SimpleHistoryAdmin):
    list_display = ('name', 'email', 'phone', 'is_active')
    list_filter = ('is_active',)
    search_fields = ('name', 'email', 'phone')


class TravelRecordInline(admin.TabularInline):
    model = TravelRecord
    extra = 0
    fields = ('pnr_number', 'travel_date', 'total_amount', 'paid_amount', 'pending_amount', 'payment_status', 'is_closed')
    readonly_fields = ('paid_amount', 'pending_amount', 'payment_status', 'is_closed')


@admin.register(Booking)
class BookingAdmin(SimpleHistoryAdmin):
    list_display = ('booking_number', 'customer', 'booking_date', 'total_amount', 'paid_amount', 'pending_amount', 'status')
    list_filter = ('status',)
    search_fields = ('booking_number', 'customer__name')
    readonly_fields = ('paid_amount', 'pending_amount')
    inlines = [TravelRecordInline]


@admin.register(TravelRecord)
class TravelRecordAdmin(SimpleHistoryAdmin):
    list_display = (
        'pnr_number', 'booking', 'travel_date', 'total_amount', 'paid_amount', 'pending_amount',
        'payment_status', 'is_closed', 'financial_year'
    )
    list_filter = ('payment_status', 'is_closed', 'financial_year')
    search_fields = ('pnr_number', 'booking__booking_number', 'booking__customer__name')
    readonly_fields = ('paid_amount', 'pending_amount', 'payment_status', 'is_closed')

    def save_model(self, request, obj, form, change):
        # A changed total re-derives pending and status from the current paid amount.
        obj.apply_paid_amount(obj.paid_amount)
        super().save_model(request, obj, form, change)


# =============================================================================
# Ledger rows (read-only)
# =============================================================================

@admin.register(BookingAccount)
class BookingAccountAdmin(LedgerReadOnlyAdmin):
    list_display = ('booking', 'total_amount', 'received_amount', 'pending_amount', 'status', 'due_date')
    list_filter = ('status',)
    search_fields = ('booking__booking_number',)


class PaymentAllocationInline(admin.TabularInline):
    model = PaymentAllocation
    extra = 0
    can_delete = False
    fields = ('travel_record', 'amount', 'allocation_type', 'remarks', 'allocated_at', 'allocated_by')
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Payment)
class PaymentAdmin(LedgerReadOnlyAdmin):
    list_display = (
        'voucher_number', 'customer', 'amount', 'mode', 'payment_date', 'status',
        'verification_status', 'financial_year', 'is_refund_display'
    )
    list_filter = (DeletionStatusListFilter, 'status', 'mode', 'verification_status', 'financial_year')
    search_fields = ('voucher_number', 'reference_number', 'customer__name', 'account__booking__booking_number')
    date_hierarchy = 'payment_date'
    inlines = [PaymentAllocationInline]

    @admin.display(description=_("Refund"), boolean=True)
    def is_refund_display(self, obj: Payment) -> bool:
        return obj.is_refund


@admin.register(PaymentAllocation)
class PaymentAllocationAdmin(LedgerReadOnlyAdmin):
    list_display = ('payment', 'travel_record', 'amount', 'allocation_type', 'allocated_at', 'allocated_by')
    list_filter = ('allocation_type',)
    search_fields = ('payment__voucher_number', 'travel_record__pnr_number')


@admin.register(LedgerEntry)
class LedgerEntryAdmin(LedgerReadOnlyAdmin):
    list_display = ('entry_reference', 'entry_type', 'amount', 'financial_year', 'payment', 'travel_record', 'created_at')
    list_filter = ('entry_type', 'financial_year')
    search_fields = ('entry_reference', 'remarks', 'payment__voucher_number', 'travel_record__pnr_number')


@admin.register(VoucherSequence)
class VoucherSequenceAdmin(LedgerReadOnlyAdmin):
    list_display = ('voucher_type', 'financial_year', 'prefix', 'padding_digits', 'last_number')
    list_filter = ('voucher_type', 'financial_year')


@admin.register(CustomerAdvance)
class CustomerAdvanceAdmin(LedgerReadOnlyAdmin):
    list_display = ('customer', 'financial_year', 'advance_amount', 'last_recalculated_at')
    list_filter = ('financial_year',)
    search_fields = ('customer__name',)


@admin.register(YearEndClosing)
class YearEndClosingAdmin(LedgerReadOnlyAdmin):
    list_display = (
        'financial_year', 'closing_date', 'status', 'total_pending_receivables', 'total_advance_balance',
        'total_pending_pnrs', 'closed_by'
    )
    list_filter = ('status',)
