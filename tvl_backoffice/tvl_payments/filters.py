# tvl_payments/filters.py

import django_filters

from tvl_core.enums import LedgerEntryType, PaymentMode, PaymentStatus, TravelPaymentStatus, VerificationStatus

from .models import LedgerEntry, Payment, TravelRecord


class PaymentFilterSet(django_filters.FilterSet):
    """
    FilterSet for the Payment model.
    Allows filtering by customer, booking, status and date ranges.
    """
    # Date range filter
    date_from = django_filters.DateFilter(field_name='payment_date', lookup_expr='gte', label='Payment Date From (YYYY-MM-DD)')
    date_to = django_filters.DateFilter(field_name='payment_date', lookup_expr='lte', label='Payment Date To (YYYY-MM-DD)')

    # Choice filters
    status = django_filters.ChoiceFilter(choices=PaymentStatus.choices)
    mode = django_filters.ChoiceFilter(choices=PaymentMode.choices)
    verification_status = django_filters.ChoiceFilter(choices=VerificationStatus.choices)

    customer = django_filters.UUIDFilter(field_name='customer_id')
    booking = django_filters.UUIDFilter(field_name='account__booking_id')
    travel_record = django_filters.UUIDFilter(field_name='travel_record_id')
    is_refund = django_filters.BooleanFilter(field_name='refund_of', lookup_expr='isnull', exclude=True, label='Refund Records Only')

    voucher_number_contains = django_filters.CharFilter(field_name='voucher_number', lookup_expr='icontains', label='Voucher Number (Contains)')
    reference_contains = django_filters.CharFilter(field_name='reference_number', lookup_expr='icontains', label='Reference (Contains)')

    class Meta:
        model = Payment
        fields = [
            'status',
            'mode',
            'verification_status',
            'financial_year',
            'accounting_period',
        ]


class TravelRecordFilterSet(django_filters.FilterSet):
    travel_date_from = django_filters.DateFilter(field_name='travel_date', lookup_expr='gte')
    travel_date_to = django_filters.DateFilter(field_name='travel_date', lookup_expr='lte')
    payment_status = django_filters.ChoiceFilter(choices=TravelPaymentStatus.choices)
    customer = django_filters.UUIDFilter(field_name='booking__customer_id')
    booking = django_filters.UUIDFilter(field_name='booking_id')

    class Meta:
        model = TravelRecord
        fields = ['payment_status', 'is_closed', 'financial_year']


class LedgerEntryFilterSet(django_filters.FilterSet):
    entry_type = django_filters.ChoiceFilter(choices=LedgerEntryType.choices)
    payment = django_filters.UUIDFilter(field_name='payment_id')
    travel_record = django_filters.UUIDFilter(field_name='travel_record_id')
    account = django_filters.UUIDFilter(field_name='account_id')
    account_scope_only = django_filters.BooleanFilter(field_name='travel_record', lookup_expr='isnull', label='Account-Level Entries Only')

    class Meta:
        model = LedgerEntry
        fields = ['entry_type', 'financial_year', 'entry_reference']
