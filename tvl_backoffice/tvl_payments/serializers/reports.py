# tvl_payments/serializers/reports.py

from django.utils.translation import gettext_lazy as _
from rest_framework import serializers

from tvl_core.validators import validate_financial_year_label

from ..models import LedgerEntry, YearEndClosing

AMOUNT_KWARGS = {'max_digits': 20, 'decimal_places': 2}


# =============================================================================
# Customer Advance
# =============================================================================

class CustomerAdvanceSerializer(serializers.Serializer):
    customer_id = serializers.UUIDField()
    customer_name = serializers.CharField()
    financial_year = serializers.CharField()
    advance_amount = serializers.DecimalField(**AMOUNT_KWARGS)
    cached_amount = serializers.DecimalField(allow_null=True, **AMOUNT_KWARGS)
    last_recalculated_at = serializers.DateTimeField(allow_null=True)


# =============================================================================
# Outstanding Receivables
# =============================================================================

class OutstandingLineSerializer(serializers.Serializer):
    travel_record_pk = serializers.UUIDField()
    pnr_number = serializers.CharField()
    booking_number = serializers.CharField()
    customer_pk = serializers.UUIDField()
    customer_name = serializers.CharField()
    travel_date = serializers.DateField()
    financial_year = serializers.CharField()
    total_amount = serializers.DecimalField(**AMOUNT_KWARGS)
    paid_amount = serializers.DecimalField(**AMOUNT_KWARGS)
    pending_amount = serializers.DecimalField(**AMOUNT_KWARGS)
    payment_status = serializers.CharField()


class OutstandingReportSerializer(serializers.Serializer):
    customer_pk = serializers.UUIDField(allow_null=True)
    financial_year = serializers.CharField(allow_null=True)
    lines = OutstandingLineSerializer(many=True)
    pnr_count = serializers.IntegerField()
    total_amount = serializers.DecimalField(**AMOUNT_KWARGS)
    total_paid = serializers.DecimalField(**AMOUNT_KWARGS)
    total_pending = serializers.DecimalField(**AMOUNT_KWARGS)


# =============================================================================
# Ledger Entries (read-only audit listing)
# =============================================================================

class LedgerEntrySerializer(serializers.ModelSerializer):
    entry_type_display = serializers.CharField(source='get_entry_type_display', read_only=True)

    class Meta:
        model = LedgerEntry
        fields = [
            'id', 'entry_type', 'entry_type_display', 'entry_reference', 'amount',
            'opening_balance', 'closing_balance', 'remarks', 'financial_year',
            'user', 'payment', 'travel_record', 'account', 'allocation', 'created_at',
        ]
        read_only_fields = fields


# =============================================================================
# Year-End Closing
# =============================================================================

class YearEndClosingSerializer(serializers.ModelSerializer):
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    closed_by_email = serializers.EmailField(source='closed_by.email', read_only=True)

    class Meta:
        model = YearEndClosing
        fields = [
            'id', 'financial_year', 'closing_date', 'total_pending_receivables', 'total_advance_balance',
            'total_customers', 'total_pending_pnrs', 'status', 'status_display', 'remarks',
            'closed_by', 'closed_by_email', 'created_at',
        ]
        read_only_fields = fields


class YearEndClosingRequestSerializer(serializers.Serializer):
    financial_year = serializers.CharField(
        max_length=7, validators=[validate_financial_year_label],
        help_text=_("Financial year to close, e.g. '2024-25'.")
    )
    closing_date = serializers.DateField(required=False, allow_null=True)
    remarks = serializers.CharField(required=False, allow_blank=True, default='')
