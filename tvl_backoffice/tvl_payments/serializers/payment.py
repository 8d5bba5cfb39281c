# tvl_payments/serializers/payment.py

import logging
from decimal import Decimal

from django.utils.translation import gettext_lazy as _
from rest_framework import serializers

from tvl_core.enums import PaymentMode, PaymentStatus, VerificationAction

from ..models import BREAKDOWN_FIELDS, Payment, PaymentAllocation
from ..services import allocation_service

logger = logging.getLogger(__name__)

AMOUNT_KWARGS = {'max_digits': 20, 'decimal_places': 2}


# =============================================================================
# Read Serializers
# =============================================================================

class PaymentAllocationReadSerializer(serializers.ModelSerializer):
    pnr_number = serializers.CharField(source='travel_record.pnr_number', read_only=True)
    allocation_type_display = serializers.CharField(source='get_allocation_type_display', read_only=True)
    allocated_by_email = serializers.EmailField(source='allocated_by.email', read_only=True)

    class Meta:
        model = PaymentAllocation
        fields = [
            'id', 'payment', 'travel_record', 'pnr_number', 'amount', 'allocation_type',
            'allocation_type_display', 'remarks', 'allocated_at', 'allocated_by', 'allocated_by_email',
        ]
        read_only_fields = fields


class PaymentReadSerializer(serializers.ModelSerializer):
    booking_number = serializers.CharField(source='account.booking.booking_number', read_only=True)
    customer_name = serializers.CharField(source='customer.name', read_only=True)
    pnr_number = serializers.CharField(source='travel_record.pnr_number', read_only=True, default=None)
    mode_display = serializers.CharField(source='get_mode_display', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    verification_status_display = serializers.CharField(source='get_verification_status_display', read_only=True)
    allocated_amount = serializers.SerializerMethodField()
    unallocated_amount = serializers.SerializerMethodField()

    class Meta:
        model = Payment
        fields = [
            'id', 'voucher_number', 'account', 'booking_number', 'customer', 'customer_name',
            'travel_record', 'pnr_number', 'refund_of', 'amount', 'mode', 'mode_display',
            'reference_number', 'payment_date', 'received_date', 'received_by', 'status', 'status_display',
            'financial_year', 'accounting_period', *BREAKDOWN_FIELDS, 'remarks',
            'verification_status', 'verification_status_display', 'verified_by', 'verified_at',
            'allocated_amount', 'unallocated_amount', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_allocated_amount(self, obj: Payment) -> Decimal:
        return obj.allocated_amount()

    def get_unallocated_amount(self, obj: Payment) -> Decimal:
        if obj.is_refund or obj.status in (PaymentStatus.REFUNDED, PaymentStatus.DELETED):
            return Decimal('0.00')
        return obj.unallocated_amount()


class AllocationSummarySerializer(serializers.Serializer):
    amount = serializers.DecimalField(read_only=True, **AMOUNT_KWARGS)
    allocated_amount = serializers.DecimalField(read_only=True, **AMOUNT_KWARGS)
    refunded_allocations = serializers.DecimalField(read_only=True, **AMOUNT_KWARGS)
    unallocated_amount = serializers.DecimalField(read_only=True, **AMOUNT_KWARGS)


# =============================================================================
# Input Serializers (validated data is handed to the services)
# =============================================================================

class BreakdownSerializer(serializers.Serializer):
    fare_amount = serializers.DecimalField(required=False, allow_null=True, min_value=Decimal('0'), **AMOUNT_KWARGS)
    platform_fee = serializers.DecimalField(required=False, allow_null=True, min_value=Decimal('0'), **AMOUNT_KWARGS)
    agent_fee = serializers.DecimalField(required=False, allow_null=True, min_value=Decimal('0'), **AMOUNT_KWARGS)
    tax_amount = serializers.DecimalField(required=False, allow_null=True, min_value=Decimal('0'), **AMOUNT_KWARGS)
    other_amount = serializers.DecimalField(required=False, allow_null=True, min_value=Decimal('0'), **AMOUNT_KWARGS)


class PaymentCreateSerializer(serializers.Serializer):
    booking_id = serializers.UUIDField(required=False, allow_null=True)
    account_id = serializers.UUIDField(required=False, allow_null=True)
    amount = serializers.DecimalField(**AMOUNT_KWARGS)
    mode = serializers.ChoiceField(choices=PaymentMode.choices)
    reference_number = serializers.CharField(required=False, allow_blank=True, max_length=100, default='')
    payment_date = serializers.DateField(required=False, allow_null=True)
    breakdown = BreakdownSerializer(required=False, allow_null=True)
    remarks = serializers.CharField(required=False, allow_blank=True, default='')
    travel_record_id = serializers.UUIDField(
        required=False, allow_null=True, help_text=_("PNR to allocate the payment against on receipt.")
    )
    auto_allocate = serializers.BooleanField(
        required=False, default=False,
        help_text=_("Spread what is left over the customer's oldest pending PNRs.")
    )

    def validate(self, attrs):
        if not attrs.get('booking_id') and not attrs.get('account_id'):
            raise serializers.ValidationError(_("Either booking_id or account_id is required."))
        return attrs


class PaymentUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=PaymentStatus.choices, required=False)
    received_date = serializers.DateField(required=False)
    remarks = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError(_("Provide at least one of status, received_date or remarks."))
        return attrs


class AllocationLineSerializer(serializers.Serializer):
    travel_record_id = serializers.UUIDField(required=False, allow_null=True)
    pnr_number = serializers.CharField(required=False, allow_blank=True, max_length=20)
    amount = serializers.DecimalField(**AMOUNT_KWARGS)
    remarks = serializers.CharField(required=False, allow_blank=True, max_length=255, default='')

    def validate(self, attrs):
        if not attrs.get('travel_record_id') and not attrs.get('pnr_number'):
            raise serializers.ValidationError(_("Each line needs travel_record_id or pnr_number."))
        return attrs


class AllocateSerializer(serializers.Serializer):
    lines = AllocationLineSerializer(many=True, allow_empty=False)

    def to_lines(self):
        return allocation_service.parse_allocation_lines(self.validated_data['lines'])


class RefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(**AMOUNT_KWARGS)
    remarks = serializers.CharField(required=False, allow_blank=True, default='')
    travel_record_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    pnr_number = serializers.CharField(required=False, allow_blank=True, default='')


class VerifySerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=VerificationAction.choices)
    remarks = serializers.CharField(required=False, allow_blank=True, default='')


class DeletePaymentSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')
