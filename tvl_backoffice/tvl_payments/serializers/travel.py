# tvl_payments/serializers/travel.py

from rest_framework import serializers

from ..models import Customer, TravelRecord

AMOUNT_KWARGS = {'max_digits': 20, 'decimal_places': 2}


class TravelRecordSerializer(serializers.ModelSerializer):
    booking_number = serializers.CharField(source='booking.booking_number', read_only=True)
    customer = serializers.UUIDField(source='booking.customer_id', read_only=True)
    customer_name = serializers.CharField(source='booking.customer.name', read_only=True)
    payment_status_display = serializers.CharField(source='get_payment_status_display', read_only=True)

    class Meta:
        model = TravelRecord
        fields = [
            'id', 'pnr_number', 'booking', 'booking_number', 'customer', 'customer_name',
            'travel_date', 'travel_class', 'passenger_count', 'financial_year',
            'total_amount', 'paid_amount', 'pending_amount', 'payment_status', 'payment_status_display',
            'is_closed', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class TravelRecordPaymentLineSerializer(serializers.Serializer):
    payment_pk = serializers.UUIDField()
    voucher_number = serializers.CharField()
    payment_date = serializers.DateField()
    mode = serializers.CharField()
    status = serializers.CharField()
    allocated_amount = serializers.DecimalField(**AMOUNT_KWARGS)
    reversed_amount = serializers.DecimalField(**AMOUNT_KWARGS)
    net_amount = serializers.DecimalField(**AMOUNT_KWARGS)


class CustomerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = ['id', 'name', 'email', 'phone', 'is_active', 'created_at']
        read_only_fields = fields
