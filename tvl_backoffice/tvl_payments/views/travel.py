# tvl_payments/views/travel.py

import logging

from drf_spectacular.utils import OpenApiParameter, OpenApiTypes, extend_schema, extend_schema_view
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from tvl_core.utils import get_query_param

from ..filters import TravelRecordFilterSet
from ..models import Customer, TravelRecord
from ..serializers.reports import CustomerAdvanceSerializer
from ..serializers.travel import CustomerSerializer, TravelRecordPaymentLineSerializer, TravelRecordSerializer
from ..services import advance_service, report_service
from .base import LedgerViewSetMixin

logger = logging.getLogger("tvl_payments.views.travel")


@extend_schema_view(
    list=extend_schema(summary="List PNRs"),
    retrieve=extend_schema(summary="Retrieve PNR"),
)
class TravelRecordViewSet(LedgerViewSetMixin, viewsets.ReadOnlyModelViewSet):
    """PNRs with their derived paid / pending / status. Read-only; balances move through payments."""
    queryset = TravelRecord.objects.select_related('booking__customer').all()
    serializer_class = TravelRecordSerializer
    filterset_class = TravelRecordFilterSet
    search_fields = ['pnr_number', 'booking__booking_number', 'booking__customer__name']
    ordering_fields = ['travel_date', 'pending_amount', 'created_at', 'pnr_number']
    ordering = ['created_at', 'travel_date']

    @extend_schema(summary="Payments Applied to PNR", responses={200: TravelRecordPaymentLineSerializer(many=True)})
    @action(detail=True, methods=['get'], url_path='payments')
    def payments(self, request, pk=None):
        lines = report_service.travel_record_payments(pk)
        return Response(TravelRecordPaymentLineSerializer(lines, many=True).data)


@extend_schema_view(
    list=extend_schema(summary="List Customers"),
    retrieve=extend_schema(summary="Retrieve Customer"),
)
class CustomerViewSet(LedgerViewSetMixin, viewsets.ReadOnlyModelViewSet):
    queryset = Customer.objects.all()
    serializer_class = CustomerSerializer
    filterset_fields = ['is_active']
    search_fields = ['name', 'email', 'phone']
    ordering_fields = ['name', 'created_at']
    ordering = ['name']

    @extend_schema(
        summary="Customer Advance Balance",
        parameters=[OpenApiParameter('financial_year', OpenApiTypes.STR, description="e.g. 2024-25; defaults to the current year")],
        responses={200: CustomerAdvanceSerializer},
    )
    @action(detail=True, methods=['get'], url_path='advance')
    def advance(self, request, pk=None):
        data = advance_service.get_customer_advance(pk, get_query_param(request, 'financial_year'))
        return Response(CustomerAdvanceSerializer(data).data)

    @extend_schema(summary="Customer Pending PNRs (FIFO Order)", responses={200: TravelRecordSerializer(many=True)})
    @action(detail=True, methods=['get'], url_path='pending-pnrs')
    def pending_pnrs(self, request, pk=None):
        records = report_service.customer_pending_travel_records(pk)
        return Response(TravelRecordSerializer(records, many=True).data)
