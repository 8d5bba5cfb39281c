# tvl_payments/views/payment.py

import logging

from drf_spectacular.utils import OpenApiResponse, extend_schema, extend_schema_view
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from tvl_core.enums import PaymentStatus

from ..filters import PaymentFilterSet
from ..models import Payment
from ..serializers.payment import (
    AllocateSerializer, AllocationSummarySerializer, DeletePaymentSerializer, PaymentAllocationReadSerializer,
    PaymentCreateSerializer, PaymentReadSerializer, PaymentUpdateSerializer, RefundSerializer, VerifySerializer
)
from ..services import allocation_service, payment_service, report_service
from .base import LedgerViewSetMixin

logger = logging.getLogger("tvl_payments.views.payment")


# =============================================================================
# Payment ViewSet
# =============================================================================
@extend_schema_view(
    list=extend_schema(summary="List Payments"),
    retrieve=extend_schema(summary="Retrieve Payment"),
    create=extend_schema(
        summary="Record Payment", request=PaymentCreateSerializer, responses={201: PaymentReadSerializer}
    ),
    partial_update=extend_schema(
        summary="Update Payment Status / Received Date / Remarks",
        request=PaymentUpdateSerializer, responses={200: PaymentReadSerializer}
    ),
    destroy=extend_schema(
        summary="Soft-Delete Payment", request=DeletePaymentSerializer, responses={200: PaymentReadSerializer}
    ),
)
class PaymentViewSet(LedgerViewSetMixin, mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Customer payments. Every write goes through payment_service /
    allocation_service so each request is one all-or-nothing ledger operation.
    """
    serializer_class = PaymentReadSerializer
    filterset_class = PaymentFilterSet
    search_fields = ['voucher_number', 'reference_number', 'customer__name', 'account__booking__booking_number']
    ordering_fields = ['payment_date', 'amount', 'voucher_number', 'created_at']
    ordering = ['-payment_date', '-created_at']
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']

    def get_queryset(self):
        """Soft-deleted payments are listed only when asked for by status or include_deleted."""
        include_deleted = (
            self.action != 'list'
            or self.request.query_params.get('status') == PaymentStatus.DELETED
            or self.request.query_params.get('include_deleted', '').lower() in ('1', 'true', 'yes')
        )
        manager = Payment.all_objects if include_deleted else Payment.objects
        return manager.select_related('account__booking', 'customer', 'travel_record')

    def create(self, request, *args, **kwargs):
        serializer = PaymentCreateSerializer(data=request.data, context=self.get_serializer_context())
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        payment = payment_service.create_payment(
            amount=data['amount'],
            mode=data['mode'],
            actor=self.actor,
            booking_id=data.get('booking_id'),
            account_id=data.get('account_id'),
            payment_date=data.get('payment_date'),
            reference_number=data.get('reference_number', ''),
            breakdown=data.get('breakdown'),
            remarks=data.get('remarks', ''),
            travel_record_id=data.get('travel_record_id'),
            auto_allocate=data.get('auto_allocate', False),
        )
        return Response(self.get_serializer(payment).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        serializer = PaymentUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = payment_service.update_payment(kwargs['pk'], self.actor, **serializer.validated_data)
        return Response(self.get_serializer(payment).data)

    def destroy(self, request, *args, **kwargs):
        serializer = DeletePaymentSerializer(data=request.data or {})
        serializer.is_valid(raise_exception=True)
        payment = payment_service.delete_payment(kwargs['pk'], self.actor, serializer.validated_data['reason'])
        return Response(self.get_serializer(payment).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Allocate Payment to PNRs",
        request=AllocateSerializer,
        responses={200: PaymentAllocationReadSerializer(many=True), 409: OpenApiResponse(description="Over-allocation")},
    )
    @action(detail=True, methods=['post'], url_path='allocate')
    def allocate(self, request, pk=None):
        serializer = AllocateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        created = allocation_service.allocate(pk, serializer.to_lines(), self.actor)
        return Response(PaymentAllocationReadSerializer(created, many=True).data)

    @extend_schema(
        summary="Auto-Allocate Payment (FIFO)", request=None,
        responses={200: PaymentAllocationReadSerializer(many=True)},
    )
    @action(detail=True, methods=['post'], url_path='auto-allocate')
    def auto_allocate(self, request, pk=None):
        created = allocation_service.auto_allocate_fifo(pk, self.actor)
        return Response(PaymentAllocationReadSerializer(created, many=True).data)

    @extend_schema(summary="Refund Payment", request=RefundSerializer, responses={201: PaymentReadSerializer})
    @action(detail=True, methods=['post'], url_path='refund')
    def refund(self, request, pk=None):
        serializer = RefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        validated = serializer.validated_data
        refund_record = payment_service.refund_payment(
            pk, validated['amount'], validated['remarks'], self.actor,
            travel_record_id=validated['travel_record_id'], pnr_number=validated['pnr_number'] or None,
        )
        return Response(self.get_serializer(refund_record).data, status=status.HTTP_201_CREATED)

    @extend_schema(summary="Verify or Reject Payment", request=VerifySerializer, responses={200: PaymentReadSerializer})
    @action(detail=True, methods=['post'], url_path='verify')
    def verify(self, request, pk=None):
        serializer = VerifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = payment_service.verify_payment(
            pk, self.actor, serializer.validated_data['action'], serializer.validated_data['remarks']
        )
        return Response(self.get_serializer(payment).data)

    @extend_schema(summary="List Payment Allocations", responses={200: PaymentAllocationReadSerializer(many=True)})
    @action(detail=True, methods=['get'], url_path='allocations')
    def allocations(self, request, pk=None):
        allocations = report_service.payment_allocations(pk)
        payment = payment_service.get_payment(pk)
        return Response({
            'success': True,
            'data': PaymentAllocationReadSerializer(allocations, many=True).data,
            'summary': AllocationSummarySerializer(allocation_service.allocation_summary(payment)).data,
        })
