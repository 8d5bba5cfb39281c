# tvl_payments/views/reports.py

import logging

from drf_spectacular.utils import OpenApiParameter, OpenApiTypes, extend_schema, extend_schema_view
from rest_framework import mixins, status, viewsets
from rest_framework.response import Response
from rest_framework.views import APIView

from tvl_core.mixins import EnvelopeResponseMixin
from tvl_core.utils import get_query_param

from ..filters import LedgerEntryFilterSet
from ..models import LedgerEntry, YearEndClosing
from ..permissions import IsAccountsStaff
from ..serializers.reports import (
    LedgerEntrySerializer, OutstandingReportSerializer, YearEndClosingRequestSerializer, YearEndClosingSerializer
)
from ..services import closing_service, report_service
from .base import LedgerViewSetMixin

logger = logging.getLogger("tvl_payments.views.reports")


class OutstandingReceivablesView(EnvelopeResponseMixin, APIView):
    """Open PNRs with money still pending, with totals."""
    permission_classes = [IsAccountsStaff]

    @extend_schema(
        summary="Outstanding Receivables",
        parameters=[
            OpenApiParameter('customer', OpenApiTypes.UUID, description="Customer ID"),
            OpenApiParameter('financial_year', OpenApiTypes.STR, description="e.g. 2024-25"),
        ],
        responses={200: OutstandingReportSerializer},
    )
    def get(self, request, *args, **kwargs):
        report = report_service.outstanding_receivables(
            customer_id=get_query_param(request, 'customer'),
            financial_year=get_query_param(request, 'financial_year'),
        )
        return Response(OutstandingReportSerializer(report).data)


@extend_schema_view(
    list=extend_schema(summary="List Year-End Closings"),
    retrieve=extend_schema(summary="Retrieve Year-End Closing"),
    create=extend_schema(
        summary="Close Financial Year", request=YearEndClosingRequestSerializer,
        responses={201: YearEndClosingSerializer},
    ),
)
class YearEndClosingViewSet(
    LedgerViewSetMixin, mixins.ListModelMixin, mixins.RetrieveModelMixin, mixins.CreateModelMixin,
    viewsets.GenericViewSet
):
    queryset = YearEndClosing.objects.select_related('closed_by').all()
    serializer_class = YearEndClosingSerializer
    filterset_fields = ['financial_year', 'status']
    ordering_fields = ['financial_year', 'closing_date']
    ordering = ['-financial_year']

    def create(self, request, *args, **kwargs):
        serializer = YearEndClosingRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        closing = closing_service.perform_year_end_closing(
            serializer.validated_data['financial_year'],
            self.actor,
            closing_date=serializer.validated_data.get('closing_date'),
            remarks=serializer.validated_data.get('remarks', ''),
        )
        return Response(self.get_serializer(closing).data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    list=extend_schema(summary="List Ledger Entries"),
    retrieve=extend_schema(summary="Retrieve Ledger Entry"),
)
class LedgerEntryViewSet(LedgerViewSetMixin, viewsets.ReadOnlyModelViewSet):
    """Append-only audit listing of every credit and debit."""
    queryset = LedgerEntry.objects.all()
    serializer_class = LedgerEntrySerializer
    filterset_class = LedgerEntryFilterSet
    search_fields = ['entry_reference', 'remarks']
    ordering_fields = ['created_at', 'amount']
    ordering = ['created_at']
