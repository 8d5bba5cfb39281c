# tvl_payments/views/base.py

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters
from rest_framework.pagination import PageNumberPagination

from tvl_core.mixins import ActorContextMixin, EnvelopeResponseMixin

from ..permissions import IsAccountsStaff


# --- Standard Pagination ---
class StandardResultsSetPagination(PageNumberPagination):
    page_size = 25
    page_size_query_param = 'page_size'
    max_page_size = 1000


class LedgerViewSetMixin(EnvelopeResponseMixin, ActorContextMixin):
    """Shared envelope, permission, pagination and filter backends for the ledger API."""
    permission_classes = [IsAccountsStaff]
    pagination_class = StandardResultsSetPagination
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
