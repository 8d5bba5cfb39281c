from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    CustomerViewSet, LedgerEntryViewSet, OutstandingReceivablesView, PaymentViewSet, TravelRecordViewSet,
    YearEndClosingViewSet
)

# --- Router Setup ---
router = DefaultRouter()
router.register(r'payments', PaymentViewSet, basename='payment-api')
router.register(r'pnrs', TravelRecordViewSet, basename='pnr-api')
router.register(r'customers', CustomerViewSet, basename='customer-api')
router.register(r'year-end-closings', YearEndClosingViewSet, basename='yearendclosing-api')
router.register(r'ledger-entries', LedgerEntryViewSet, basename='ledgerentry-api')

app_name = 'tvl_payments_api'

# --- URL Patterns ---
urlpatterns = [
    path('', include(router.urls)),
    path('reports/outstanding/', OutstandingReceivablesView.as_view(), name='report-outstanding'),
]
