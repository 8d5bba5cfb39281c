"""
Root URL configuration.

    /admin/            Django admin (ledger browsing and history)
    /api/ledger/       Payments, allocations, refunds, advances and reports
    /api/schema/       OpenAPI schema (drf-spectacular)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/ledger/", include("tvl_payments.urls", namespace="tvl_payments_api")),
    path("api/schema/", SpectacularAPIView.as_view(), name="schema"),
    path("api/docs/", SpectacularSwaggerView.as_view(url_name="schema"), name="swagger-ui"),
]
