import logging
from typing import Any, Dict, List, Optional, Tuple

from django.contrib import admin
from django.db.models.query import QuerySet
from django.http import HttpRequest
from django.utils.translation import gettext_lazy as _
from simple_history.admin import SimpleHistoryAdmin

logger = logging.getLogger("tvl_payments.admin_base")


# --- Custom List Filter for Soft Deletion Status ---
class DeletionStatusListFilter(admin.SimpleListFilter):
    """Active / deleted / all switch for soft-deletable models (safedelete's `deleted` timestamp)."""
    title = _('deletion status')
    parameter_name = 'deletion_status_filter'

    def lookups(self, request: HttpRequest, model_admin: admin.ModelAdmin) -> List[Tuple[Optional[str], str]]:
        return [
            ('deleted', _('Deleted')),
            ('all', _('All (including deleted)')),
        ]

    def choices(self, changelist) -> List[Dict[str, Any]]:
        yield {
            'selected': self.value() is None,
            'query_string': changelist.get_query_string(remove=[self.parameter_name]),
            'display': _('Active'),
        }
        for lookup, title in self.lookup_choices:
            yield {
                'selected': self.value() == str(lookup),
                'query_string': changelist.get_query_string({self.parameter_name: lookup}),
                'display': title,
            }

    def queryset(self, request: HttpRequest, queryset: QuerySet) -> QuerySet:
        if self.value() == 'deleted':
            return queryset.filter(deleted__isnull=False)
        if self.value() == 'all':
            return queryset
        return queryset.filter(deleted__isnull=True)


class LedgerReadOnlyAdmin(SimpleHistoryAdmin):
    """
    Base admin for ledger rows. Money moves only through the services, so
    these admins browse and show history but never add, change or delete.
    """
    list_per_page = 50
    readonly_fields = ('created_at', 'updated_at', 'created_by', 'updated_by')

    def get_queryset(self, request: HttpRequest) -> QuerySet:
        # The filter decides whether soft-deleted rows are shown.
        manager = getattr(self.model, 'all_objects', None) or self.model._default_manager
        return manager.all()

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False

    def has_change_permission(self, request: HttpRequest, obj=None) -> bool:
        # Viewing stays possible through has_view_permission.
        return False

    def has_delete_permission(self, request: HttpRequest, obj=None) -> bool:
        return False
