import logging

from rest_framework import permissions

logger = logging.getLogger(__name__)


class IsAccountsStaff(permissions.BasePermission):
    """
    Read access for any authenticated user. Money movements (create, update,
    delete, allocate, refund, verify, year-end closing) are limited to
    superusers and members of the accounts department.
    """
    message = "Only the accounts team can record or change payments."

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        if request.method in permissions.SAFE_METHODS:
            return True

        allowed = bool(user.is_superuser or getattr(user, 'is_accounts_staff', False))
        logger.debug(
            f"[Permission Check] User: {user}, Action: {getattr(view, 'action', None)}, "
            f"Method: {request.method}, Accounts staff?: {allowed}"
        )
        return allowed
