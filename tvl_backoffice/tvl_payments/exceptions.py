"""
Exceptions raised by the payment and allocation ledger services.

Every mutating service either completes fully or raises one of these with
nothing persisted. Only ConcurrencyConflictError is safe to retry verbatim.
"""

from django.utils.translation import gettext_lazy as _
from rest_framework import status

from tvl_core.exceptions import ServiceError


class LedgerError(ServiceError):
    """
    Base exception for the ledger engine. Allows catching all ledger-specific
    failures easily.
    """
    default_message = _("An error occurred in the payment ledger.")
    code = 'ledger_error'


class RecordNotFoundError(LedgerError):
    """Payment, PNR, booking, account or customer does not exist."""
    default_message = _("The requested record does not exist.")
    code = 'not_found'
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, model_name, lookup=None, message=None):
        self.model_name = str(model_name)
        self.lookup = lookup
        if not message:
            message = _("%(model)s '%(lookup)s' not found.") % {'model': self.model_name, 'lookup': lookup}
        super().__init__(message=message)


class InvalidAmountError(LedgerError):
    """Amount is zero or negative, not a finite number, or the breakdown does not add up."""
    default_message = _("Invalid amount.")
    code = 'invalid_amount'


class OverAllocationError(LedgerError):
    """Allocation would exceed the PNR's pending amount or the payment's total."""
    default_message = _("Allocation exceeds the available amount.")
    code = 'over_allocation'
    status_code = status.HTTP_409_CONFLICT


class InvalidPaymentStatusError(LedgerError):
    """
    Raised when an operation is attempted on a payment that is not in an
    appropriate status for that operation.
    """
    default_message = _("Operation invalid for the current payment status.")
    code = 'invalid_status'
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current_status, expected_statuses=None, message=None):
        self.current_status = current_status
        self.expected_statuses = list(expected_statuses or [])
        if not message:
            if self.expected_statuses:
                message = _("Operation invalid for status '%(current)s'. Expected one of: %(expected)s.") % {
                    'current': current_status,
                    'expected': ', '.join(str(s) for s in self.expected_statuses),
                }
            else:
                message = _("Operation invalid for status '%(current)s'.") % {'current': current_status}
        super().__init__(message=message)


class AlreadyRefundedError(InvalidPaymentStatusError):
    default_message = _("The payment has already been refunded.")
    code = 'already_refunded'

    def __init__(self, voucher_number=None, message=None):
        message = message or _("Payment %(voucher)s has already been refunded.") % {'voucher': voucher_number}
        super().__init__('REFUNDED', message=message)


class AlreadyDeletedError(InvalidPaymentStatusError):
    default_message = _("The payment has been deleted.")
    code = 'already_deleted'

    def __init__(self, voucher_number=None, message=None):
        message = message or _("Payment %(voucher)s has been deleted.") % {'voucher': voucher_number}
        super().__init__('DELETED', message=message)


class RecordClosedError(LedgerError):
    """Raised for PNRs (or financial years) locked by year-end closing."""
    default_message = _("The record is closed for the financial year.")
    code = 'closed'
    status_code = status.HTTP_409_CONFLICT


class ConcurrencyConflictError(LedgerError):
    """
    The transaction could not be serialized against a concurrent writer
    (lock timeout, deadlock, serialization failure). Nothing was persisted and
    the caller may retry the whole operation.
    """
    default_message = _("The record was being changed by another request. Please retry.")
    code = 'concurrency_conflict'
    status_code = status.HTTP_409_CONFLICT


class PersistenceError(LedgerError):
    """Underlying store failure; fatal to the operation."""
    default_message = _("The ledger could not be updated due to a database error.")
    code = 'persistence_failure'
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
