"""
tvl_core/exceptions.py

Base service exception and the DRF exception handler that renders every
API failure in the back office's `{success, message}` envelope.
"""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils.translation import gettext_lazy as _
from rest_framework import status
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """
    Base exception for business-rule failures raised by service layers.
    Carries an HTTP status so the API layer can render it without a lookup table.
    """
    default_message = _("The operation could not be completed.")
    code = 'service_error'
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message=None, code=None):
        self.message = str(message or self.default_message)
        self.code = code or self.code
        super().__init__(self.message)


def _first_message(data) -> str:
    """Pulls a human-readable message out of a DRF error payload."""
    if isinstance(data, dict):
        if 'detail' in data:
            return str(data['detail'])
        for key, value in data.items():
            return f"{key}: {_first_message(value)}"
    if isinstance(data, (list, tuple)) and data:
        return _first_message(data[0])
    return str(data)


def ledger_exception_handler(exc, context):
    """
    REST_FRAMEWORK['EXCEPTION_HANDLER'].

    ServiceError subclasses map straight onto their status code; Django model
    validation errors become 400s; everything DRF already knows about keeps its
    status but is re-shaped into the envelope.
    """
    view_name = context.get('view').__class__.__name__ if context.get('view') else 'UnknownView'

    if isinstance(exc, ServiceError):
        logger.warning(f"[API][{view_name}] {exc.code}: {exc.message}")
        return Response(
            {'success': False, 'message': exc.message, 'code': exc.code},
            status=exc.status_code,
        )

    if isinstance(exc, DjangoValidationError):
        detail = exc.message_dict if hasattr(exc, 'error_dict') else exc.messages
        exc = DRFValidationError(detail=detail)

    response = exception_handler(exc, context)
    if response is None:
        # Unhandled: let Django's 500 handling log it with the traceback.
        return None

    payload = {'success': False, 'message': _first_message(response.data)}
    if isinstance(exc, DRFValidationError):
        payload['errors'] = response.data
    code = getattr(exc, 'default_code', None)
    if code:
        payload['code'] = code
    response.data = payload
    return response
