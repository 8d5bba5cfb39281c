# tvl_core/mixins.py

import logging
from typing import Any

from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class EnvelopeResponseMixin:
    """
    Wraps successful API responses as {"success": true, "data": ...}.
    Error responses are already shaped by tvl_core.exceptions.ledger_exception_handler.
    """

    def finalize_response(self, request, response, *args, **kwargs):
        if (
            isinstance(response, Response)
            and response.status_code < status.HTTP_400_BAD_REQUEST
            and not (isinstance(response.data, dict) and 'success' in response.data)
        ):
            response.data = {'success': True, 'data': response.data}
        return super().finalize_response(request, response, *args, **kwargs)


class ActorContextMixin:
    """
    Makes the authenticated user available to serializers as `actor`.
    Service functions always receive the actor explicitly; serializers only
    use it for display defaults.
    """

    def get_serializer_context(self) -> dict:
        context = super().get_serializer_context()
        context['actor'] = getattr(self.request, 'user', None)
        return context

    @property
    def actor(self) -> Any:
        return self.request.user
