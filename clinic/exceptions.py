import logging

from rest_framework import status
from rest_framework.views import exception_handler as drf_exception_handler
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """A remote store operation failed (network, HTTP or database error)."""
    code = 'store_error'
    status_code = status.HTTP_502_BAD_GATEWAY


class RecordNotFound(StoreError):
    code = 'not_found'
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, kind: str, record_id):
        super().__init__(f'{kind} {record_id} not found')
        self.kind = kind
        self.record_id = record_id


class SequenceUnavailable(StoreError):
    """The atomic counter increment did not commit."""
    code = 'sequence_unavailable'
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class MissingField(ValueError):
    """A required field was empty; raised before anything is written."""

    def __init__(self, field_name: str):
        super().__init__(f'{field_name} is required')
        self.field_name = field_name


def api_exception_handler(exc, context):
    if isinstance(exc, StoreError):
        if exc.status_code >= 500:
            logger.warning('store failure in %s: %s', context.get('view'), exc)
        return Response({'ok': False, 'error': {'code': exc.code, 'message': str(exc)}}, status=exc.status_code)
    if isinstance(exc, MissingField):
        return Response({'ok': False, 'error': {'code': 'validation_error', 'message': {exc.field_name: [str(exc)]}}}, status=400)
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.exception('unhandled error', exc_info=exc)
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)
    # normalize response
    detail = None
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = str(resp.data) if not isinstance(resp.data, list) else resp.data
    return Response({'ok': False, 'error': {'code': 'api_error', 'message': detail}}, status=resp.status_code)
