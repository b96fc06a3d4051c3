import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class Conflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Conflict with the current state of the resource.'
    default_code = 'conflict'


class InvalidCredentials(APIException):
    """401 from endpoints that run without authentication classes.

    DRF downgrades ``AuthenticationFailed`` to 403 when the view has no
    authenticator to supply a ``WWW-Authenticate`` header.
    """
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Invalid credentials'
    default_code = 'invalid_credentials'


class UpstreamError(APIException):
    """The WhatsApp Cloud API refused or could not be reached."""
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'WhatsApp request failed'
    default_code = 'bad_gateway'


def _flatten(detail) -> str:
    """Turn DRF error detail (str, list or dict) into one readable message."""
    if isinstance(detail, dict):
        if 'detail' in detail:
            return _flatten(detail['detail'])
        parts = []
        for field, value in detail.items():
            msg = _flatten(value)
            parts.append(msg if field == 'non_field_errors' else f"{field}: {msg}")
        return '; '.join(parts)
    if isinstance(detail, (list, tuple)):
        return '; '.join(_flatten(d) for d in detail)
    return str(detail)


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        view = context.get('view')
        logger.exception('Unhandled error in %s', view.__class__.__name__ if view else 'view', exc_info=exc)
        return Response({'success': False, 'error': 'Internal server error'}, status=500)
    body = {'success': False, 'error': _flatten(resp.data)}
    if isinstance(resp.data, dict) and 'detail' not in resp.data:
        body['details'] = resp.data
    # keep the original response so WWW-Authenticate / Retry-After headers survive
    resp.data = body
    return resp
