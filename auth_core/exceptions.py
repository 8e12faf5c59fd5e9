import logging
from django.http import Http404
from rest_framework import exceptions
from rest_framework.response import Response
from rest_framework.views import exception_handler
from billing.exceptions import BillingError
from .responses import first_error

logger = logging.getLogger(__name__)

DEFAULT_CODES = {
    exceptions.NotAuthenticated: 'AUTH_REQUIRED',
    exceptions.AuthenticationFailed: 'AUTH_REQUIRED',
    exceptions.ValidationError: 'VALIDATION_ERROR',
    exceptions.NotFound: 'NOT_FOUND',
    Http404: 'NOT_FOUND',
    exceptions.MethodNotAllowed: 'METHOD_NOT_ALLOWED',
    exceptions.Throttled: 'RATE_LIMITED',
    exceptions.ParseError: 'INVALID_REQUEST',
}


def _code_for(exc):
    for exc_class, code in DEFAULT_CODES.items():
        if isinstance(exc, exc_class):
            return code
    if isinstance(exc, exceptions.PermissionDenied):
        code = exc.get_codes()
        if isinstance(code, str) and code != 'permission_denied':
            return code
        return 'FORBIDDEN'
    return 'ERROR'


def api_exception_handler(exc, context):
    """
    Render every API error as `{"success": false, "error": ..., "code": ...}`.
    Billing errors carry their own status and details.
    """
    if isinstance(exc, BillingError):
        logger.info('Billing error %s: %s', exc.code, exc.message)
        return Response(exc.as_payload(), status=exc.status_code)

    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, exceptions.APIException):
        message = first_error(exc.detail)
    else:
        message = first_error(response.data)

    response.data = {'success': False, 'error': message, 'code': _code_for(exc)}
    return response
