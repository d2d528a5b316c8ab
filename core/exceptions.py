"""
Domain exceptions and the API exception handler for the order management API.

Services raise these exceptions at the point a rule is broken. They travel
unchanged up to the view layer, where ``api_exception_handler`` (registered as
DRF's ``EXCEPTION_HANDLER``) turns each one into a structured error body:

    {
        "success": false,
        "status": 400,
        "message": "...",
        "error_code": "BUSINESS_RULE_ERROR",
        "validation_errors": [...],   # only for validation failures
        "path": "/api/orders/",
        "method": "POST",
        "timestamp": "..."
    }

Anything the handler does not recognise is logged with its traceback and
answered with a generic message so internal details never reach the client.
"""

import logging
from typing import Any, Iterable, Optional

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from django_ratelimit.exceptions import Ratelimited
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)


ERROR_VALIDATION = 'VALIDATION_ERROR'
ERROR_AUTHENTICATION = 'AUTHENTICATION_ERROR'
ERROR_AUTHORIZATION = 'AUTHORIZATION_ERROR'
ERROR_RESOURCE_NOT_FOUND = 'RESOURCE_NOT_FOUND'
ERROR_BUSINESS_RULE = 'BUSINESS_RULE_ERROR'
ERROR_ORDER_PROCESSING = 'ORDER_PROCESSING_ERROR'
ERROR_RATE_LIMITED = 'RATE_LIMITED'
ERROR_INTERNAL = 'INTERNAL_ERROR'


class OrderSystemError(Exception):
    """Base class for every error the services raise on purpose."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = ERROR_INTERNAL
    default_message = 'Unexpected error.'

    def __init__(self, message: Optional[str] = None, *, error_code: Optional[str] = None):
        self.message = str(message or self.default_message)
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)


class ResourceNotFound(OrderSystemError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = ERROR_RESOURCE_NOT_FOUND
    default_message = 'Resource not found.'

    def __init__(self, resource: str, field: str, value: Any):
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} not found with {field}: {value}")


class ProductNotFound(ResourceNotFound):
    def __init__(self, product_id: Any):
        super().__init__('Product', 'id', product_id)


class BusinessRuleViolation(OrderSystemError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = ERROR_BUSINESS_RULE
    default_message = 'Business rule violated.'


class InsufficientStock(BusinessRuleViolation):
    def __init__(self, product_name: str, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for product: {product_name} "
            f"(available: {available}, requested: {requested})"
        )


class InvalidQuantity(BusinessRuleViolation):
    default_message = 'Invalid quantity.'


class AccessDenied(OrderSystemError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = ERROR_AUTHORIZATION
    default_message = 'Access denied.'


class AuthenticationFailure(OrderSystemError):
    """
    Bad credentials (401) or a registration conflict such as a duplicate
    email (400, pass ``status_code``).
    """

    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = ERROR_AUTHENTICATION
    default_message = 'Invalid credentials.'

    def __init__(self, message: Optional[str] = None, *, status_code: Optional[int] = None):
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class OrderProcessingFailure(OrderSystemError):
    """Unexpected failure while placing an order; the root cause is chained."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = ERROR_ORDER_PROCESSING
    default_message = 'Order could not be processed.'

    def __init__(self, message: Optional[str] = None, *, order_id: Optional[int] = None):
        self.order_id = order_id
        super().__init__(message)


class ValidationFailure(OrderSystemError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = ERROR_VALIDATION
    default_message = 'Validation failed for the submitted data.'

    def __init__(self, message: Optional[str] = None, *, validation_errors: Optional[Iterable[str]] = None):
        self.validation_errors = sorted(set(validation_errors or ()))
        super().__init__(message)


def flatten_validation_errors(detail, prefix: str = '') -> list:
    """
    Turn DRF's nested ``ValidationError.detail`` into ``"field: message"`` strings.
    """
    messages = []
    if isinstance(detail, dict):
        for field, value in detail.items():
            name = field if field != 'non_field_errors' else ''
            nested = f"{prefix}.{name}" if prefix and name else (prefix or name)
            messages.extend(flatten_validation_errors(value, nested))
    elif isinstance(detail, (list, tuple)):
        for index, value in enumerate(detail):
            if isinstance(value, (dict, list)):
                messages.extend(flatten_validation_errors(value, f"{prefix}[{index}]"))
            else:
                messages.extend(flatten_validation_errors(value, prefix))
    else:
        messages.append(f"{prefix}: {detail}" if prefix else str(detail))
    return messages


def _error_body(request, status_code: int, message: str, error_code: Optional[str] = None,
                validation_errors: Optional[list] = None) -> dict:
    body = {
        'success': False,
        'status': status_code,
        'message': str(message),
        'timestamp': timezone.now().isoformat(),
    }
    if error_code:
        body['error_code'] = error_code
    if validation_errors:
        body['validation_errors'] = validation_errors
    if request is not None:
        body['path'] = request.path
        body['method'] = request.method
    return body


def api_exception_handler(exc, context):
    """
    DRF exception handler mapping every failure to a structured error response.
    """
    request = context.get('request') if context else None

    if isinstance(exc, OrderProcessingFailure):
        logger.error(f"Order processing failed (order id: {exc.order_id}): {exc.message}", exc_info=exc)
        body = _error_body(request, exc.status_code, exc.message, exc.error_code)
        return Response(body, status=exc.status_code)

    if isinstance(exc, ValidationFailure):
        logger.warning(f"Validation failure: {exc.message} {exc.validation_errors}")
        body = _error_body(request, exc.status_code, exc.message, exc.error_code, exc.validation_errors)
        return Response(body, status=exc.status_code)

    if isinstance(exc, OrderSystemError):
        logger.warning(f"{exc.__class__.__name__}: {exc.message}")
        body = _error_body(request, exc.status_code, exc.message, exc.error_code)
        return Response(body, status=exc.status_code)

    if isinstance(exc, drf_exceptions.ValidationError):
        errors = sorted(set(flatten_validation_errors(exc.detail)))
        logger.warning(f"Request validation failed: {errors}")
        body = _error_body(
            request, status.HTTP_400_BAD_REQUEST,
            _('Validation failed for the submitted data.'), ERROR_VALIDATION, errors,
        )
        return Response(body, status=status.HTTP_400_BAD_REQUEST)

    # Ratelimited subclasses Django's PermissionDenied, so it must come first.
    if isinstance(exc, Ratelimited):
        logger.warning(f"Rate limit exceeded on {getattr(request, 'path', '?')}")
        body = _error_body(
            request, status.HTTP_429_TOO_MANY_REQUESTS,
            _('Too many requests. Please slow down.'), ERROR_RATE_LIMITED,
        )
        return Response(body, status=status.HTTP_429_TOO_MANY_REQUESTS)

    if isinstance(exc, (drf_exceptions.NotAuthenticated, drf_exceptions.AuthenticationFailed)):
        logger.warning(f"Authentication error: {exc.detail}")
        body = _error_body(request, exc.status_code, exc.detail, ERROR_AUTHENTICATION)
        headers = {}
        if getattr(exc, 'auth_header', None):
            headers['WWW-Authenticate'] = exc.auth_header
        return Response(body, status=exc.status_code, headers=headers)

    if isinstance(exc, (drf_exceptions.PermissionDenied, DjangoPermissionDenied)):
        message = getattr(exc, 'detail', None) or _('Access denied.')
        logger.warning(f"Permission denied: {message}")
        body = _error_body(request, status.HTTP_403_FORBIDDEN, message, ERROR_AUTHORIZATION)
        return Response(body, status=status.HTTP_403_FORBIDDEN)

    if isinstance(exc, (Http404, drf_exceptions.NotFound)):
        body = _error_body(request, status.HTTP_404_NOT_FOUND, _('Resource not found.'), ERROR_RESOURCE_NOT_FOUND)
        return Response(body, status=status.HTTP_404_NOT_FOUND)

    if isinstance(exc, drf_exceptions.APIException):
        # MethodNotAllowed, ParseError, UnsupportedMediaType, Throttled...
        body = _error_body(request, exc.status_code, exc.detail, getattr(exc, 'default_code', None))
        return Response(body, status=exc.status_code)

    logger.error(f"Unhandled error on {getattr(request, 'path', '?')}: {exc}", exc_info=exc)
    body = _error_body(
        request, status.HTTP_500_INTERNAL_SERVER_ERROR,
        _('Internal server error. Please try again later.'), ERROR_INTERNAL,
    )
    return Response(body, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
