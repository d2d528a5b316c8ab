from django.http import Http404
from django_ratelimit.exceptions import Ratelimited
from rest_framework import exceptions as drf_exceptions
from rest_framework.request import Request
from rest_framework.test import APIRequestFactory

from core.exceptions import (
    AccessDenied,
    AuthenticationFailure,
    InsufficientStock,
    OrderProcessingFailure,
    ProductNotFound,
    ValidationFailure,
    api_exception_handler,
    flatten_validation_errors,
)

factory = APIRequestFactory()


def _handle(exc, path="/api/orders/", method="post"):
    request = Request(getattr(factory, method)(path))
    return api_exception_handler(exc, {"request": request})


def test_domain_error_body():
    response = _handle(InsufficientStock("Keyboard", 1, 3))

    assert response.status_code == 400
    assert response.data["success"] is False
    assert response.data["status"] == 400
    assert response.data["error_code"] == "BUSINESS_RULE_ERROR"
    assert response.data["message"] == "Insufficient stock for product: Keyboard (available: 1, requested: 3)"
    assert response.data["path"] == "/api/orders/"
    assert response.data["method"] == "POST"
    assert "timestamp" in response.data
    assert "validation_errors" not in response.data


def test_not_found_and_access_denied():
    not_found = _handle(ProductNotFound(12), method="get")
    assert not_found.status_code == 404
    assert not_found.data["message"] == "Product not found with id: 12"
    assert not_found.data["error_code"] == "RESOURCE_NOT_FOUND"

    denied = _handle(AccessDenied())
    assert denied.status_code == 403
    assert denied.data["error_code"] == "AUTHORIZATION_ERROR"


def test_authentication_failure_status_can_be_overridden():
    assert _handle(AuthenticationFailure()).status_code == 401
    assert _handle(AuthenticationFailure("Email is already registered.", status_code=400)).status_code == 400


def test_order_processing_failure_is_422():
    response = _handle(OrderProcessingFailure("Error processing order: RuntimeError", order_id=7))

    assert response.status_code == 422
    assert response.data["error_code"] == "ORDER_PROCESSING_ERROR"


def test_validation_failure_lists_errors():
    response = _handle(ValidationFailure("Invalid filters.", validation_errors=["b: bad", "a: bad", "a: bad"]))

    assert response.status_code == 400
    assert response.data["validation_errors"] == ["a: bad", "b: bad"]


def test_drf_validation_error_is_flattened():
    exc = drf_exceptions.ValidationError({
        "items": [{"quantity": ["Ensure this value is greater than or equal to 1."]}],
        "non_field_errors": ["Bad payload."],
    })

    response = _handle(exc)

    assert response.status_code == 400
    assert response.data["error_code"] == "VALIDATION_ERROR"
    assert response.data["validation_errors"] == [
        "Bad payload.",
        "items[0].quantity: Ensure this value is greater than or equal to 1.",
    ]


def test_rate_limit_is_429():
    response = _handle(Ratelimited())

    assert response.status_code == 429
    assert response.data["error_code"] == "RATE_LIMITED"


def test_framework_errors():
    assert _handle(drf_exceptions.NotAuthenticated()).data["error_code"] == "AUTHENTICATION_ERROR"
    assert _handle(drf_exceptions.PermissionDenied()).status_code == 403
    assert _handle(Http404()).status_code == 404
    assert _handle(drf_exceptions.MethodNotAllowed("PUT")).status_code == 405


def test_unexpected_errors_hide_details():
    response = _handle(RuntimeError("database password is hunter2"))

    assert response.status_code == 500
    assert response.data["error_code"] == "INTERNAL_ERROR"
    assert "hunter2" not in response.data["message"]


def test_flatten_nested_details():
    detail = {"address": {"zip": ["Required."]}, "tags": ["Too many.", "Duplicated."]}

    assert flatten_validation_errors(detail) == [
        "address.zip: Required.",
        "tags: Too many.",
        "tags: Duplicated.",
    ]
