"""
Order ViewSet for the order management API.

- Authentication required for every endpoint
- Customers see and cancel only their own orders; ADMIN and OPERATOR see
  all orders and drive status and payment changes
- Business rules are enforced in ``orders.services``; this module only
  parses input, builds the request context and writes the audit trail
- Write operations are rate limited
"""

from django.conf import settings
from django.utils.decorators import method_decorator
from django.utils.translation import gettext_lazy as _
from django_ratelimit.decorators import ratelimit
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated

from authentication.audit import record_audit_event
from authentication.context import RequestContext
from authentication.models import AuditLog
from core.exceptions import OrderSystemError
from core.responses import EnvelopePagination, success_response

from . import services
from .serializers import (
    OrderCreateSerializer,
    OrderPaymentUpdateSerializer,
    OrderSerializer,
    OrderStatusUpdateSerializer,
)

ORDER_CREATE_RATE = getattr(settings, 'ORDER_CREATE_RATE', '10/m')
ORDER_WRITE_RATE = getattr(settings, 'ORDER_WRITE_RATE', '30/m')


class OrderViewSet(viewsets.GenericViewSet):
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = EnvelopePagination
    lookup_value_regex = r'\d+'

    def _context(self) -> RequestContext:
        return RequestContext.from_request(self.request)

    def _page(self, queryset):
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(OrderSerializer(page, many=True).data)

    def _audit_failure(self, action_name, order_id, exc):
        record_audit_event(
            self.request, action_name, 'ORDER', order_id, AuditLog.Status.FAILURE,
            {'error': exc.message, 'error_code': exc.error_code},
        )

    def list(self, request):
        """All orders for staff, the caller's own orders otherwise."""
        return self._page(services.list_orders(self._context()))

    def retrieve(self, request, pk=None):
        return success_response(services.get_order(self._context(), pk))

    @method_decorator(ratelimit(key='user_or_ip', rate=ORDER_CREATE_RATE, method='POST'))
    def create(self, request):
        """
        Place an order: ``{"items": [{"product_id": 1, "quantity": 2}, ...]}``.

        Stock is reserved and totals are computed server-side in one
        transaction. Failed attempts are audited too.
        """
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        context = self._context()
        try:
            order = services.create_order(context, serializer.validated_data['items'])
        except OrderSystemError as exc:
            self._audit_failure('CREATE', getattr(exc, 'order_id', None), exc)
            raise

        record_audit_event(
            request, 'CREATE', 'ORDER', order.pk, AuditLog.Status.SUCCESS,
            {'total': str(order.total_amount), 'items': len(serializer.validated_data['items'])},
        )
        return success_response(
            services.get_order(context, order.pk), _("Order created successfully."), status.HTTP_201_CREATED,
        )

    @action(detail=False, methods=['get'], url_path=r'user/(?P<email>[^/]+)')
    def by_user(self, request, email=None):
        return self._page(services.list_orders_for_user(self._context(), email))

    @action(detail=False, methods=['get'], url_path=r'status/(?P<order_status>[A-Za-z_]+)')
    def by_status(self, request, order_status=None):
        return self._page(services.list_orders_by_status(self._context(), order_status.upper()))

    @action(detail=True, methods=['patch'], url_path='status')
    @method_decorator(ratelimit(key='user_or_ip', rate=ORDER_WRITE_RATE, method='PATCH'))
    def update_status(self, request, pk=None):
        serializer = OrderStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data['status']
        try:
            order = services.update_order_status(self._context(), pk, new_status)
        except OrderSystemError as exc:
            self._audit_failure('UPDATE_STATUS', pk, exc)
            raise

        record_audit_event(
            request, 'UPDATE_STATUS', 'ORDER', order.pk, AuditLog.Status.SUCCESS, {'new_status': new_status},
        )
        return success_response(
            services.get_order(self._context(), order.pk), _("Order status updated successfully."),
        )

    @action(detail=True, methods=['patch'], url_path='payment')
    @method_decorator(ratelimit(key='user_or_ip', rate=ORDER_WRITE_RATE, method='PATCH'))
    def update_payment(self, request, pk=None):
        serializer = OrderPaymentUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            order = services.update_payment_status(
                self._context(), pk, data['payment_status'],
                data.get('payment_method'), data.get('transaction_id'),
            )
        except OrderSystemError as exc:
            self._audit_failure('UPDATE_PAYMENT', pk, exc)
            raise

        record_audit_event(
            request, 'UPDATE_PAYMENT', 'ORDER', order.pk, AuditLog.Status.SUCCESS,
            {'payment_status': order.payment_status, 'status': order.status},
        )
        return success_response(
            services.get_order(self._context(), order.pk), _("Payment status updated successfully."),
        )

    @action(detail=True, methods=['post'])
    @method_decorator(ratelimit(key='user_or_ip', rate=ORDER_WRITE_RATE, method='POST'))
    def cancel(self, request, pk=None):
        """Cancel a pending or confirmed order and put its items back in stock."""
        try:
            order = services.cancel_order(self._context(), pk)
        except OrderSystemError as exc:
            self._audit_failure('CANCEL', pk, exc)
            raise

        record_audit_event(request, 'CANCEL', 'ORDER', order.pk, AuditLog.Status.SUCCESS)
        return success_response(services.get_order(self._context(), order.pk), _("Order cancelled successfully."))
