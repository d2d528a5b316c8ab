"""
Product ViewSet for the order management API.

- Anyone can browse active products; staff (ADMIN / OPERATOR) also see
  inactive ones
- Writes require a staff role and go through ``products.services`` so that
  stock and price changes are recorded in the ledgers
- Write operations are rate limited and audited
"""

from django.conf import settings
from django.utils.decorators import method_decorator
from django.utils.translation import gettext_lazy as _
from django_filters.rest_framework import DjangoFilterBackend
from django_ratelimit.decorators import ratelimit
from rest_framework import filters, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated, IsAuthenticatedOrReadOnly

from authentication.audit import record_audit_event
from authentication.context import RequestContext
from authentication.models import AuditLog
from authentication.permissions import IsStaffMember
from core.exceptions import ProductNotFound
from core.responses import EnvelopePagination, success_response

from . import services
from .filters import ProductFilter
from .models import Product
from .serializers import (
    PriceHistorySerializer,
    ProductSerializer,
    StockMovementSerializer,
    StockUpdateSerializer,
)

PRODUCT_WRITE_RATE = getattr(settings, 'PRODUCT_WRITE_RATE', '30/m')
WRITE_METHODS = ['POST', 'PUT', 'PATCH', 'DELETE']


class ProductViewSet(viewsets.ModelViewSet):
    """
    Catalog endpoints.

    List filters: ``name`` (substring), ``category`` (exact, case-insensitive),
    ``min_price`` / ``max_price`` (inclusive) and ``active``. Sort with
    ``ordering=price`` or ``ordering=-created_at``.
    """

    serializer_class = ProductSerializer
    permission_classes = [IsAuthenticatedOrReadOnly]
    pagination_class = EnvelopePagination
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_class = ProductFilter
    ordering_fields = ['name', 'price', 'category', 'stock_quantity', 'created_at']
    ordering = ['name']
    lookup_value_regex = r'\d+'

    def get_queryset(self):
        if RequestContext.from_request(self.request).is_elevated:
            return Product.objects.all()
        return Product.objects.filter(is_active=True)

    def get_permissions(self):
        if self.action in ('list', 'retrieve'):
            return super().get_permissions()
        return [IsAuthenticated(), IsStaffMember()]

    def retrieve(self, request, *args, **kwargs):
        data = services.get_product(kwargs['pk'])
        if not data['is_active'] and not RequestContext.from_request(request).is_elevated:
            raise ProductNotFound(kwargs['pk'])
        return success_response(data)

    @method_decorator(ratelimit(key='user_or_ip', rate=PRODUCT_WRITE_RATE, method=WRITE_METHODS))
    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        product = services.create_product(
            RequestContext.from_request(request),
            name=data['name'],
            description=data.get('description', ''),
            price=data['price'],
            category=data['category'],
            stock_quantity=data.get('stock_quantity', 0),
        )
        record_audit_event(
            request, 'CREATE', 'PRODUCT', product.pk, AuditLog.Status.SUCCESS,
            {'name': product.name, 'price': str(product.price), 'stock': product.stock_quantity},
        )
        return success_response(ProductSerializer(product).data, _("Product created successfully."),
                                status.HTTP_201_CREATED)

    @method_decorator(ratelimit(key='user_or_ip', rate=PRODUCT_WRITE_RATE, method=WRITE_METHODS))
    def update(self, request, *args, **kwargs):
        partial = kwargs.pop('partial', False)
        instance = self.get_object()
        serializer = self.get_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        product = services.update_product(
            RequestContext.from_request(request), instance.pk, dict(serializer.validated_data),
        )
        record_audit_event(
            request, 'UPDATE', 'PRODUCT', product.pk, AuditLog.Status.SUCCESS,
            {'fields': sorted(serializer.validated_data)},
        )
        return success_response(ProductSerializer(product).data, _("Product updated successfully."))

    @method_decorator(ratelimit(key='user_or_ip', rate=PRODUCT_WRITE_RATE, method=WRITE_METHODS))
    def destroy(self, request, *args, **kwargs):
        """Soft delete: the product is deactivated, never removed."""
        instance = self.get_object()
        product = services.deactivate_product(RequestContext.from_request(request), instance.pk)
        record_audit_event(request, 'DELETE', 'PRODUCT', product.pk, AuditLog.Status.SUCCESS)
        return success_response(ProductSerializer(product).data, _("Product deactivated successfully."))

    @action(detail=True, methods=['patch'], url_path='stock')
    @method_decorator(ratelimit(key='user_or_ip', rate=PRODUCT_WRITE_RATE, method=WRITE_METHODS))
    def update_stock(self, request, pk=None):
        instance = self.get_object()
        serializer = StockUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        previous_stock = instance.stock_quantity
        product = services.adjust_stock(
            RequestContext.from_request(request), instance.pk,
            data['movement_type'], data['quantity'], data.get('reason'),
        )
        record_audit_event(
            request, 'STOCK_MOVEMENT', 'PRODUCT', product.pk, AuditLog.Status.SUCCESS,
            {
                'movement_type': data['movement_type'],
                'quantity': data['quantity'],
                'previous_stock': previous_stock,
                'new_stock': product.stock_quantity,
            },
        )
        return success_response(ProductSerializer(product).data, _("Stock updated successfully."))

    @action(detail=True, methods=['get'], url_path='movements')
    def movements(self, request, pk=None):
        queryset = services.stock_movements(pk).select_related('product')
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(StockMovementSerializer(page, many=True).data)

    @action(detail=True, methods=['get'], url_path='price-history')
    def price_history(self, request, pk=None):
        queryset = services.price_history(pk)
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(PriceHistorySerializer(page, many=True).data)

    @action(detail=False, methods=['get'], url_path='low-stock')
    def low_stock(self, request):
        threshold = request.query_params.get('threshold')
        queryset = services.low_stock_products(int(threshold) if threshold and threshold.isdigit() else None)
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(ProductSerializer(page, many=True).data)
