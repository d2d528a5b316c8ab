"""
Order serializers for the order management API.

Input serializers validate request shape only. Stock, pricing and status
rules live in ``orders.services``, which is what the views call.
"""

from django.conf import settings
from rest_framework import serializers

from .models import Order, OrderItem


class OrderItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            'id',
            'product',
            'product_name',
            'quantity',
            'unit_price',
            'total_price',
            'created_at',
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Full order representation with nested line items."""

    items = OrderItemSerializer(many=True, read_only=True)
    customer_email = serializers.EmailField(source='customer.email', read_only=True)
    customer_name = serializers.CharField(source='customer.full_name', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    is_paid = serializers.BooleanField(read_only=True)
    can_be_cancelled = serializers.BooleanField(read_only=True)

    class Meta:
        model = Order
        fields = [
            'id',
            'customer',
            'customer_email',
            'customer_name',
            'items',
            'total_amount',
            'status',
            'status_display',
            'payment_status',
            'payment_method',
            'payment_date',
            'transaction_id',
            'is_paid',
            'can_be_cancelled',
            'created_at',
            'updated_at',
            'shipped_at',
            'delivered_at',
        ]
        read_only_fields = fields


class OrderLineSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)

    def validate_quantity(self, value):
        limit = getattr(settings, 'MAX_ORDER_QUANTITY', 1000)
        if value > limit:
            raise serializers.ValidationError(f"Quantity cannot exceed {limit}.")
        return value


class OrderCreateSerializer(serializers.Serializer):
    items = OrderLineSerializer(many=True, allow_empty=False)


class OrderStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.OrderStatus.choices)


class OrderPaymentUpdateSerializer(serializers.Serializer):
    payment_status = serializers.ChoiceField(choices=Order.PaymentStatus.choices)
    payment_method = serializers.ChoiceField(choices=Order.PaymentMethod.choices, required=False, allow_null=True)
    transaction_id = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)
