"""
Product serializers for the order management API.

Write serializers only validate input; the catalog services in
``products.services`` perform the actual writes so stock and price changes
always leave a ledger entry behind.
"""

from decimal import Decimal

from rest_framework import serializers

from .models import PriceHistory, Product, StockMovement

MIN_PRICE = Decimal('0.01')
MAX_PRICE = Decimal('999999.99')


class ProductSerializer(serializers.ModelSerializer):
    """
    Product representation and create/update validation.

    ``stock_quantity`` is accepted on create as the initial stock. On update it
    is rejected: stock only changes through the stock endpoint.
    """

    is_available = serializers.BooleanField(read_only=True)

    class Meta:
        model = Product
        fields = [
            'id',
            'name',
            'description',
            'price',
            'category',
            'stock_quantity',
            'is_active',
            'is_available',
            'created_at',
            'updated_at',
        ]
        read_only_fields = [
            'id',
            'is_available',
            'created_at',
            'updated_at',
        ]
        extra_kwargs = {
            'stock_quantity': {'required': False, 'min_value': 0},
            'description': {'max_length': 1000},
            'category': {'required': True, 'allow_blank': False},
        }

    def validate_name(self, value):
        value = value.strip()
        if len(value) < 2:
            raise serializers.ValidationError("Name must have at least 2 characters.")
        return value

    def validate_category(self, value):
        return value.strip()

    def validate_price(self, value):
        if value < MIN_PRICE or value > MAX_PRICE:
            raise serializers.ValidationError(f"Price must be between {MIN_PRICE} and {MAX_PRICE}.")
        return value

    def validate(self, attrs):
        if self.instance is not None and 'stock_quantity' in self.initial_data:
            raise serializers.ValidationError(
                {'stock_quantity': "Stock can only be changed through a stock movement."}
            )
        return attrs


class StockUpdateSerializer(serializers.Serializer):
    movement_type = serializers.ChoiceField(choices=StockMovement.MovementType.choices)
    quantity = serializers.IntegerField(min_value=0)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)


class StockMovementSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    stock_variation = serializers.IntegerField(read_only=True)

    class Meta:
        model = StockMovement
        fields = [
            'id',
            'product',
            'product_name',
            'movement_type',
            'quantity',
            'previous_stock',
            'new_stock',
            'stock_variation',
            'reason',
            'created_by',
            'created_at',
        ]
        read_only_fields = fields


class PriceHistorySerializer(serializers.ModelSerializer):
    price_difference = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)
    percentage_change = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = PriceHistory
        fields = [
            'id',
            'product',
            'old_price',
            'new_price',
            'price_difference',
            'percentage_change',
            'changed_by',
            'changed_at',
        ]
        read_only_fields = fields
