"""
Catalog and inventory ledger services.

``apply_stock_movement`` is the only code path that changes
``Product.stock_quantity``. It locks the product row, computes the new level,
persists it and appends a StockMovement, all in one transaction. Price edits
made through ``update_product`` append a PriceHistory row in the same
transaction as the price change.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

from django.conf import settings
from django.db import transaction

from core.cache import EntityCache
from core.exceptions import InsufficientStock, InvalidQuantity, ProductNotFound, ValidationFailure

from .filters import ProductFilter
from .models import PriceHistory, Product, StockMovement
from .serializers import ProductSerializer

logger = logging.getLogger(__name__)

MovementType = StockMovement.MovementType

product_cache = EntityCache('products')

UPDATABLE_FIELDS = ('name', 'description', 'price', 'category', 'is_active')

CENT = Decimal('0.01')


def _load_product(product_id, lock: bool = False) -> Product:
    queryset = Product.objects.select_for_update() if lock else Product.objects.all()
    try:
        return queryset.get(pk=product_id)
    except Product.DoesNotExist:
        raise ProductNotFound(product_id)


def _require_positive(quantity: int) -> None:
    if quantity <= 0:
        raise InvalidQuantity("Quantity must be positive.")


def _normalize_price(price) -> Decimal:
    """Two-place Decimal for ``price``; floats go through ``str`` so 19.99 stays 19.99."""
    try:
        value = Decimal(str(price)).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationFailure(validation_errors=[f"price: '{price}' is not a valid amount."])
    if value < 0:
        raise ValidationFailure(validation_errors=["price: must not be negative."])
    return value


def apply_stock_movement(product_id, movement_type: str, quantity: int, reason: str, actor: str) -> Product:
    """
    Apply one stock movement and record it in the ledger.

    INBOUND adds ``quantity``, OUTBOUND removes it (never below zero) and
    ABSOLUTE_ADJUSTMENT sets the stock level to ``quantity``.

    Raises:
        ProductNotFound: no product with this id
        InvalidQuantity: non-positive inbound/outbound quantity or negative target level
        InsufficientStock: outbound quantity larger than the stock on hand
        ValidationFailure: unknown movement type
    """
    if movement_type not in MovementType.values:
        raise ValidationFailure(
            f"Unknown stock movement type: {movement_type}",
            validation_errors=[f"movement_type: must be one of {', '.join(MovementType.values)}."],
        )

    with transaction.atomic():
        product = _load_product(product_id, lock=True)
        previous_stock = product.stock_quantity

        if movement_type == MovementType.INBOUND:
            _require_positive(quantity)
            new_stock = previous_stock + quantity
        elif movement_type == MovementType.OUTBOUND:
            _require_positive(quantity)
            if previous_stock < quantity:
                raise InsufficientStock(product.name, previous_stock, quantity)
            new_stock = previous_stock - quantity
        else:
            if quantity < 0:
                raise InvalidQuantity("Stock level cannot be negative.")
            new_stock = quantity

        product.stock_quantity = new_stock
        product.save(update_fields=['stock_quantity', 'updated_at'])
        StockMovement.objects.create(
            product=product,
            movement_type=movement_type,
            quantity=quantity,
            previous_stock=previous_stock,
            new_stock=new_stock,
            reason=reason,
            created_by=actor,
        )

    logger.info(
        f"Stock movement {movement_type} on product {product.pk} by {actor}: "
        f"{previous_stock} -> {new_stock} ({reason})"
    )
    product_cache.invalidate(product.pk)
    return product


def adjust_stock(context, product_id, movement_type: str, quantity: int, reason: Optional[str] = None) -> Product:
    """Staff-initiated stock movement."""
    context.require_elevated("Only administrators and operators can change stock levels.")
    return apply_stock_movement(
        product_id, movement_type, quantity,
        reason or "Manual stock adjustment", context.username,
    )


def create_product(context, name: str, description: str, price: Decimal, category: str,
                   stock_quantity: int = 0) -> Product:
    context.require_elevated("Only administrators and operators can create products.")
    if stock_quantity < 0:
        raise InvalidQuantity("Initial stock cannot be negative.")
    price = _normalize_price(price)

    with transaction.atomic():
        product = Product.objects.create(
            name=name,
            description=description or '',
            price=price,
            category=category,
            stock_quantity=0,
            is_active=True,
        )
        if stock_quantity > 0:
            product = apply_stock_movement(
                product.pk, MovementType.INBOUND, stock_quantity, "Initial stock", context.username,
            )

    logger.info(f"Product {product.pk} '{product.name}' created by {context.username}")
    product_cache.invalidate_all()
    return product


def update_product(context, product_id, changes: dict) -> Product:
    """
    Update catalog fields of a product.

    A price change appends a PriceHistory entry. Stock is never changed here.
    """
    context.require_elevated("Only administrators and operators can update products.")
    if 'stock_quantity' in changes:
        raise ValidationFailure(
            validation_errors=["stock_quantity: Stock can only be changed through a stock movement."],
        )
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationFailure(validation_errors=[f"{field}: cannot be updated." for field in unknown])

    changes = dict(changes)
    if changes.get('price') is not None:
        changes['price'] = _normalize_price(changes['price'])

    with transaction.atomic():
        product = _load_product(product_id, lock=True)
        new_price = changes.get('price')
        if new_price is not None and new_price != product.price:
            PriceHistory.objects.create(
                product=product,
                old_price=product.price,
                new_price=new_price,
                changed_by=context.username,
            )
            logger.info(f"Price of product {product.pk} changed by {context.username}: {product.price} -> {new_price}")

        for field, value in changes.items():
            setattr(product, field, value)
        product.save()

    logger.info(f"Product {product.pk} updated by {context.username}: {sorted(changes)}")
    product_cache.invalidate(product.pk)
    return product


def deactivate_product(context, product_id) -> Product:
    context.require_elevated("Only administrators and operators can deactivate products.")
    with transaction.atomic():
        product = _load_product(product_id, lock=True)
        product.is_active = False
        product.save(update_fields=['is_active', 'updated_at'])

    logger.info(f"Product {product.pk} deactivated by {context.username}")
    product_cache.invalidate(product.pk)
    return product


def get_product(product_id) -> dict:
    cached = product_cache.get(product_id)
    if cached is not None:
        return cached
    product = _load_product(product_id)
    data = dict(ProductSerializer(product).data)
    product_cache.set(product_id, data)
    return data


def search_products(name: Optional[str] = None, category: Optional[str] = None,
                    min_price=None, max_price=None, active: Optional[bool] = None):
    params = {
        'name': name,
        'category': category,
        'min_price': min_price,
        'max_price': max_price,
        'active': active,
    }
    filterset = ProductFilter(
        {key: value for key, value in params.items() if value is not None},
        queryset=Product.objects.all(),
    )
    if not filterset.is_valid():
        raise ValidationFailure(validation_errors=[
            f"{field}: {message}" for field, messages in filterset.errors.items() for message in messages
        ])
    return filterset.qs


def low_stock_products(threshold: Optional[int] = None):
    if threshold is None:
        threshold = getattr(settings, 'LOW_STOCK_THRESHOLD', 10)
    return Product.objects.filter(is_active=True, stock_quantity__lt=threshold).order_by('stock_quantity', 'name')


def stock_movements(product_id):
    product = _load_product(product_id)
    return product.stock_movements.all()


def price_history(product_id):
    product = _load_product(product_id)
    return product.price_history.all()
