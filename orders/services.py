"""
Order fulfillment service.

Every public function takes an explicit ``RequestContext`` and runs its
writes inside a single ``transaction.atomic()`` block:

- ``create_order`` validates each requested line against live inventory,
  snapshots the unit price, adds the item to the order and takes the stock
  out through the inventory ledger. Any failure rolls the whole order back.
- ``update_order_status`` drives the order through the status state machine.
- ``update_payment_status`` records a payment outcome; an approved payment
  confirms a pending order.
- ``cancel_order`` cancels a pending or confirmed order and puts the stock
  back through the ledger.

Reads go through ``order_cache``; access is re-checked on every read.
"""

import logging
from collections.abc import Mapping
from typing import Iterable, NamedTuple, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from core.cache import EntityCache
from core.exceptions import (
    AccessDenied,
    BusinessRuleViolation,
    InsufficientStock,
    InvalidQuantity,
    OrderProcessingFailure,
    OrderSystemError,
    ProductNotFound,
    ResourceNotFound,
    ValidationFailure,
)
from products.models import Product, StockMovement
from products.services import apply_stock_movement

from .models import Order, OrderItem, OrderStatus, PaymentStatus
from .serializers import OrderSerializer

logger = logging.getLogger(__name__)

User = get_user_model()

order_cache = EntityCache('orders')

# Forward moves of the state machine. CANCELLED is handled by the cancel
# logic, which also restores stock.
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
    OrderStatus.CONFIRMED: (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
    OrderStatus.PROCESSING: (OrderStatus.SHIPPED,),
    OrderStatus.SHIPPED: (OrderStatus.DELIVERED,),
}


class OrderLine(NamedTuple):
    product_id: int
    quantity: int


def _as_line(index: int, line) -> OrderLine:
    try:
        if isinstance(line, Mapping):
            product_id, quantity = line['product_id'], line['quantity']
        else:
            product_id, quantity = line
        return OrderLine(product_id=int(product_id), quantity=int(quantity))
    except (KeyError, TypeError, ValueError):
        raise ValidationFailure(
            "Malformed order line.",
            validation_errors=[f"items[{index}]: expected a product_id and an integer quantity."],
        )


def _load_order(order_id, lock: bool = False) -> Order:
    queryset = Order.objects.select_for_update() if lock else Order.objects.select_related('customer')
    try:
        return queryset.get(pk=order_id)
    except Order.DoesNotExist:
        raise ResourceNotFound('Order', 'id', order_id)


def _check_access(context, order: Order) -> None:
    if not (context.is_elevated or context.owns(order.customer_id)):
        raise AccessDenied("Access denied to this order.")


def _serialize(order: Order) -> dict:
    order = Order.objects.select_related('customer').prefetch_related('items__product').get(pk=order.pk)
    return dict(OrderSerializer(order).data)


def create_order(context, items: Iterable) -> Order:
    """
    Place an order for the requesting user.

    ``items`` is a sequence of ``(product_id, quantity)`` pairs or mappings
    with those keys. Lines are processed in order; the first failing line
    aborts the whole order and no stock is taken.

    Raises:
        ValidationFailure: no items
        ResourceNotFound: unknown requester or product
        BusinessRuleViolation: inactive product, bad quantity or insufficient stock
        OrderProcessingFailure: any unexpected error, chained to its cause
    """
    lines = [_as_line(index, line) for index, line in enumerate(items or ())]
    if not lines:
        raise ValidationFailure(
            "Order must contain at least one item.",
            validation_errors=["items: Order must contain at least one item."],
        )

    max_quantity = getattr(settings, 'MAX_ORDER_QUANTITY', 1000)
    logger.info(f"Creating order for {context.username} with {len(lines)} item(s)")

    order_id = None
    try:
        with transaction.atomic():
            try:
                customer = User.objects.get(email__iexact=context.username)
            except User.DoesNotExist:
                raise ResourceNotFound('User', 'email', context.username)

            order = Order.objects.create(customer=customer)
            order_id = order.pk

            for line in lines:
                if line.quantity <= 0 or line.quantity > max_quantity:
                    raise InvalidQuantity(f"Quantity must be between 1 and {max_quantity}.")
                try:
                    product = Product.objects.select_for_update().get(pk=line.product_id)
                except Product.DoesNotExist:
                    raise ProductNotFound(line.product_id)
                if not product.is_active:
                    raise BusinessRuleViolation(f"Product is not available: {product.name}")
                if not product.has_stock(line.quantity):
                    raise InsufficientStock(product.name, product.stock_quantity, line.quantity)

                order.add_item(OrderItem(product=product, quantity=line.quantity, unit_price=product.price))
                apply_stock_movement(
                    product.pk, StockMovement.MovementType.OUTBOUND, line.quantity,
                    f"Sale - order {order.pk}", context.username,
                )

            order.recalculate_total_amount()
            order.save()
    except OrderSystemError:
        raise
    except Exception as exc:
        logger.exception(f"Unexpected error while creating order for {context.username}")
        raise OrderProcessingFailure(f"Error processing order: {exc.__class__.__name__}", order_id=order_id) from exc

    logger.info(f"Order {order.pk} created for {context.username}, total {order.total_amount}")
    order_cache.invalidate_all()
    return order


def _restore_stock(order: Order, actor: str) -> None:
    for item in order.items.all():
        apply_stock_movement(
            item.product_id, StockMovement.MovementType.INBOUND, item.quantity,
            f"Cancellation - order {order.pk}", actor,
        )


def _cancel(order: Order, actor: str) -> None:
    if not order.can_be_cancelled():
        raise BusinessRuleViolation(f"Order cannot be cancelled in current status: {order.status}")
    _restore_stock(order, actor)
    order.status = OrderStatus.CANCELLED
    order.save(update_fields=['status', 'updated_at'])


def update_order_status(context, order_id, new_status: str) -> Order:
    context.require_elevated("Only administrators and operators can change order status.")
    if new_status not in OrderStatus.values:
        raise ValidationFailure(validation_errors=[f"status: '{new_status}' is not a valid order status."])

    with transaction.atomic():
        order = _load_order(order_id, lock=True)
        previous_status = order.status
        if new_status == previous_status:
            logger.info(f"Order {order.pk} already {new_status}, nothing to do")
            return order

        if new_status == OrderStatus.CANCELLED:
            _cancel(order, context.username)
        else:
            if new_status not in ALLOWED_TRANSITIONS.get(previous_status, ()):
                raise BusinessRuleViolation(
                    f"Cannot change order status from {previous_status} to {new_status}."
                )
            order.status = new_status
            update_fields = ['status', 'updated_at']
            if new_status == OrderStatus.SHIPPED:
                order.shipped_at = timezone.now()
                update_fields.append('shipped_at')
            elif new_status == OrderStatus.DELIVERED:
                order.delivered_at = timezone.now()
                update_fields.append('delivered_at')
            order.save(update_fields=update_fields)

    logger.info(f"Order {order.pk} status changed by {context.username}: {previous_status} -> {new_status}")
    order_cache.invalidate(order.pk)
    return order


def update_payment_status(context, order_id, payment_status: str, payment_method: Optional[str] = None,
                          transaction_id: Optional[str] = None) -> Order:
    context.require_elevated("Only administrators and operators can update payments.")
    if payment_status not in PaymentStatus.values:
        raise ValidationFailure(validation_errors=[f"payment_status: '{payment_status}' is not a valid payment status."])

    with transaction.atomic():
        order = _load_order(order_id, lock=True)
        order.record_payment(payment_status, payment_method, transaction_id)
        order.save(update_fields=[
            'payment_status', 'payment_method', 'transaction_id', 'payment_date', 'status', 'updated_at',
        ])

    logger.info(f"Order {order.pk} payment set to {payment_status} by {context.username} (status {order.status})")
    order_cache.invalidate(order.pk)
    return order


def cancel_order(context, order_id) -> Order:
    """Cancel an order and return its items to stock. Owner or staff only."""
    with transaction.atomic():
        order = _load_order(order_id, lock=True)
        _check_access(context, order)
        _cancel(order, context.username)

    logger.info(f"Order {order.pk} cancelled by {context.username}")
    order_cache.invalidate(order.pk)
    return order


def get_order(context, order_id) -> dict:
    data = order_cache.get(order_id)
    if data is None:
        order = _load_order(order_id)
        _check_access(context, order)
        data = _serialize(order)
        order_cache.set(order_id, data)
        return data
    if not (context.is_elevated or context.owns(data['customer'])):
        raise AccessDenied("Access denied to this order.")
    return data


def _order_queryset():
    return Order.objects.select_related('customer').prefetch_related('items__product')


def list_orders(context):
    queryset = _order_queryset()
    if context.is_elevated:
        return queryset
    return queryset.filter(customer_id=context.user_id)


def list_orders_for_user(context, email: str):
    if not (context.is_elevated or context.username.lower() == email.lower()):
        raise AccessDenied("Access denied to orders of another user.")
    if not User.objects.filter(email__iexact=email).exists():
        raise ResourceNotFound('User', 'email', email)
    return _order_queryset().filter(customer__email__iexact=email)


def list_orders_by_status(context, status: str):
    context.require_elevated("Only administrators and operators can list orders by status.")
    if status not in OrderStatus.values:
        raise ValidationFailure(validation_errors=[f"status: '{status}' is not a valid order status."])
    return _order_queryset().filter(status=status)
