from decimal import Decimal

import pytest

from authentication.context import RequestContext
from core.exceptions import (
    AccessDenied,
    BusinessRuleViolation,
    InvalidQuantity,
    OrderProcessingFailure,
    ResourceNotFound,
    ValidationFailure,
)
from orders import services
from orders.models import Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus
from products.models import StockMovement
from products.services import update_product

pytestmark = pytest.mark.django_db


def _stock(product):
    product.refresh_from_db()
    return product.stock_quantity


@pytest.fixture
def placed_order(customer_ctx, product):
    return services.create_order(customer_ctx, [(product.pk, 2)])


def test_create_order_reserves_stock(placed_order, product, customer):
    assert placed_order.status == OrderStatus.PENDING
    assert placed_order.payment_status == PaymentStatus.PENDING
    assert placed_order.customer == customer
    assert placed_order.total_amount == Decimal("200.00")
    assert _stock(product) == 48

    item = placed_order.items.get()
    assert item.unit_price == Decimal("100.00")
    assert item.total_price == Decimal("200.00")

    movement = StockMovement.objects.get(product=product)
    assert movement.movement_type == StockMovement.MovementType.OUTBOUND
    assert movement.reason == f"Sale - order {placed_order.pk}"
    assert movement.created_by == "customer@example.com"


def test_insufficient_stock_aborts_everything(customer_ctx, product):
    with pytest.raises(BusinessRuleViolation) as excinfo:
        services.create_order(customer_ctx, [(product.pk, 100)])

    assert excinfo.value.message.startswith("Insufficient stock")
    assert _stock(product) == 50
    assert not Order.objects.exists()
    assert not StockMovement.objects.exists()


def test_failure_on_a_later_line_rolls_back_earlier_lines(customer_ctx, make_product):
    first = make_product(name="First", stock=10)
    second = make_product(name="Second", stock=1)

    with pytest.raises(BusinessRuleViolation):
        services.create_order(customer_ctx, [(first.pk, 5), (second.pk, 2)])

    assert _stock(first) == 10
    assert _stock(second) == 1
    assert not Order.objects.exists()
    assert not OrderItem.objects.exists()


def test_ordering_exactly_the_stock_leaves_zero(customer_ctx, make_product):
    product = make_product(stock=3)
    order = services.create_order(customer_ctx, [(product.pk, 3)])

    assert order.total_amount == Decimal("300.00")
    assert _stock(product) == 0


def test_ordering_one_more_than_stock_fails(customer_ctx, make_product):
    product = make_product(stock=3)
    with pytest.raises(BusinessRuleViolation):
        services.create_order(customer_ctx, [(product.pk, 4)])
    assert _stock(product) == 3
    assert not Order.objects.exists()


def test_multiple_lines_total(customer_ctx, make_product):
    keyboard = make_product(name="Keyboard", price="100.00")
    cable = make_product(name="Cable", price="7.25")
    order = services.create_order(customer_ctx, [
        {"product_id": keyboard.pk, "quantity": 1},
        {"product_id": cable.pk, "quantity": 4},
    ])

    assert order.total_amount == Decimal("129.00")
    assert order.total_amount == sum(item.total_price for item in order.items.all())


def test_inactive_product_cannot_be_ordered(customer_ctx, make_product):
    product = make_product(is_active=False)
    with pytest.raises(BusinessRuleViolation, match="not available"):
        services.create_order(customer_ctx, [(product.pk, 1)])


def test_unknown_product(customer_ctx):
    with pytest.raises(ResourceNotFound):
        services.create_order(customer_ctx, [(123456, 1)])
    assert not Order.objects.exists()


def test_empty_order_is_rejected(customer_ctx):
    with pytest.raises(ValidationFailure):
        services.create_order(customer_ctx, [])


@pytest.mark.parametrize("lines", [
    [{"product_id": 1}],
    [{"quantity": 2}],
    [(1, 2, 3)],
    [(1,)],
    [{"product_id": 1, "quantity": "two"}],
])
def test_malformed_lines_are_validation_failures(customer_ctx, product, lines):
    with pytest.raises(ValidationFailure) as excinfo:
        services.create_order(customer_ctx, lines)

    assert excinfo.value.validation_errors == ["items[0]: expected a product_id and an integer quantity."]
    assert _stock(product) == 50
    assert not Order.objects.exists()


def test_malformed_line_reports_its_position(customer_ctx, product):
    with pytest.raises(ValidationFailure) as excinfo:
        services.create_order(customer_ctx, [(product.pk, 1), {"product_id": product.pk}])

    assert excinfo.value.validation_errors[0].startswith("items[1]:")
    assert not Order.objects.exists()


@pytest.mark.parametrize("quantity", [0, -1, 1001])
def test_quantity_bounds(customer_ctx, product, quantity):
    with pytest.raises(InvalidQuantity):
        services.create_order(customer_ctx, [(product.pk, quantity)])
    assert _stock(product) == 50


def test_unknown_requester(product):
    ghost = RequestContext(user_id=999, username="ghost@example.com")
    with pytest.raises(ResourceNotFound, match="ghost@example.com"):
        services.create_order(ghost, [(product.pk, 1)])


def test_unexpected_errors_become_order_processing_failures(customer_ctx, product, monkeypatch):
    def broken_ledger(*args, **kwargs):
        raise RuntimeError("ledger offline")

    monkeypatch.setattr(services, "apply_stock_movement", broken_ledger)

    with pytest.raises(OrderProcessingFailure) as excinfo:
        services.create_order(customer_ctx, [(product.pk, 1)])

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert excinfo.value.order_id is not None
    assert not Order.objects.exists()
    assert _stock(product) == 50


def test_unit_price_is_a_snapshot(placed_order, operator_ctx, product):
    update_product(operator_ctx, product.pk, {"price": Decimal("150.00")})

    placed_order.refresh_from_db()
    assert placed_order.items.get().unit_price == Decimal("100.00")
    assert placed_order.total_amount == Decimal("200.00")


def test_cancel_restores_stock(placed_order, customer_ctx, product):
    order = services.cancel_order(customer_ctx, placed_order.pk)

    assert order.status == OrderStatus.CANCELLED
    assert _stock(product) == 50
    restore = StockMovement.objects.filter(movement_type=StockMovement.MovementType.INBOUND).get()
    assert restore.quantity == 2
    assert restore.reason == f"Cancellation - order {placed_order.pk}"


def test_cancelling_twice_does_not_restore_twice(placed_order, customer_ctx, product):
    services.cancel_order(customer_ctx, placed_order.pk)
    with pytest.raises(BusinessRuleViolation):
        services.cancel_order(customer_ctx, placed_order.pk)

    assert _stock(product) == 50
    assert StockMovement.objects.filter(movement_type=StockMovement.MovementType.INBOUND).count() == 1


def test_delivered_order_cannot_be_cancelled(placed_order, customer_ctx, operator_ctx, product):
    for status in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
        services.update_order_status(operator_ctx, placed_order.pk, status)

    with pytest.raises(BusinessRuleViolation):
        services.cancel_order(customer_ctx, placed_order.pk)

    placed_order.refresh_from_db()
    assert placed_order.status == OrderStatus.DELIVERED
    assert _stock(product) == 48


def test_other_customers_cannot_cancel(placed_order, other_ctx, product):
    with pytest.raises(AccessDenied):
        services.cancel_order(other_ctx, placed_order.pk)
    assert _stock(product) == 48


def test_staff_can_cancel_any_order(placed_order, operator_ctx, product):
    services.cancel_order(operator_ctx, placed_order.pk)
    assert _stock(product) == 50


def test_full_lifecycle_stamps_shipping_dates(placed_order, operator_ctx):
    services.update_order_status(operator_ctx, placed_order.pk, OrderStatus.CONFIRMED)
    services.update_order_status(operator_ctx, placed_order.pk, OrderStatus.PROCESSING)
    shipped = services.update_order_status(operator_ctx, placed_order.pk, OrderStatus.SHIPPED)
    assert shipped.shipped_at is not None
    assert shipped.delivered_at is None

    delivered = services.update_order_status(operator_ctx, placed_order.pk, OrderStatus.DELIVERED)
    assert delivered.status == OrderStatus.DELIVERED
    assert delivered.delivered_at >= delivered.shipped_at


@pytest.mark.parametrize("path", [
    [OrderStatus.SHIPPED],
    [OrderStatus.DELIVERED],
    [OrderStatus.CONFIRMED, OrderStatus.PENDING],
    [OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.CONFIRMED],
])
def test_illegal_transitions(placed_order, operator_ctx, path):
    *legal, illegal = path
    for status in legal:
        services.update_order_status(operator_ctx, placed_order.pk, status)

    with pytest.raises(BusinessRuleViolation, match="Cannot change order status"):
        services.update_order_status(operator_ctx, placed_order.pk, illegal)


def test_processing_order_cannot_be_cancelled_by_status_update(placed_order, operator_ctx, product):
    services.update_order_status(operator_ctx, placed_order.pk, OrderStatus.CONFIRMED)
    services.update_order_status(operator_ctx, placed_order.pk, OrderStatus.PROCESSING)

    with pytest.raises(BusinessRuleViolation):
        services.update_order_status(operator_ctx, placed_order.pk, OrderStatus.CANCELLED)
    assert _stock(product) == 48


def test_status_update_to_cancelled_restores_stock(placed_order, operator_ctx, product):
    order = services.update_order_status(operator_ctx, placed_order.pk, OrderStatus.CANCELLED)

    assert order.status == OrderStatus.CANCELLED
    assert _stock(product) == 50


def test_same_status_is_a_no_op(placed_order, operator_ctx, product):
    services.update_order_status(operator_ctx, placed_order.pk, OrderStatus.CANCELLED)
    order = services.update_order_status(operator_ctx, placed_order.pk, OrderStatus.CANCELLED)

    assert order.status == OrderStatus.CANCELLED
    assert _stock(product) == 50


def test_status_updates_require_staff(placed_order, customer_ctx):
    with pytest.raises(AccessDenied):
        services.update_order_status(customer_ctx, placed_order.pk, OrderStatus.CONFIRMED)


def test_unknown_status_value(placed_order, operator_ctx):
    with pytest.raises(ValidationFailure):
        services.update_order_status(operator_ctx, placed_order.pk, "LOST")


def test_unknown_order(operator_ctx):
    with pytest.raises(ResourceNotFound):
        services.update_order_status(operator_ctx, 98765, OrderStatus.CONFIRMED)


def test_approved_payment_confirms_pending_order(placed_order, operator_ctx):
    order = services.update_payment_status(
        operator_ctx, placed_order.pk, PaymentStatus.APPROVED, PaymentMethod.CREDIT_CARD, "tx-42",
    )

    assert order.status == OrderStatus.CONFIRMED
    assert order.payment_status == PaymentStatus.APPROVED
    assert order.payment_date is not None
    assert order.payment_date >= order.created_at

    order.refresh_from_db()
    assert order.transaction_id == "tx-42"
    assert order.is_paid()


def test_payment_updates_require_staff(placed_order, customer_ctx):
    with pytest.raises(AccessDenied):
        services.update_payment_status(customer_ctx, placed_order.pk, PaymentStatus.APPROVED)


def test_get_order_checks_access_on_cache_hits(placed_order, customer_ctx, other_ctx, operator_ctx):
    data = services.get_order(customer_ctx, placed_order.pk)
    assert data["id"] == placed_order.pk
    assert data["total_amount"] == "200.00"

    with pytest.raises(AccessDenied):
        services.get_order(other_ctx, placed_order.pk)
    assert services.get_order(operator_ctx, placed_order.pk)["id"] == placed_order.pk


def test_get_order_cache_is_invalidated_by_writes(placed_order, customer_ctx, operator_ctx):
    assert services.get_order(customer_ctx, placed_order.pk)["status"] == OrderStatus.PENDING

    services.update_order_status(operator_ctx, placed_order.pk, OrderStatus.CONFIRMED)
    assert services.get_order(customer_ctx, placed_order.pk)["status"] == OrderStatus.CONFIRMED


def test_listing_rules(customer_ctx, other_ctx, operator_ctx, product):
    mine = services.create_order(customer_ctx, [(product.pk, 1)])
    theirs = services.create_order(other_ctx, [(product.pk, 1)])

    assert list(services.list_orders(customer_ctx)) == [mine]
    assert set(services.list_orders(operator_ctx)) == {mine, theirs}

    assert list(services.list_orders_for_user(customer_ctx, "CUSTOMER@example.com")) == [mine]
    assert list(services.list_orders_for_user(operator_ctx, "other@example.com")) == [theirs]
    with pytest.raises(AccessDenied):
        services.list_orders_for_user(customer_ctx, "other@example.com")
    with pytest.raises(ResourceNotFound):
        services.list_orders_for_user(operator_ctx, "nobody@example.com")

    services.cancel_order(operator_ctx, theirs.pk)
    assert list(services.list_orders_by_status(operator_ctx, OrderStatus.CANCELLED)) == [theirs]
    assert list(services.list_orders_by_status(operator_ctx, OrderStatus.PENDING)) == [mine]
    with pytest.raises(AccessDenied):
        services.list_orders_by_status(customer_ctx, OrderStatus.PENDING)
