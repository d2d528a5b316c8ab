from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction

from authentication.context import RequestContext
from core.exceptions import AccessDenied, InvalidQuantity, ProductNotFound, ValidationFailure
from products import services
from products.models import PriceHistory, Product, StockMovement

pytestmark = pytest.mark.django_db


def test_create_product_records_initial_stock(operator_ctx):
    product = services.create_product(
        operator_ctx, name="Mouse", description="Wireless", price=Decimal("49.90"),
        category="Peripherals", stock_quantity=12,
    )

    assert product.is_active
    assert product.stock_quantity == 12
    movement = StockMovement.objects.get(product=product)
    assert movement.movement_type == StockMovement.MovementType.INBOUND
    assert movement.reason == "Initial stock"
    assert (movement.previous_stock, movement.new_stock) == (0, 12)
    assert movement.created_by == operator_ctx.username


def test_create_product_without_stock_writes_no_movement(operator_ctx):
    product = services.create_product(operator_ctx, "Cable", "", Decimal("5.00"), "Accessories")

    assert product.stock_quantity == 0
    assert not StockMovement.objects.exists()


def test_create_product_rejects_negative_initial_stock(operator_ctx):
    with pytest.raises(InvalidQuantity):
        services.create_product(operator_ctx, "Cable", "", Decimal("5.00"), "Accessories", stock_quantity=-1)
    assert not Product.objects.exists()


def test_create_product_rejects_negative_price(operator_ctx):
    with pytest.raises(ValidationFailure) as excinfo:
        services.create_product(operator_ctx, "Cable", "", Decimal("-5.00"), "Accessories")

    assert excinfo.value.validation_errors == ["price: must not be negative."]
    assert not Product.objects.exists()


def test_update_product_rejects_negative_price(operator_ctx, product):
    with pytest.raises(ValidationFailure):
        services.update_product(operator_ctx, product.pk, {"price": Decimal("-1.00")})

    product.refresh_from_db()
    assert product.price == Decimal("100.00")
    assert not PriceHistory.objects.exists()


def test_negative_price_is_refused_by_the_database(product):
    product.price = Decimal("-0.01")
    with pytest.raises(IntegrityError), transaction.atomic():
        product.save()


def test_customers_cannot_manage_catalog(customer_ctx, product):
    with pytest.raises(AccessDenied):
        services.create_product(customer_ctx, "Cable", "", Decimal("5.00"), "Accessories")
    with pytest.raises(AccessDenied):
        services.update_product(customer_ctx, product.pk, {"price": Decimal("1.00")})
    with pytest.raises(AccessDenied):
        services.deactivate_product(customer_ctx, product.pk)


def test_price_change_appends_price_history(operator_ctx, product):
    services.update_product(operator_ctx, product.pk, {"price": Decimal("120.00"), "name": "Mech keyboard"})

    product.refresh_from_db()
    assert product.price == Decimal("120.00")
    assert product.name == "Mech keyboard"
    entry = PriceHistory.objects.get(product=product)
    assert entry.old_price == Decimal("100.00")
    assert entry.new_price == Decimal("120.00")
    assert entry.changed_by == operator_ctx.username
    assert entry.price_difference == Decimal("20.00")
    assert entry.percentage_change == Decimal("20.00")


def test_unchanged_price_writes_no_history(operator_ctx, product):
    services.update_product(operator_ctx, product.pk, {"price": Decimal("100.00"), "category": "Office"})

    assert not PriceHistory.objects.exists()
    product.refresh_from_db()
    assert product.category == "Office"


def test_float_prices_are_normalised_before_comparing(operator_ctx, make_product):
    product = make_product(price="19.99")

    services.update_product(operator_ctx, product.pk, {"price": 19.99})
    assert not PriceHistory.objects.exists()

    services.update_product(operator_ctx, product.pk, {"price": 21.5})
    product.refresh_from_db()
    assert product.price == Decimal("21.50")
    entry = PriceHistory.objects.get(product=product)
    assert (entry.old_price, entry.new_price) == (Decimal("19.99"), Decimal("21.50"))


def test_update_product_never_touches_stock(operator_ctx, product):
    with pytest.raises(ValidationFailure):
        services.update_product(operator_ctx, product.pk, {"stock_quantity": 1})
    product.refresh_from_db()
    assert product.stock_quantity == 50


def test_percentage_change_rounds_half_up_and_handles_zero(product):
    entry = PriceHistory(product=product, old_price=Decimal("3.00"), new_price=Decimal("4.00"))
    assert entry.percentage_change == Decimal("33.33")

    entry = PriceHistory(product=product, old_price=Decimal("8.00"), new_price=Decimal("7.00"))
    assert entry.percentage_change == Decimal("-12.50")

    entry = PriceHistory(product=product, old_price=Decimal("0.00"), new_price=Decimal("7.00"))
    assert entry.percentage_change == Decimal("0.00")


def test_deactivate_product_is_a_soft_delete(operator_ctx, product):
    services.deactivate_product(operator_ctx, product.pk)

    product.refresh_from_db()
    assert product.is_active is False
    assert not product.is_available


def test_get_product_is_cached_and_invalidated_on_write(operator_ctx, product):
    first = services.get_product(product.pk)
    assert first["name"] == "Keyboard"

    Product.objects.filter(pk=product.pk).update(name="Changed behind the cache")
    assert services.get_product(product.pk)["name"] == "Keyboard"

    services.update_product(operator_ctx, product.pk, {"name": "Keyboard v2"})
    assert services.get_product(product.pk)["name"] == "Keyboard v2"


def test_get_product_unknown_id(db):
    with pytest.raises(ProductNotFound):
        services.get_product(424242)


def test_search_products_combines_filters(make_product):
    make_product(name="Red pen", price="2.00", category="Office")
    make_product(name="Blue pen", price="3.50", category="office")
    make_product(name="Pen holder", price="15.00", category="Office")
    make_product(name="Old pen", price="2.50", category="Office", is_active=False)
    make_product(name="Monitor", price="900.00", category="Displays")

    names = set(
        services.search_products(name="PEN", category="OFFICE", min_price=Decimal("2.00"),
                                 max_price=Decimal("3.50"), active=True)
        .values_list("name", flat=True)
    )
    assert names == {"Red pen", "Blue pen"}

    assert set(services.search_products(active=False).values_list("name", flat=True)) == {"Old pen"}
    assert services.search_products().count() == 5


def test_low_stock_products(make_product):
    make_product(name="Almost gone", stock=2)
    make_product(name="Threshold", stock=10)
    make_product(name="Plenty", stock=500)
    make_product(name="Inactive", stock=0, is_active=False)

    assert [p.name for p in services.low_stock_products()] == ["Almost gone"]
    assert {p.name for p in services.low_stock_products(threshold=11)} == {"Almost gone", "Threshold"}


def test_adjust_stock_uses_default_reason(operator_ctx, product):
    services.adjust_stock(operator_ctx, product.pk, StockMovement.MovementType.INBOUND, 3)
    assert StockMovement.objects.get().reason == "Manual stock adjustment"


def test_adjust_stock_requires_staff(product):
    with pytest.raises(AccessDenied):
        services.adjust_stock(RequestContext.anonymous(), product.pk, StockMovement.MovementType.INBOUND, 3)
