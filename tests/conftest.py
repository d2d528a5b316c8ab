from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient

from authentication.context import RequestContext
from authentication.models import Role, UserRole
from products.models import Product

User = get_user_model()


@pytest.fixture(autouse=True)
def _isolated_settings(settings):
    settings.RATELIMIT_ENABLE = False
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def make_user(db):
    def _make_user(email, role_names=(Role.CUSTOMER,), password="Str0ng-Passw0rd!", **extra):
        user = User.objects.create_user(
            username=email.split("@")[0].replace("+", "-"),
            email=email,
            password=password,
            **extra,
        )
        for name in role_names:
            role, _ = Role.objects.get_or_create(name=name, defaults={"display_name": name.title()})
            UserRole.objects.get_or_create(user=user, role=role)
        return user

    return _make_user


@pytest.fixture
def customer(make_user):
    return make_user("customer@example.com")


@pytest.fixture
def other_customer(make_user):
    return make_user("other@example.com")


@pytest.fixture
def operator(make_user):
    return make_user("operator@example.com", role_names=(Role.OPERATOR,))


@pytest.fixture
def admin_user(make_user):
    return make_user("admin@example.com", role_names=(Role.ADMIN,))


@pytest.fixture
def customer_ctx(customer):
    return RequestContext.for_user(customer)


@pytest.fixture
def other_ctx(other_customer):
    return RequestContext.for_user(other_customer)


@pytest.fixture
def operator_ctx(operator):
    return RequestContext.for_user(operator)


@pytest.fixture
def make_product(db):
    def _make_product(name="Keyboard", price="100.00", stock=50, category="Peripherals", is_active=True):
        return Product.objects.create(
            name=name,
            description=f"{name} description",
            price=Decimal(price),
            category=category,
            stock_quantity=stock,
            is_active=is_active,
        )

    return _make_product


@pytest.fixture
def product(make_product):
    return make_product()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for(api_client):
    def _client_for(user):
        api_client.force_authenticate(user=user)
        return api_client

    return _client_for
