from __future__ import annotations

from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.management import call_command
from rest_framework.test import APIClient

from modules.catalog.constants import OversellPolicy, ProductType
from modules.catalog.models import OptionGroup, OptionValue, Product
from modules.inventory.models import StockRecord
from modules.orders.factory import build_order_service


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_cache():
    """The tag cache lives in LocMem and would leak rows between tests."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture()
def user():
    return get_user_model().objects.create_user(
        "buyer", email="buyer@example.com", password="buyer123"
    )


@pytest.fixture()
def other_user():
    return get_user_model().objects.create_user(
        "someone", email="someone@example.com", password="someone123"
    )


@pytest.fixture()
def staff_user():
    return get_user_model().objects.create_user(
        "manager", email="manager@example.com", password="manager123", is_staff=True
    )


@pytest.fixture()
def affiliate():
    return get_user_model().objects.create_user("affiliate", password="aff123")


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_product():
    """Factory for products; ``onhand`` creates the product-level stock row."""
    counter = {"n": 0}

    def _make(onhand: int | None = None, **overrides) -> Product:
        counter["n"] += 1
        defaults = {
            "sku": f"SKU-{counter['n']:03d}",
            "name": f"Product {counter['n']}",
            "price": Decimal("10.00"),
            "prod_type": ProductType.PHYSICAL,
        }
        defaults.update(overrides)
        if onhand is not None:
            defaults.setdefault("track_onhand", True)
            defaults.setdefault("oversell", OversellPolicy.DENY)
        product = Product.objects.create(**defaults)
        if onhand is not None:
            StockRecord.objects.create(product=product, onhand=onhand)
        return product

    return _make


@pytest.fixture()
def product(make_product):
    return make_product(sku="WIDGET", name="Widget", price=Decimal("20.00"))


@pytest.fixture()
def virtual_product(make_product):
    return make_product(
        sku="EBOOK",
        name="E-book",
        price=Decimal("15.00"),
        prod_type=ProductType.DOWNLOAD,
    )


@pytest.fixture()
def make_option():
    """Factory for option values; groups are created on first use."""

    def _make(
        product: Product,
        group: str,
        value: str,
        price: Decimal = Decimal("0"),
        sku: str = "",
        group_type: str = "select",
        orderby: int = 0,
    ) -> OptionValue:
        option_group, _ = OptionGroup.objects.get_or_create(
            name=group, defaults={"group_type": group_type, "orderby": orderby}
        )
        return OptionValue.objects.create(
            group=option_group, product=product, value=value, price=price, sku=sku
        )

    return _make


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


class RecordingNotifier:
    """NotificationSender that keeps every call for assertions."""

    def __init__(self) -> None:
        self.calls: list[dict] = []

    def notify(self, order, status, message="", buyer=True, admin=False) -> None:
        self.calls.append(
            {
                "order_id": order.pk,
                "status": status,
                "message": message,
                "buyer": buyer,
                "admin": admin,
            }
        )


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def order_service(notifier):
    return build_order_service(notifier=notifier)


@pytest.fixture()
def status_registry():
    """The default status registry, as installed by ``seed_shop``."""
    call_command("seed_shop", "--no-shippers", verbosity=0)


@pytest.fixture()
def address():
    from modules.core.address import Address

    return Address(
        name="Ada Buyer",
        address1="1 Main St",
        city="Sacramento",
        state="CA",
        zip="95814",
        country="US",
    )
