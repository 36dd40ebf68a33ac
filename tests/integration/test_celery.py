"""Integration tests for the Celery app and the order tasks.

Covers:
- The Celery app loads its configuration from Django settings.
- send_notification mails buyer and shop, skipping missing recipients.
- create_affiliate_bonus is idempotent.
- purge_stale_carts deletes old carts only.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from django.core import mail
from django.utils import timezone

from modules.orders.constants import OrderStatus
from modules.orders.dtos import AddItemDTO
from modules.orders.models import AffiliateBonus, Order
from modules.orders.tasks import create_affiliate_bonus, purge_stale_carts, send_notification

pytestmark = pytest.mark.integration


class TestCeleryConfig:
    def test_celery_app_is_importable(self):
        from config.celery import app

        assert app.main == "shop"

    def test_celery_app_exported_from_init(self):
        from config import celery_app

        assert celery_app.main == "shop"

    def test_celery_serializer_is_json(self, settings):
        assert settings.CELERY_TASK_SERIALIZER == "json"
        assert settings.CELERY_RESULT_SERIALIZER == "json"
        assert settings.CELERY_ACCEPT_CONTENT == ["json"]

    def test_celery_timezone_matches_django(self, settings):
        assert settings.CELERY_TIMEZONE == settings.TIME_ZONE

    def test_periodic_tasks_are_registered(self, settings):
        tasks = {entry["task"] for entry in settings.CELERY_BEAT_SCHEDULE.values()}
        assert tasks == {"core.relay_outbox", "orders.purge_stale_carts"}


class TestSendNotification:
    def test_buyer_and_admin(self, order_service):
        order = order_service.create_cart(buyer_email="ada@example.com")

        result = send_notification.delay(
            str(order.pk), "shipped", "", buyer=True, admin=True
        ).get()

        assert result == {"sent": 1}
        assert mail.outbox[0].to == ["ada@example.com", "orders@shop.test"]
        assert mail.outbox[0].body == f"Your order {order.order_number} is now shipped."

    def test_custom_message(self, order_service):
        order = order_service.create_cart(buyer_email="ada@example.com")
        send_notification.delay(str(order.pk), "shipped", "Tracking: 1Z999").get()
        assert mail.outbox[0].body == "Tracking: 1Z999"

    def test_no_recipient(self, order_service):
        order = order_service.create_cart()
        assert send_notification.delay(str(order.pk), "shipped").get() == {"sent": 0}
        assert mail.outbox == []

    def test_missing_order(self):
        result = send_notification.delay("00000000-0000-0000-0000-000000000000", "shipped")
        assert result.get() == {"sent": 0}


class TestAffiliateBonus:
    def test_second_run_is_a_no_op(self, order_service, product, affiliate):
        order = order_service.create_cart(affiliate=affiliate)
        order_service.add_item(order.pk, AddItemDTO(product_id=product.pk, quantity=3))

        first = create_affiliate_bonus.delay(str(order.pk)).get()
        second = create_affiliate_bonus.delay(str(order.pk)).get()

        assert first == {"created": True, "amount": "3.00"}
        assert second == {"created": False}
        assert AffiliateBonus.objects.get(order_id=order.pk).amount == Decimal("3.00")

    def test_without_affiliate(self, order_service):
        order = order_service.create_cart()
        assert create_affiliate_bonus.delay(str(order.pk)).get() == {"created": False}

    def test_disabled_by_zero_percent(self, settings, order_service, affiliate):
        settings.SHOP = {**settings.SHOP, "affiliate_percent": "0"}
        order = order_service.create_cart(affiliate=affiliate)
        assert create_affiliate_bonus.delay(str(order.pk)).get() == {"created": False}


class TestPurgeStaleCarts:
    def test_only_old_carts_are_purged(self, order_service):
        old = order_service.create_cart()
        fresh = order_service.create_cart()
        placed = order_service.create_cart()
        order_service.status_machine.set_status(placed.pk, OrderStatus.SHIPPED)
        Order.objects.filter(pk__in=[old.pk, placed.pk]).update(
            updated_at=timezone.now() - timedelta(days=30)
        )

        assert purge_stale_carts.delay().get() == {"purged": 1}

        alive = set(Order.objects.alive().values_list("pk", flat=True))
        assert alive == {fresh.pk, placed.pk}

    def test_days_argument(self, order_service):
        cart = order_service.create_cart()
        Order.objects.filter(pk=cart.pk).update(
            updated_at=timezone.now() - timedelta(days=3)
        )
        assert purge_stale_carts.delay(days=7).get() == {"purged": 0}
        assert purge_stale_carts.delay(days=2).get() == {"purged": 1}
