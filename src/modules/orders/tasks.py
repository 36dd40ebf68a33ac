"""Background tasks for the orders module.

Tasks receive ids, never model instances, and re-read what they need.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import structlog
from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
from django.db import IntegrityError, transaction
from django.utils import timezone

from modules.core.config import get_shop_settings
from modules.core.currency import Currency, to_decimal

logger = structlog.get_logger(__name__)


@shared_task(name="orders.send_notification")
def send_notification(
    order_id: str, status: str, message: str = "", buyer: bool = True, admin: bool = False
):
    """Mail the buyer and/or the shop about a status change."""
    from modules.orders.models import Order

    order = Order.objects.filter(id=order_id).first()
    if order is None:
        logger.warning("order.notification_skipped", order_id=order_id, reason="missing")
        return {"sent": 0}

    recipients = []
    if buyer and order.buyer_email:
        recipients.append(order.buyer_email)
    admin_email = getattr(settings, "SHOP_ADMIN_EMAIL", "")
    if admin and admin_email:
        recipients.append(admin_email)
    if not recipients:
        logger.info("order.notification_skipped", order_id=order_id, reason="no_recipient")
        return {"sent": 0}

    subject = f"Order {order.order_number}: {status}"
    body = message or f"Your order {order.order_number} is now {status}."
    sent = send_mail(
        subject,
        body,
        getattr(settings, "DEFAULT_FROM_EMAIL", None),
        recipients,
    )
    logger.info(
        "order.notification_sent", order_id=order_id, status=status, recipients=len(recipients)
    )
    return {"sent": sent}


@shared_task(name="orders.create_affiliate_bonus")
def create_affiliate_bonus(order_id: str):
    """Create the order's affiliate payout; a second run is a no-op."""
    from modules.orders.models import AffiliateBonus, Order

    order = Order.objects.filter(id=order_id).first()
    if order is None or order.affiliate_id is None:
        return {"created": False}

    percent = to_decimal(get_shop_settings().affiliate_percent)
    if percent <= 0:
        return {"created": False}

    amount = Currency(order.currency).round(
        order.net_items * percent / Decimal("100")
    )
    try:
        with transaction.atomic():
            AffiliateBonus.objects.create(
                order=order,
                affiliate_id=order.affiliate_id,
                percent=percent,
                amount=amount,
            )
    except IntegrityError:
        logger.info("affiliate.bonus_exists", order_id=order_id)
        return {"created": False}

    logger.info("affiliate.bonus_created", order_id=order_id, amount=str(amount))
    return {"created": True, "amount": str(amount)}


@shared_task(name="orders.purge_stale_carts")
def purge_stale_carts(days: int | None = None):
    """Delete carts untouched for ``days_purge_cart`` days."""
    from modules.orders.factory import build_order_service

    days = days if days is not None else get_shop_settings().days_purge_cart
    cutoff = timezone.now() - timedelta(days=days)
    purged = build_order_service().purge_stale_carts(cutoff)
    logger.info("order.stale_carts_purged", count=purged, days=days)
    return {"purged": purged}
