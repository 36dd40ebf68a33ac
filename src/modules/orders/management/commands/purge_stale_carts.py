from __future__ import annotations

from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from modules.core.config import get_shop_settings
from modules.orders.factory import build_order_service


class Command(BaseCommand):
    help = "Delete carts that have not been touched for a number of days."

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=None,
            help="Age in days (defaults to SHOP days_purge_cart).",
        )

    def handle(self, *args, **options):
        days = options["days"]
        if days is None:
            days = get_shop_settings().days_purge_cart
        cutoff = timezone.now() - timedelta(days=days)
        purged = build_order_service().purge_stale_carts(cutoff)
        self.stdout.write(self.style.SUCCESS(f"Purged {purged} stale cart(s)."))
