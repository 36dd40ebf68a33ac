from __future__ import annotations

from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from modules.catalog.constants import OversellPolicy, ProductType
from modules.catalog.dtos import CreateProductDTO
from modules.catalog.exceptions import ProductAlreadyExists
from modules.catalog.factory import build_product_service
from modules.orders.constants import DEFAULT_STATUSES
from modules.orders.models import OrderStatusDefinition, Shipper
from modules.orders.repositories.django_repository import invalidate_status_registry

DEFAULT_SHIPPERS = ("Standard", "Express")

DEMO_CATALOG = [
    # sku, name, type, price, onhand
    ("DEMO-MUG", "Enamel Mug", ProductType.PHYSICAL, Decimal("12.50"), 40),
    ("DEMO-TEE", "Cotton T-Shirt", ProductType.PHYSICAL, Decimal("19.90"), 25),
    ("DEMO-LAMP", "Desk Lamp", ProductType.PHYSICAL, Decimal("49.00"), 5),
    ("DEMO-EBOOK", "Field Guide (PDF)", ProductType.DOWNLOAD, Decimal("9.99"), None),
]


class Command(BaseCommand):
    help = "Seed the order status registry, default shippers and a demo catalog."

    def add_arguments(self, parser):
        parser.add_argument(
            "--no-shippers",
            action="store_true",
            help="Only seed the status registry.",
        )
        parser.add_argument(
            "--demo-catalog",
            action="store_true",
            help="Also create a few demo products for local development.",
        )

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write("Seeding order statuses...")
        created = 0
        for (
            name,
            orderby,
            notify_buyer,
            notify_admin,
            order_valid,
            order_closed,
            aff_eligible,
        ) in DEFAULT_STATUSES:
            _, was_created = OrderStatusDefinition.objects.update_or_create(
                name=name,
                defaults={
                    "orderby": orderby,
                    "enabled": True,
                    "notify_buyer": notify_buyer,
                    "notify_admin": notify_admin,
                    "order_valid": order_valid,
                    "order_closed": order_closed,
                    "aff_eligible": aff_eligible,
                },
            )
            created += int(was_created)
        invalidate_status_registry()

        shippers = 0
        if not options["no_shippers"]:
            for name in DEFAULT_SHIPPERS:
                _, was_created = Shipper.objects.get_or_create(name=name)
                shippers += int(was_created)

        products = self._seed_products() if options["demo_catalog"] else 0

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"statuses={len(DEFAULT_STATUSES)} (new={created}), "
                f"shippers={shippers}, "
                f"products={products}"
            )
        )

    def _seed_products(self) -> int:
        self.stdout.write("Creating demo products...")
        service = build_product_service()
        created = 0
        for sku, name, prod_type, price, onhand in DEMO_CATALOG:
            dto = CreateProductDTO(
                sku=sku,
                name=name,
                price=price,
                prod_type=prod_type,
                track_onhand=onhand is not None,
                oversell=OversellPolicy.DENY if onhand is not None else OversellPolicy.ALLOW,
                onhand=onhand or 0,
            )
            try:
                service.create_product(dto)
            except ProductAlreadyExists:
                continue
            created += 1
        return created
