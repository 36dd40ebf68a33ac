"""Stock records per product or per product variant.

Business rules implemented here:
- One record per (product, variant); a NULL variant is the product-level
  record used when the product has no variants.
- ``onhand - reserved >= 0`` holds unless the product oversell policy is
  ALLOW.  The ledger enforces it with conditional UPDATEs, never with a
  read-then-write pair.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel


class StockRecord(BaseModel):
    product = models.ForeignKey(
        "catalog.Product", on_delete=models.CASCADE, related_name="stock_records"
    )
    variant = models.ForeignKey(
        "catalog.ProductVariant",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="stock_records",
    )
    onhand = models.IntegerField(default=0)
    reserved = models.IntegerField(default=0)
    reorder = models.IntegerField(default=0)

    class Meta:
        db_table = "inventory_stock"
        constraints = [
            models.UniqueConstraint(
                fields=["product", "variant"],
                condition=models.Q(variant__isnull=False),
                name="stock_unique_variant",
            ),
            models.UniqueConstraint(
                fields=["product"],
                condition=models.Q(variant__isnull=True),
                name="stock_unique_product_level",
            ),
        ]

    @property
    def available(self) -> int:
        return self.onhand - self.reserved

    def __str__(self) -> str:
        return (
            f"{self.product_id}/{self.variant_id or '-'}: "
            f"{self.onhand} onhand, {self.reserved} reserved"
        )
