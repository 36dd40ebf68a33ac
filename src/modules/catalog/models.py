"""Catalog models: products, categories, option groups, variants and sales.

Business rules implemented here:
- SKU is unique and normalised to uppercase.
- A variant is identified by its set of option values; ``option_key``
  (sorted option value ids) carries a unique constraint per product so
  two variants can never share an identical option set.
- Quantity discount tiers are unique per (product, min_qty).
- Sales are attached to a product or to a category and are effective
  only inside their [start, end) window.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

import structlog
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from modules.catalog.constants import (
    OptionGroupType,
    OversellPolicy,
    ProductKind,
    ProductType,
    SaleDiscountType,
    SaleItemType,
)
from modules.core.models import BaseModel, MoneyField, SoftDeleteModel

logger = structlog.get_logger(__name__)


def make_option_key(option_value_ids: Iterable) -> str:
    """Canonical, order-independent key for a set of option value ids."""
    return ",".join(sorted({str(ov_id) for ov_id in option_value_ids}))


class Category(BaseModel):
    """Node of the category tree; sales may be attached at any level."""

    name = models.CharField(max_length=128)
    parent = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="children",
    )
    enabled = models.BooleanField(default=True)

    class Meta:
        db_table = "catalog_categories"
        ordering = ["name"]
        verbose_name_plural = "categories"

    def __str__(self) -> str:
        return self.name


class Product(SoftDeleteModel):
    """Product aggregate root."""

    sku = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    kind = models.CharField(
        max_length=16, choices=ProductKind.choices, default=ProductKind.CATALOG
    )
    prod_type = models.CharField(
        max_length=16, choices=ProductType.choices, default=ProductType.PHYSICAL
    )
    price = MoneyField(validators=[MinValueValidator(Decimal("0"))])
    taxable = models.BooleanField(default=True)
    enabled = models.BooleanField(default=True)
    avail_beg = models.DateField(null=True, blank=True)
    avail_end = models.DateField(null=True, blank=True)
    categories = models.ManyToManyField(Category, blank=True, related_name="products")

    # Stock behaviour
    track_onhand = models.BooleanField(default=False)
    oversell = models.CharField(
        max_length=8, choices=OversellPolicy.choices, default=OversellPolicy.ALLOW
    )
    min_ord_qty = models.PositiveIntegerField(default=1)
    max_ord_qty = models.PositiveIntegerField(default=0)  # 0 = unlimited

    # Pricing flags
    allow_price_override = models.BooleanField(default=False)
    allow_discount_code = models.BooleanField(default=True)

    # Fulfilment charges
    shipping_amt = MoneyField()
    shipping_units = models.DecimalField(max_digits=10, decimal_places=4, default=0)
    handling = MoneyField()
    weight = models.DecimalField(max_digits=10, decimal_places=4, default=0)

    class Meta:
        db_table = "catalog_products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["enabled"], name="products_enabled_idx"),
        ]

    def clean(self) -> None:
        super().clean()
        if self.sku:
            self.sku = self.sku.strip().upper()
        if self.price is not None and self.price < 0:
            raise ValidationError({"price": "Price cannot be negative."})
        if self.avail_beg and self.avail_end and self.avail_beg > self.avail_end:
            raise ValidationError({"avail_end": "Availability ends before it begins."})

    def save(self, *args, **kwargs) -> None:
        if self.sku:
            self.sku = self.sku.strip().upper()
        super().save(*args, **kwargs)

    # ------------------------------------------------------------------
    # Classification helpers
    # ------------------------------------------------------------------

    @property
    def is_physical(self) -> bool:
        return self.prod_type == ProductType.PHYSICAL

    def is_available_on(self, day) -> bool:
        if self.avail_beg and day < self.avail_beg:
            return False
        if self.avail_end and day > self.avail_end:
            return False
        return True

    def handling_for(self, quantity: int) -> Decimal:
        return Decimal(self.handling) * quantity

    def shipping_for(self, quantity: int) -> Decimal:
        return Decimal(self.shipping_amt) * quantity

    def __str__(self) -> str:
        return f"{self.sku} - {self.name}"


class OptionGroup(BaseModel):
    """A named axis of choice, e.g. "Color" or "Gift wrap"."""

    name = models.CharField(max_length=64, unique=True)
    group_type = models.CharField(
        max_length=16, choices=OptionGroupType.choices, default=OptionGroupType.SELECT
    )
    orderby = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "catalog_option_groups"
        ordering = ["orderby", "name"]

    def __str__(self) -> str:
        return self.name


class OptionValue(BaseModel):
    """One selectable value of an option group for a given product."""

    group = models.ForeignKey(
        OptionGroup, on_delete=models.CASCADE, related_name="values"
    )
    product = models.ForeignKey(
        Product, on_delete=models.CASCADE, related_name="option_values"
    )
    value = models.CharField(max_length=64)
    sku = models.CharField(max_length=16, blank=True, default="")
    price = MoneyField()
    orderby = models.PositiveIntegerField(default=0)
    enabled = models.BooleanField(default=True)

    class Meta:
        db_table = "catalog_option_values"
        ordering = ["group__orderby", "orderby", "value"]
        constraints = [
            models.UniqueConstraint(
                fields=["product", "group", "value"],
                name="option_values_unique_per_group",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.group.name}: {self.value}"


class ProductVariant(SoftDeleteModel):
    """A concrete combination of option values for a product."""

    product = models.ForeignKey(
        Product, on_delete=models.CASCADE, related_name="variants"
    )
    sku = models.CharField(max_length=128, blank=True, default="")
    price = MoneyField()
    weight = models.DecimalField(max_digits=10, decimal_places=4, default=0)
    shipping_units = models.DecimalField(max_digits=10, decimal_places=4, default=0)
    img_ids = models.JSONField(default=list, blank=True)
    enabled = models.BooleanField(default=True)
    option_values = models.ManyToManyField(OptionValue, related_name="variants")
    option_key = models.CharField(max_length=1024, editable=False)

    class Meta:
        db_table = "catalog_product_variants"
        ordering = ["sku"]
        constraints = [
            models.UniqueConstraint(
                fields=["product", "option_key"],
                name="variants_unique_option_set",
            ),
        ]

    @property
    def price_delta(self) -> Decimal:
        return Decimal(self.price)

    def description(self) -> str:
        """Human label such as ``Color: Red, Size: L`` in group order."""
        values = sorted(
            self.option_values.select_related("group").all(),
            key=lambda ov: (ov.group.orderby, ov.group.name),
        )
        return ", ".join(f"{ov.group.name}: {ov.value}" for ov in values)

    def __str__(self) -> str:
        return self.sku or f"variant {self.pk}"


class QuantityDiscount(BaseModel):
    """Percent-off tier keyed by minimum purchased quantity."""

    product = models.ForeignKey(
        Product, on_delete=models.CASCADE, related_name="qty_discounts"
    )
    min_qty = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    percent = models.DecimalField(
        max_digits=6,
        decimal_places=3,
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))],
    )

    class Meta:
        db_table = "catalog_qty_discounts"
        ordering = ["min_qty"]
        constraints = [
            models.UniqueConstraint(
                fields=["product", "min_qty"], name="qty_discounts_unique_tier"
            ),
        ]

    def __str__(self) -> str:
        return f"{self.product_id}: {self.min_qty}+ -> {self.percent}%"


class SaleQuerySet(models.QuerySet):
    def active(self, at=None) -> SaleQuerySet:
        at = at or timezone.now()
        return self.filter(start__lt=at, end__gt=at)


class Sale(BaseModel):
    """Time-bounded price reduction for a product or a category."""

    name = models.CharField(max_length=64, blank=True, default="")
    item_type = models.CharField(max_length=16, choices=SaleItemType.choices)
    product = models.ForeignKey(
        Product, on_delete=models.CASCADE, null=True, blank=True, related_name="sales"
    )
    category = models.ForeignKey(
        Category, on_delete=models.CASCADE, null=True, blank=True, related_name="sales"
    )
    discount_type = models.CharField(
        max_length=16, choices=SaleDiscountType.choices, default=SaleDiscountType.PERCENT
    )
    amount = MoneyField(validators=[MinValueValidator(Decimal("0"))])
    start = models.DateTimeField()
    end = models.DateTimeField()

    objects = SaleQuerySet.as_manager()

    class Meta:
        db_table = "catalog_sales"
        ordering = ["start"]
        constraints = [
            models.CheckConstraint(
                check=(
                    models.Q(
                        item_type=SaleItemType.PRODUCT,
                        product__isnull=False,
                        category__isnull=True,
                    )
                    | models.Q(
                        item_type=SaleItemType.CATEGORY,
                        category__isnull=False,
                        product__isnull=True,
                    )
                ),
                name="sales_single_target",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.start and self.end and self.start >= self.end:
            raise ValidationError({"end": "Sale must end after it starts."})
        if self.discount_type == SaleDiscountType.PERCENT and self.amount > 100:
            raise ValidationError({"amount": "Percent sale cannot exceed 100."})

    def is_active(self, at=None) -> bool:
        at = at or timezone.now()
        return self.start < at < self.end

    def __str__(self) -> str:
        return f"{self.name or 'Sale'} ({self.discount_type} {self.amount})"
