"""Order aggregate and its ledgers.

Business rules implemented:
- An order starts in ``cart`` with a fresh ``token`` and ``secret``.
- ``order_number`` is a human-readable identifier generated on first save
  (``ORD-YYYYMMDD-XXXXXX``) and regenerated on a unique collision.
- ``order_seq`` (invoice number) is assigned once, on the first move into
  a final status, and comes from the ``OrderSequence`` row id.
- ``order_total == net items + tax + shipping + handling``, rounded.
- Order items snapshot every price at the time they are priced.
- Each status change writes an ``OrderStatusHistory`` row with its actor.
- Soft delete via ``deleted_at`` (inherited from SoftDeleteModel).
"""

from __future__ import annotations

import secrets
from decimal import Decimal
from typing import Any

import structlog
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import IntegrityError, models, transaction
from django.utils import timezone

from modules.core.config import get_shop_settings
from modules.core.currency import ZERO, to_decimal
from modules.core.exceptions import ConcurrencyConflict
from modules.core.models import BaseModel, MoneyField, SoftDeleteModel
from modules.orders.constants import (
    ORDER_NUMBER_MAX_RETRIES,
    TOKEN_LENGTH,
    OrderStatus,
)
from modules.taxes.constants import TaxLocation
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)


def generate_token() -> str:
    return secrets.token_hex(TOKEN_LENGTH)[:TOKEN_LENGTH]


def generate_secret() -> str:
    return secrets.token_urlsafe(24)


class Shipper(BaseModel):
    name = models.CharField(max_length=128)
    enabled = models.BooleanField(default=True)
    min_units = models.DecimalField(max_digits=10, decimal_places=4, default=0)
    max_units = models.DecimalField(
        max_digits=10, decimal_places=4, default=0
    )  # 0 = no limit
    use_fixed = models.BooleanField(
        default=True, help_text="Add the products' fixed shipping to the rate."
    )
    tax_location = models.CharField(
        max_length=16,
        choices=TaxLocation.choices,
        blank=True,
        default=TaxLocation.NONE,
    )

    class Meta:
        db_table = "order_shippers"
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name

    def handles(self, units: Decimal) -> bool:
        if units < self.min_units:
            return False
        return not self.max_units or units <= self.max_units


class ShipperRate(BaseModel):
    """One package size of a shipper: up to ``units`` shipping units for ``rate``."""

    shipper = models.ForeignKey(Shipper, on_delete=models.CASCADE, related_name="rates")
    description = models.CharField(max_length=128, blank=True, default="")
    units = models.DecimalField(
        max_digits=10, decimal_places=4, validators=[MinValueValidator(Decimal("0.0001"))]
    )
    rate = MoneyField()

    class Meta:
        db_table = "order_shipper_rates"
        ordering = ["units"]

    def __str__(self) -> str:
        return f"{self.shipper_id}: {self.units} units for {self.rate}"


class Order(DomainEventMixin, SoftDeleteModel):
    """Order aggregate root.

    The UUIDv7 ``id`` is used for all internal references and API
    look-ups; ``token`` is the short view-link identifier handed to
    anonymous buyers.
    """

    order_number = models.CharField(max_length=20, unique=True, editable=False)
    token = models.CharField(max_length=TOKEN_LENGTH, default=generate_token)
    secret = models.CharField(max_length=64, default=generate_secret)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )
    buyer_email = models.EmailField(blank=True, default="")
    status = models.CharField(max_length=32, default=OrderStatus.CART, db_index=True)
    currency = models.CharField(max_length=3, default="USD")
    billto = models.JSONField(default=dict, blank=True)
    shipto = models.JSONField(default=dict, blank=True)
    geo_country = models.CharField(max_length=2, blank=True, default="")
    shipper = models.ForeignKey(
        "orders.Shipper",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )

    # Charges
    tax = MoneyField()
    shipping = MoneyField()
    handling = MoneyField()
    tax_rate = models.DecimalField(max_digits=7, decimal_places=5, default=Decimal("0"))
    tax_shipping = models.BooleanField(default=False)
    tax_handling = models.BooleanField(default=False)
    discount_code = models.CharField(max_length=32, blank=True, default="")
    discount_pct = models.DecimalField(
        max_digits=6, decimal_places=3, default=Decimal("0")
    )

    # Totals
    gross_items = MoneyField()
    net_nontax = MoneyField()
    net_taxable = MoneyField()
    order_total = MoneyField()
    amount_paid = MoneyField()

    order_seq = models.PositiveIntegerField(unique=True, null=True, blank=True)
    affiliate = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="referred_orders",
    )
    aff_granted = models.BooleanField(default=False)
    stock_recorded = models.BooleanField(default=False)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "-created_at"], name="orders_status_created_idx"),
            models.Index(fields=["token"], name="orders_token_idx"),
        ]

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def net_items(self) -> Decimal:
        return to_decimal(self.net_nontax) + to_decimal(self.net_taxable)

    @property
    def balance_due(self) -> Decimal:
        return to_decimal(self.order_total) - to_decimal(self.amount_paid)

    @property
    def is_final(self) -> bool:
        return self.status not in get_shop_settings().nonfinal_statuses

    @property
    def discount_amount(self) -> Decimal:
        return max(to_decimal(self.gross_items) - self.net_items, ZERO)

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        """Generate a human-readable order number: ``ORD-YYYYMMDD-XXXXXX``."""
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"ORD-{now:%Y%m%d}-{suffix}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if self.order_number:
            super().save(*args, **kwargs)
            return

        for attempt in range(ORDER_NUMBER_MAX_RETRIES):
            self.order_number = self.generate_order_number()
            try:
                with transaction.atomic():
                    super().save(*args, **kwargs)
                return
            except IntegrityError:
                if not Order.objects.filter(order_number=self.order_number).exists():
                    raise
                logger.warning(
                    "order.number_collision",
                    order_number=self.order_number,
                    attempt=attempt + 1,
                )
                self._state.adding = True
        self.order_number = ""
        raise ConcurrencyConflict(
            f"Failed to generate unique order_number after "
            f"{ORDER_NUMBER_MAX_RETRIES} attempts"
        )

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class OrderItem(BaseModel):
    """Line item of an order.

    ``base_price`` is the list price of one unit (base + variant + option
    deltas), ``price`` the unit price after sale and quantity tier, and
    ``net_price`` the unit price after the order's discount code.
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product = models.ForeignKey(
        "catalog.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    variant = models.ForeignKey(
        "catalog.ProductVariant",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="order_items",
    )
    description = models.CharField(max_length=255, blank=True, default="")
    sku = models.CharField(max_length=128, blank=True, default="")
    options_key = models.CharField(max_length=512, blank=True, default="")
    quantity = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    base_price = MoneyField()
    price = MoneyField()
    net_price = MoneyField()
    qty_discount = models.DecimalField(
        max_digits=6, decimal_places=3, default=Decimal("0")
    )
    tax_rate = models.DecimalField(max_digits=7, decimal_places=5, default=Decimal("0"))
    tax = MoneyField()
    shipping = MoneyField()
    handling = MoneyField()
    taxable = models.BooleanField(default=True)
    valid = models.BooleanField(default=True)
    price_override = models.BooleanField(default=False)

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                check=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    @property
    def gross_total(self) -> Decimal:
        return to_decimal(self.price) * self.quantity

    @property
    def net_total(self) -> Decimal:
        return to_decimal(self.net_price) * self.quantity

    def __str__(self) -> str:
        return f"{self.sku or self.product_id} x{self.quantity} @ {self.net_price}"


class OrderItemOption(BaseModel):
    """Option value chosen for an item, or a free-text custom field."""

    item = models.ForeignKey(
        "orders.OrderItem",
        on_delete=models.CASCADE,
        related_name="options",
    )
    option_value = models.ForeignKey(
        "catalog.OptionValue",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    name = models.CharField(max_length=128)
    value = models.TextField(blank=True, default="")
    price = MoneyField()

    class Meta:
        db_table = "order_item_options"
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"{self.name}: {self.value}"


class OrderSequence(models.Model):
    """Invoice numbering table; the sequence number is the row id."""

    id = models.BigAutoField(primary_key=True)
    order = models.OneToOneField(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="sequence",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "order_sequence"

    def __str__(self) -> str:
        return f"#{self.pk} -> {self.order_id}"


class OrderStatusDefinition(BaseModel):
    """Status registry row: validity and notification flags per status."""

    name = models.CharField(max_length=32, unique=True)
    orderby = models.PositiveIntegerField(default=0)
    enabled = models.BooleanField(default=True)
    notify_buyer = models.BooleanField(default=False)
    notify_admin = models.BooleanField(default=False)
    order_valid = models.BooleanField(default=True)
    order_closed = models.BooleanField(default=False)
    aff_eligible = models.BooleanField(default=False)
    cust_viewable = models.BooleanField(default=True)

    class Meta:
        db_table = "order_statuses"
        ordering = ["orderby", "name"]

    def __str__(self) -> str:
        return self.name


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    ``user`` is nullable: ``None`` means the change was performed by the
    system (e.g. a payment notification); ``actor_name`` keeps a readable
    label either way.
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status = models.CharField(max_length=32, blank=True, default="")
    new_status = models.CharField(max_length=32)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    actor_name = models.CharField(max_length=150, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["order", "-created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} : {self.old_status} -> {self.new_status}"


class Payment(BaseModel):
    """One entry of the order's payment ledger."""

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="payments",
    )
    amount = MoneyField()
    gateway = models.CharField(max_length=64)
    ref_id = models.CharField(max_length=128, blank=True, default="")
    method = models.CharField(max_length=64, blank=True, default="")
    is_money = models.BooleanField(default=True)
    comment = models.TextField(blank=True, default="")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )

    class Meta:
        db_table = "order_payments"
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["gateway", "ref_id"],
                condition=~models.Q(ref_id=""),
                name="order_payments_unique_gateway_ref",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.gateway} {self.amount} ({self.order_id})"


class AffiliateBonus(BaseModel):
    """Affiliate payout; at most one per order."""

    order = models.OneToOneField(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="affiliate_bonus",
    )
    affiliate = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="affiliate_bonuses",
    )
    percent = models.DecimalField(max_digits=6, decimal_places=3)
    amount = MoneyField()

    class Meta:
        db_table = "affiliate_bonuses"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.affiliate_id} {self.amount} ({self.order_id})"
