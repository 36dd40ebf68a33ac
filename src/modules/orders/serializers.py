"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import AddressKind
from modules.orders.models import (
    Order,
    OrderItem,
    OrderItemOption,
    OrderStatusHistory,
    Payment,
)

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CreateCartSerializer(serializers.Serializer):
    currency = serializers.CharField(max_length=3, required=False, allow_blank=True)
    buyer_email = serializers.EmailField(required=False, allow_blank=True)


class AddItemSerializer(serializers.Serializer):
    """Validates an add-to-cart request."""

    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1, default=1)
    option_value_ids = serializers.ListField(
        child=serializers.UUIDField(), required=False, default=list
    )
    custom_fields = serializers.DictField(
        child=serializers.CharField(allow_blank=True), required=False, default=dict
    )
    override_price = serializers.DecimalField(
        max_digits=14, decimal_places=4, required=False, allow_null=True
    )


class UpdateItemSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=0)


class AddressSerializer(serializers.Serializer):
    kind = serializers.ChoiceField(choices=AddressKind.choices)
    name = serializers.CharField(required=False, allow_blank=True, default="")
    company = serializers.CharField(required=False, allow_blank=True, default="")
    address1 = serializers.CharField(required=False, allow_blank=True, default="")
    address2 = serializers.CharField(required=False, allow_blank=True, default="")
    city = serializers.CharField(required=False, allow_blank=True, default="")
    state = serializers.CharField(required=False, allow_blank=True, default="")
    zip = serializers.CharField(required=False, allow_blank=True, default="")
    country = serializers.CharField(max_length=2)
    phone = serializers.CharField(required=False, allow_blank=True, default="")


class ShipperSelectionSerializer(serializers.Serializer):
    shipper_id = serializers.UUIDField(allow_null=True)


class ShippingQuoteSerializer(serializers.Serializer):
    shipper_id = serializers.UUIDField(allow_null=True)
    shipper_name = serializers.CharField()
    units = serializers.DecimalField(max_digits=14, decimal_places=4)
    total = serializers.DecimalField(max_digits=14, decimal_places=4)


class DiscountCodeSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=32, allow_blank=True)


class CheckoutSerializer(serializers.Serializer):
    gateway = serializers.CharField(max_length=64)


class SetStatusSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=32)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    notify = serializers.BooleanField(required=False, default=True)
    force_notify = serializers.BooleanField(required=False, default=False)


class RecordPaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=14, decimal_places=4)
    gateway = serializers.CharField(max_length=64)
    ref_id = serializers.CharField(max_length=128, required=False, allow_blank=True, default="")
    method = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    is_money = serializers.BooleanField(required=False, default=True)
    comment = serializers.CharField(required=False, allow_blank=True, default="")


class MergeCartSerializer(serializers.Serializer):
    cart_id = serializers.UUIDField()
    token = serializers.CharField(max_length=32)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemOptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItemOption
        fields = ["id", "option_value_id", "name", "value", "price"]
        read_only_fields = fields


class OrderItemSerializer(serializers.ModelSerializer):
    """Read serializer for order items with their price snapshot."""

    options = OrderItemOptionSerializer(many=True, read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "variant_id",
            "sku",
            "description",
            "quantity",
            "base_price",
            "price",
            "net_price",
            "qty_discount",
            "tax_rate",
            "tax",
            "shipping",
            "handling",
            "taxable",
            "valid",
            "price_override",
            "options",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusHistory
        fields = ["id", "old_status", "new_status", "actor_name", "notes", "created_at"]
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            "id",
            "amount",
            "gateway",
            "ref_id",
            "method",
            "is_money",
            "comment",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested items and history."""

    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)
    net_items = serializers.DecimalField(max_digits=14, decimal_places=4, read_only=True)
    balance_due = serializers.DecimalField(max_digits=14, decimal_places=4, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "token",
            "owner_id",
            "status",
            "currency",
            "billto",
            "shipto",
            "shipper_id",
            "discount_code",
            "discount_pct",
            "gross_items",
            "net_taxable",
            "net_nontax",
            "net_items",
            "tax",
            "tax_rate",
            "tax_shipping",
            "tax_handling",
            "shipping",
            "handling",
            "order_total",
            "amount_paid",
            "balance_due",
            "order_seq",
            "created_at",
            "updated_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "status",
            "currency",
            "order_total",
            "order_seq",
            "created_at",
        ]
        read_only_fields = fields
