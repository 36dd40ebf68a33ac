"""Catalog DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.catalog.models import OptionValue, Product, ProductVariant


class OptionValueSerializer(serializers.ModelSerializer):
    group = serializers.CharField(source="group.name", read_only=True)
    group_type = serializers.CharField(source="group.group_type", read_only=True)

    class Meta:
        model = OptionValue
        fields = ["id", "group", "group_type", "value", "sku", "price", "orderby"]
        read_only_fields = fields


class ProductSerializer(serializers.ModelSerializer):
    """Read-only serializer for the Product resource."""

    class Meta:
        model = Product
        fields = [
            "id",
            "sku",
            "name",
            "description",
            "kind",
            "prod_type",
            "price",
            "taxable",
            "oversell",
            "track_onhand",
            "min_ord_qty",
            "max_ord_qty",
            "allow_price_override",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ProductDetailSerializer(ProductSerializer):
    options = serializers.SerializerMethodField()

    class Meta(ProductSerializer.Meta):
        fields = ProductSerializer.Meta.fields + ["options"]
        read_only_fields = fields

    def get_options(self, obj: Product) -> list:
        values = obj.option_values.filter(enabled=True).select_related("group")
        return OptionValueSerializer(values, many=True).data


class ProductVariantSerializer(serializers.ModelSerializer):
    description = serializers.SerializerMethodField()
    option_values = serializers.PrimaryKeyRelatedField(many=True, read_only=True)

    class Meta:
        model = ProductVariant
        fields = [
            "id",
            "product",
            "sku",
            "price",
            "weight",
            "shipping_units",
            "img_ids",
            "enabled",
            "option_values",
            "description",
        ]
        read_only_fields = fields

    def get_description(self, obj: ProductVariant) -> str:
        return obj.description()


class PriceQuoteSerializer(serializers.Serializer):
    option_value_ids = serializers.ListField(
        child=serializers.UUIDField(), required=False, default=list
    )
    quantity = serializers.IntegerField(min_value=1, default=1)
    override_price = serializers.DecimalField(
        max_digits=14, decimal_places=4, required=False, allow_null=True
    )


class PriceBreakdownSerializer(serializers.Serializer):
    base_price = serializers.DecimalField(max_digits=14, decimal_places=4)
    options_price = serializers.DecimalField(max_digits=14, decimal_places=4)
    sale_price = serializers.DecimalField(max_digits=14, decimal_places=4)
    qty_discount_pct = serializers.DecimalField(max_digits=6, decimal_places=3)
    unit_price = serializers.DecimalField(max_digits=14, decimal_places=4)
    sale_id = serializers.UUIDField(allow_null=True)
    overridden = serializers.BooleanField()


class GenerateVariantsSerializer(serializers.Serializer):
    selections = serializers.DictField(
        child=serializers.ListField(child=serializers.CharField(allow_blank=True))
    )
    override_price = serializers.DecimalField(
        max_digits=14, decimal_places=4, required=False, allow_null=True
    )
    weight = serializers.DecimalField(max_digits=10, decimal_places=4, default=0)
    shipping_units = serializers.DecimalField(
        max_digits=10, decimal_places=4, default=0
    )
    img_ids = serializers.ListField(
        child=serializers.CharField(), required=False, default=list
    )
    enabled = serializers.BooleanField(default=True)
