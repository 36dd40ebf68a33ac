"""Behaviour of each product kind expressed as a capability set.

Services never branch on ``Product.kind`` directly; they ask for a
typed capability through the accessors below.
"""

from __future__ import annotations

import enum
from typing import Dict

from modules.catalog.constants import ProductKind
from modules.catalog.models import Product


class Capability(enum.Flag):
    PRICEABLE = enum.auto()
    STOCKABLE = enum.auto()
    PURCHASABLE = enum.auto()
    DISCOUNTABLE = enum.auto()  # accepts discount codes
    ACCUMULATES = enum.auto()  # identical lines merge in the cart
    OVERRIDE_PRICE = enum.auto()  # buyer-supplied price always honoured
    TAXABLE = enum.auto()


_STANDARD = (
    Capability.PRICEABLE
    | Capability.STOCKABLE
    | Capability.PURCHASABLE
    | Capability.DISCOUNTABLE
    | Capability.ACCUMULATES
    | Capability.TAXABLE
)

KIND_CAPABILITIES: Dict[str, Capability] = {
    ProductKind.CATALOG: _STANDARD,
    # Gift cards: amount chosen by the buyer, one card per line, untaxed.
    ProductKind.COUPON: (
        Capability.PRICEABLE | Capability.PURCHASABLE | Capability.OVERRIDE_PRICE
    ),
    ProductKind.PLUGIN: _STANDARD,
}


def capabilities_for(product: Product) -> Capability:
    return KIND_CAPABILITIES.get(product.kind, _STANDARD)


def has_capability(product: Product, capability: Capability) -> bool:
    return bool(capabilities_for(product) & capability)


def is_stockable(product: Product) -> bool:
    """Stock is tracked only for stockable kinds with tracking switched on."""
    return has_capability(product, Capability.STOCKABLE) and product.track_onhand


def is_purchasable(product: Product) -> bool:
    return has_capability(product, Capability.PURCHASABLE)


def allows_price_override(product: Product) -> bool:
    return has_capability(product, Capability.OVERRIDE_PRICE) or bool(
        product.allow_price_override
    )


def allows_discount_code(product: Product) -> bool:
    return has_capability(product, Capability.DISCOUNTABLE) and bool(
        product.allow_discount_code
    )


def is_taxable(product: Product) -> bool:
    return has_capability(product, Capability.TAXABLE) and bool(product.taxable)


def accumulates_in_cart(product: Product) -> bool:
    return has_capability(product, Capability.ACCUMULATES)
