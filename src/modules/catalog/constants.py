"""Catalog domain constants.

Product kinds, fulfilment types, option-group types, oversell policies
and sale discount types.
"""

from django.db import models


class ProductKind(models.TextChoices):
    CATALOG = "catalog", "Catalog item"
    COUPON = "coupon", "Gift card / coupon"
    PLUGIN = "plugin", "Plugin-provided item"


class ProductType(models.TextChoices):
    PHYSICAL = "physical", "Physical"
    DOWNLOAD = "download", "Downloadable"
    VIRTUAL = "virtual", "Virtual / service"


class OptionGroupType(models.TextChoices):
    SELECT = "select", "Select"
    RADIO = "radio", "Radio"
    CHECKBOX = "checkbox", "Checkbox"
    TEXT = "text", "Text"


class OversellPolicy(models.TextChoices):
    ALLOW = "allow", "Allow oversell"
    DENY = "deny", "Show but deny ordering"
    HIDE = "hide", "Hide when out of stock"


class SaleDiscountType(models.TextChoices):
    AMOUNT = "amount", "Amount off"
    PERCENT = "percent", "Percent off"


class SaleItemType(models.TextChoices):
    PRODUCT = "product", "Product"
    CATEGORY = "category", "Category"


# Groups whose values are priced per selection instead of forming variants.
NON_VARIANT_GROUP_TYPES = {OptionGroupType.CHECKBOX, OptionGroupType.TEXT}

# Option value id meaning "nothing selected" in a variant-generation form.
UNSET_OPTION_VALUE = 0
