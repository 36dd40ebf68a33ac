"""Cache invalidation for catalog lookups.

Every write to a product-owned row bumps that product's cache tag; sale
and category writes bump the shared sales tag because a category sale
can affect any product below it.
"""

from __future__ import annotations

from django.db.models.signals import m2m_changed, post_delete, post_save
from django.dispatch import receiver

from modules.catalog.models import (
    Category,
    OptionValue,
    Product,
    ProductVariant,
    QuantityDiscount,
    Sale,
)
from modules.core.cache import SALES_TAG, invalidate, product_tag


@receiver(post_save, sender=Product)
@receiver(post_delete, sender=Product)
def _product_changed(sender, instance: Product, **kwargs) -> None:
    invalidate(product_tag(instance.pk))


@receiver(post_save, sender=ProductVariant)
@receiver(post_delete, sender=ProductVariant)
@receiver(post_save, sender=OptionValue)
@receiver(post_delete, sender=OptionValue)
@receiver(post_save, sender=QuantityDiscount)
@receiver(post_delete, sender=QuantityDiscount)
def _product_child_changed(sender, instance, **kwargs) -> None:
    invalidate(product_tag(instance.product_id))


@receiver(m2m_changed, sender=ProductVariant.option_values.through)
def _variant_options_changed(sender, instance, **kwargs) -> None:
    if isinstance(instance, ProductVariant):
        invalidate(product_tag(instance.product_id))


@receiver(post_save, sender=Sale)
@receiver(post_delete, sender=Sale)
@receiver(post_save, sender=Category)
@receiver(post_delete, sender=Category)
def _sales_changed(sender, instance, **kwargs) -> None:
    invalidate(SALES_TAG)


@receiver(m2m_changed, sender=Product.categories.through)
def _product_categories_changed(sender, instance, **kwargs) -> None:
    invalidate(SALES_TAG)
