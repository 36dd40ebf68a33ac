"""Cache invalidation for the order status registry."""

from __future__ import annotations

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from modules.orders.models import OrderStatusDefinition
from modules.orders.repositories.django_repository import invalidate_status_registry


@receiver(post_save, sender=OrderStatusDefinition)
@receiver(post_delete, sender=OrderStatusDefinition)
def status_registry_changed(sender, instance, **kwargs) -> None:
    invalidate_status_registry()
