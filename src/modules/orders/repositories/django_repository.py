"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.

Concurrency control on order mutations uses ``select_for_update()``;
stock counters are updated by the inventory repository.  The invoice
sequence relies on the unique ``order`` column of ``OrderSequence``: the
loser of an insert race reads the winner's row back.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Prefetch, Sum

from modules.core.cache import cached, invalidate
from modules.core.currency import ZERO
from modules.core.models import OutboxEvent
from modules.orders.constants import OrderStatus
from modules.orders.models import (
    Order,
    OrderItem,
    OrderItemOption,
    OrderSequence,
    OrderStatusDefinition,
    OrderStatusHistory,
    Payment,
    Shipper,
)
from modules.orders.repositories.interfaces import IOrderRepository
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)

STATUS_TAG = "order_statuses"


def _items_queryset():
    return OrderItem.objects.select_related("product", "variant").prefetch_related(
        Prefetch(
            "options",
            queryset=OrderItemOption.objects.select_related("option_value__group"),
        )
    )


def _load_status_registry() -> Dict[str, OrderStatusDefinition]:
    return {row.name: row for row in OrderStatusDefinition.objects.all()}


def invalidate_status_registry() -> None:
    invalidate(STATUS_TAG)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: Any) -> Optional[Order]:
        """Retrieve a live order with eager-loaded relations.

        Returns ``None`` for non-existent, deleted or malformed IDs.
        """
        try:
            return (
                Order.objects.alive()
                .select_related("shipper")
                .prefetch_related(
                    Prefetch("items", queryset=_items_queryset()), "status_history"
                )
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: Any) -> Optional[Order]:
        try:
            return (
                Order.objects.alive()
                .select_for_update(of=("self",))
                .select_related("shipper")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_by_token(self, token: str) -> Optional[Order]:
        return Order.objects.alive().filter(token=token).first()

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        queryset = Order.objects.alive()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def stale_carts(self, cutoff: datetime) -> List[Order]:
        return list(
            Order.objects.alive().filter(
                status=OrderStatus.CART, updated_at__lt=cutoff
            )
        )

    # ------------------------------------------------------------------
    # Save / Delete (IRepository contract)
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist the order and write its pending events to the outbox."""
        entity.save()

        events = entity.pull_domain_events()
        for event in events:
            OutboxEvent.objects.create(
                event_type=event.event_name,
                aggregate_id=str(event.aggregate_id),
                payload=event.to_payload(),
                topic=event.topic,
            )
        if events:
            transaction.on_commit(lambda: event_bus.publish_all(events))

        logger.debug("order.saved", order_id=str(entity.pk), event_count=len(events))
        return entity

    @transaction.atomic
    def delete(self, id: Any) -> bool:
        """Soft-delete an order by ID."""
        order = self.get_by_id(id)
        if not order:
            return False
        order.delete()
        logger.info("order.soft_deleted", order_id=str(id))
        return True

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def items(self, order_id: Any) -> List[OrderItem]:
        return list(_items_queryset().filter(order_id=order_id))

    def get_item(self, order_id: Any, item_id: Any) -> Optional[OrderItem]:
        try:
            return _items_queryset().filter(order_id=order_id, id=item_id).first()
        except (ValueError, ValidationError):
            return None

    @transaction.atomic
    def save_item(
        self, item: OrderItem, options: Optional[Iterable[OrderItemOption]] = None
    ) -> OrderItem:
        item.save()
        if options is not None:
            item.options.all().delete()
            rows = list(options)
            for row in rows:
                row.item = item
            OrderItemOption.objects.bulk_create(rows)
        return item

    def save_items(self, items: Iterable[OrderItem], fields: List[str]) -> None:
        items = list(items)
        if items:
            OrderItem.objects.bulk_update(items, fields)

    def delete_item(self, item_id: Any) -> bool:
        deleted, _ = OrderItem.objects.filter(id=item_id).delete()
        return deleted > 0

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def add_history(
        self,
        order_id: Any,
        old_status: str,
        new_status: str,
        user: Any = None,
        actor_name: str = "",
        notes: str = "",
    ) -> OrderStatusHistory:
        history = OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=old_status or "",
            new_status=new_status,
            user=user,
            actor_name=actor_name,
            notes=notes,
        )
        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=new_status,
            actor=actor_name,
        )
        return history

    def assign_sequence(self, order_id: Any) -> int:
        try:
            with transaction.atomic():
                row = OrderSequence.objects.create(order_id=order_id)
        except IntegrityError:
            row = OrderSequence.objects.get(order_id=order_id)
            logger.info("order.sequence_reread", order_id=str(order_id), order_seq=row.pk)
        return row.pk

    def status_definition(self, name: str) -> Optional[OrderStatusDefinition]:
        registry = cached(STATUS_TAG, "registry", _load_status_registry)
        return registry.get(name)

    def mark_affiliate_granted(self, order_id: Any) -> bool:
        updated = Order.objects.filter(id=order_id, aff_granted=False).update(
            aff_granted=True
        )
        return updated > 0

    def mark_stock_recorded(self, order_id: Any) -> bool:
        updated = Order.objects.filter(id=order_id, stock_recorded=False).update(
            stock_recorded=True
        )
        return updated > 0

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def add_payment(self, order_id: Any, **fields: Any) -> Tuple[Payment, bool]:
        ref_id = fields.get("ref_id", "")
        gateway = fields.get("gateway", "")
        try:
            with transaction.atomic():
                payment = Payment.objects.create(order_id=order_id, **fields)
        except IntegrityError:
            payment = Payment.objects.filter(gateway=gateway, ref_id=ref_id).first()
            if payment is None:
                raise
            logger.info(
                "payment.duplicate_ignored", order_id=str(order_id), ref_id=ref_id
            )
            return payment, False
        return payment, True

    def total_paid(self, order_id: Any) -> Decimal:
        total = Payment.objects.filter(order_id=order_id, is_money=True).aggregate(
            total=Sum("amount")
        )["total"]
        return total if total is not None else ZERO

    # ------------------------------------------------------------------
    # Shippers
    # ------------------------------------------------------------------

    def get_shipper(self, shipper_id: Any) -> Optional[Shipper]:
        try:
            return Shipper.objects.filter(id=shipper_id, enabled=True).first()
        except (ValueError, ValidationError):
            return None

    def active_shippers(self) -> List[Shipper]:
        return list(Shipper.objects.filter(enabled=True).prefetch_related("rates"))
