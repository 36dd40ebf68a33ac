"""Order status transitions and their side effects.

``transition`` applies one status change to a locked order:

1. An empty or unchanged status is a no-op.
2. ``paid`` is stored as ``processing``.
3. The first move into a final status assigns the invoice sequence
   (insert or read back the existing row, never a retry loop).
4. A destination flagged ``aff_eligible`` grants the affiliate bonus,
   at most once per order (``aff_granted``).
5. The change is persisted with a history row naming the actor, and the
   buyer/admin are notified as the registry flags (or ``force_notify``)
   say.

Leaving cart/pending/invoiced for a valid, paid status converts the
items' stock reservations into purchases; since the order can leave
those statuses only once per payment, purchases are recorded once.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

import structlog
from django.db import transaction

from modules.core.config import get_shop_settings
from modules.core.currency import to_decimal
from modules.orders.constants import (
    BUILTIN_STATUSES,
    OPEN_FOR_PAYMENT,
    PAID_ALIAS,
    OrderStatus,
)
from modules.orders.events import OrderInvoiced, OrderStatusChanged, PaymentRecorded
from modules.orders.exceptions import InvalidOrderStatus, OrderNotFound
from modules.orders.gateways import CeleryNotificationSender

if TYPE_CHECKING:
    from modules.inventory.services import StockLedger
    from modules.orders.dtos import RecordPaymentDTO
    from modules.orders.gateways import NotificationSender
    from modules.orders.models import Order, OrderStatusDefinition
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

# Built-in statuses that count as a completed sale when unregistered.
_VALID_BUILTINS = frozenset(
    {OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.CLOSED}
)


def actor_label(actor: Any) -> str:
    if actor is None:
        return "system"
    get_username = getattr(actor, "get_username", None)
    return get_username() if callable(get_username) else str(actor)


class OrderStatusMachine:
    """Governs status changes of an order."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        stock: StockLedger,
        notifier: Optional[NotificationSender] = None,
    ) -> None:
        self._repo = order_repository
        self._stock = stock
        self._notifier = notifier or CeleryNotificationSender()

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    @staticmethod
    def is_final(status: str) -> bool:
        return status not in get_shop_settings().nonfinal_statuses

    @staticmethod
    def is_paid(order: Order) -> bool:
        return order.balance_due < get_shop_settings().paid_epsilon

    def can_delete(self, order: Order) -> bool:
        return not self.is_final(order.status) and order.order_seq is None

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    @staticmethod
    def normalise(status: Optional[str]) -> str:
        status = (status or "").strip().lower()
        return OrderStatus.PROCESSING if status == PAID_ALIAS else status

    def definition(self, status: str) -> Optional[OrderStatusDefinition]:
        return self._repo.status_definition(status)

    def validate(self, status: str) -> Optional[OrderStatusDefinition]:
        """Registry row of *status*; raise if the status cannot be used."""
        definition = self.definition(status)
        if definition is None:
            if status not in BUILTIN_STATUSES:
                raise InvalidOrderStatus(f"Unknown order status '{status}'.")
            return None
        if not definition.enabled and status != OrderStatus.CART:
            raise InvalidOrderStatus(f"Order status '{status}' is disabled.")
        return definition

    def _completes_purchase(
        self, old: str, new: str, definition: Optional[OrderStatusDefinition]
    ) -> bool:
        if old not in OPEN_FOR_PAYMENT or new in OPEN_FOR_PAYMENT:
            return False
        if definition is not None:
            return definition.order_valid
        return new in _VALID_BUILTINS

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _lock(self, order_id: Any) -> Order:
        order = self._repo.get_for_update(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    @transaction.atomic
    def set_status(
        self,
        order_id: Any,
        new_status: str,
        actor: Any = None,
        notes: str = "",
        notify: bool = True,
        force_notify: bool = False,
    ) -> Order:
        """Move an order to *new_status*.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: status is unknown or disabled.
        """
        order = self._lock(order_id)
        self.transition(order, new_status, actor, notes, notify, force_notify)
        return order

    def transition(
        self,
        order: Order,
        new_status: str,
        actor: Any = None,
        notes: str = "",
        notify: bool = True,
        force_notify: bool = False,
    ) -> bool:
        """Apply a status change to an already locked *order*.

        Returns ``False`` when nothing changed.
        """
        new_status = self.normalise(new_status)
        old_status = order.status
        if not new_status or new_status == old_status:
            return False

        definition = self.validate(new_status)
        actor_name = actor_label(actor)
        log = logger.bind(
            order_id=str(order.pk),
            old_status=old_status,
            new_status=new_status,
            actor=actor_name,
        )

        if self.is_final(new_status) and order.order_seq is None:
            order.order_seq = self._repo.assign_sequence(order.pk)
            order.add_domain_event(
                OrderInvoiced(aggregate_id=order.pk, order_seq=order.order_seq)
            )
            log.info("order.invoiced", order_seq=order.order_seq)

        if definition is not None and definition.aff_eligible:
            self._grant_affiliate_bonus(order)

        if self._completes_purchase(old_status, new_status, definition):
            self._record_purchases(order)

        order.status = new_status
        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.pk,
                old_status=old_status,
                new_status=new_status,
                actor=actor_name,
            )
        )
        self._repo.save(order)
        self._repo.add_history(
            order.pk,
            old_status,
            new_status,
            user=actor if getattr(actor, "pk", None) else None,
            actor_name=actor_name,
            notes=notes,
        )
        log.info("order.status_changed")

        if notify:
            self._notify(order, new_status, definition, notes, force_notify)
        return True

    def _grant_affiliate_bonus(self, order: Order) -> None:
        if order.affiliate_id is None or order.aff_granted:
            return
        if not self._repo.mark_affiliate_granted(order.pk):
            return
        order.aff_granted = True

        from modules.orders.tasks import create_affiliate_bonus

        order_id = str(order.pk)
        transaction.on_commit(lambda: create_affiliate_bonus.delay(order_id))
        logger.info("affiliate.bonus_scheduled", order_id=order_id)

    def _record_purchases(self, order: Order) -> None:
        if order.stock_recorded or not self._repo.mark_stock_recorded(order.pk):
            return
        order.stock_recorded = True
        for item in self._repo.items(order.pk):
            result = self._stock.record_purchase(
                item.product, item.variant, item.quantity, reserved=True
            )
            if not result:
                logger.error(
                    "order.purchase_not_recorded",
                    order_id=str(order.pk),
                    item_id=str(item.pk),
                    reason=result.reason,
                )

    def _notify(
        self,
        order: Order,
        status: str,
        definition: Optional[OrderStatusDefinition],
        message: str,
        force: bool,
    ) -> None:
        buyer = force or bool(definition and definition.notify_buyer)
        admin = force or bool(definition and definition.notify_admin)
        if buyer or admin:
            self._notifier.notify(order, status, message, buyer=buyer, admin=admin)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def paid_status(self, order: Order) -> str:
        """Status a fully paid order moves to."""
        has_physical = any(item.product.is_physical for item in self._repo.items(order.pk))
        if has_physical:
            return OrderStatus.PROCESSING
        return get_shop_settings().virtual_paid_status

    @transaction.atomic
    def update_payment_status(self, order_id: Any, actor: Any = None) -> Order:
        """Recompute ``amount_paid`` and auto-advance a fully paid order."""
        order = self._lock(order_id)
        self.apply_payments(order, actor)
        return order

    def apply_payments(self, order: Order, actor: Any = None) -> bool:
        paid = to_decimal(self._repo.total_paid(order.pk))
        if paid != to_decimal(order.amount_paid):
            order.amount_paid = paid
            self._repo.save(order)

        if order.status not in OPEN_FOR_PAYMENT or not self.is_paid(order):
            return False
        if not self._repo.items(order.pk):
            return False
        logger.info(
            "order.paid_in_full",
            order_id=str(order.pk),
            amount_paid=str(paid),
            order_total=str(order.order_total),
        )
        return self.transition(order, self.paid_status(order), actor, notes="Paid in full")

    @transaction.atomic
    def record_payment(
        self, order_id: Any, dto: RecordPaymentDTO, actor: Any = None
    ) -> Order:
        """Append a ledger entry and re-evaluate the payment status.

        Raises:
            OrderNotFound: order does not exist.
        """
        order = self._lock(order_id)
        payment, created = self._repo.add_payment(
            order.pk,
            amount=dto.amount,
            gateway=dto.gateway,
            ref_id=dto.ref_id,
            method=dto.method,
            is_money=dto.is_money,
            comment=dto.comment,
            user=actor if getattr(actor, "pk", None) else None,
        )
        if created:
            order.add_domain_event(
                PaymentRecorded(
                    aggregate_id=order.pk,
                    amount=Decimal(payment.amount),
                    gateway=payment.gateway,
                    amount_paid=to_decimal(order.amount_paid) + Decimal(payment.amount),
                )
            )
            self._repo.save(order)
        self.apply_payments(order, actor)
        return order
