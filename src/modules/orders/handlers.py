"""Event handlers for Orders domain events."""

from __future__ import annotations

import structlog

from modules.orders.events import (
    CartCreated,
    DiscountCodeApplied,
    OrderInvoiced,
    OrderStatusChanged,
    PaymentRecorded,
)
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class CartCreatedHandler(IEventHandler[CartCreated]):
    def handle(self, event: CartCreated) -> None:
        logger.info(
            "order.event.cart_created",
            order_id=str(event.aggregate_id),
            owner_id=event.owner_id,
        )


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    def handle(self, event: OrderStatusChanged) -> None:
        logger.info(
            "order.event.status_changed",
            order_id=str(event.aggregate_id),
            old_status=event.old_status,
            new_status=event.new_status,
            actor=event.actor,
        )


class OrderInvoicedHandler(IEventHandler[OrderInvoiced]):
    def handle(self, event: OrderInvoiced) -> None:
        logger.info(
            "order.event.invoiced",
            order_id=str(event.aggregate_id),
            order_seq=event.order_seq,
        )


class PaymentRecordedHandler(IEventHandler[PaymentRecorded]):
    def handle(self, event: PaymentRecorded) -> None:
        logger.info(
            "order.event.payment_recorded",
            order_id=str(event.aggregate_id),
            amount=str(event.amount),
            gateway=event.gateway,
            amount_paid=str(event.amount_paid),
        )


class DiscountCodeAppliedHandler(IEventHandler[DiscountCodeApplied]):
    def handle(self, event: DiscountCodeApplied) -> None:
        logger.info(
            "order.event.discount_applied",
            order_id=str(event.aggregate_id),
            code=event.code,
            percent=str(event.percent),
        )


cart_created_handler = CartCreatedHandler()
order_status_changed_handler = OrderStatusChangedHandler()
order_invoiced_handler = OrderInvoicedHandler()
payment_recorded_handler = PaymentRecordedHandler()
discount_code_applied_handler = DiscountCodeAppliedHandler()
