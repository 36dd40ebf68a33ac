from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.orders"
    label = "orders"

    def ready(self) -> None:
        from modules.orders.events import (
            CartCreated,
            DiscountCodeApplied,
            OrderInvoiced,
            OrderStatusChanged,
            PaymentRecorded,
        )
        from modules.orders.handlers import (
            cart_created_handler,
            discount_code_applied_handler,
            order_invoiced_handler,
            order_status_changed_handler,
            payment_recorded_handler,
        )
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(CartCreated, cart_created_handler)
        event_bus.subscribe(OrderStatusChanged, order_status_changed_handler)
        event_bus.subscribe(OrderInvoiced, order_invoiced_handler)
        event_bus.subscribe(PaymentRecorded, payment_recorded_handler)
        event_bus.subscribe(DiscountCodeApplied, discount_code_applied_handler)

        from modules.orders import signals  # noqa: F401
