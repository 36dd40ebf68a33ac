"""Collaborator contracts consumed by the order services.

``PaymentGateway`` and ``NotificationSender`` are structural protocols;
the shop ships a config-driven gateway (``ConfiguredGateway``) and a
Celery-backed notification sender.  Concrete payment integrations are
registered in the ``GatewayRegistry`` alongside the configured ones.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Protocol, runtime_checkable

import structlog
from django.db import transaction

from modules.core.config import GatewaySettings, get_shop_settings
from modules.core.results import Lookup

logger = structlog.get_logger(__name__)


@runtime_checkable
class PaymentGateway(Protocol):
    name: str

    def supports(self, service: str) -> bool: ...

    def cancel_checkout(self, order: Any) -> None: ...

    def get_display_name(self) -> str: ...


@runtime_checkable
class NotificationSender(Protocol):
    def notify(
        self,
        order: Any,
        status: str,
        message: str = "",
        buyer: bool = True,
        admin: bool = False,
    ) -> None: ...


class ConfiguredGateway:
    """Gateway described only by its ``SHOP['gateways']`` entry."""

    def __init__(self, conf: GatewaySettings) -> None:
        self.name = conf.name
        self._conf = conf

    @property
    def enabled(self) -> bool:
        return self._conf.enabled

    @property
    def test_mode(self) -> bool:
        return self._conf.test_mode

    def supports(self, service: str) -> bool:
        return self._conf.enabled and service in self._conf.services

    def cancel_checkout(self, order: Any) -> None:
        logger.info(
            "gateway.checkout_cancelled",
            gateway=self.name,
            order_id=str(order.pk),
        )

    def get_display_name(self) -> str:
        return self._conf.display_name or self.name

    def __repr__(self) -> str:
        return f"ConfiguredGateway({self.name!r})"


class GatewayRegistry:
    def __init__(self, gateways: Iterable[PaymentGateway] = ()) -> None:
        self._gateways: Dict[str, PaymentGateway] = {}
        for gateway in gateways:
            self.register(gateway)

    @classmethod
    def from_settings(cls) -> GatewayRegistry:
        return cls(ConfiguredGateway(conf) for conf in get_shop_settings().gateways)

    def register(self, gateway: PaymentGateway) -> None:
        self._gateways[gateway.name] = gateway

    def get(self, name: str) -> Lookup[PaymentGateway]:
        gateway = self._gateways.get(name)
        return Lookup.found(gateway) if gateway is not None else Lookup.missing()

    def supporting(self, service: str) -> List[PaymentGateway]:
        return [gw for gw in self._gateways.values() if gw.supports(service)]

    def __contains__(self, name: str) -> bool:
        return name in self._gateways

    def __len__(self) -> int:
        return len(self._gateways)


class CeleryNotificationSender:
    """Enqueue ``orders.send_notification`` once the transaction commits."""

    def notify(
        self,
        order: Any,
        status: str,
        message: str = "",
        buyer: bool = True,
        admin: bool = False,
    ) -> None:
        from modules.orders.tasks import send_notification

        order_id = str(order.pk)
        transaction.on_commit(
            lambda: send_notification.delay(order_id, status, message, buyer, admin)
        )
        logger.info(
            "order.notification_scheduled",
            order_id=order_id,
            status=status,
            buyer=buyer,
            admin=admin,
        )
