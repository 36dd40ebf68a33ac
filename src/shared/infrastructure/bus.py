"""In-memory event bus.

Handlers subscribed to a base event class also receive its subclasses,
so a handler on ``DomainEvent`` sees every event.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Type

import structlog

from shared.domain.bus import IEventBus, IEventHandler
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class InMemoryEventBus(IEventBus):
    def __init__(self) -> None:
        self._handlers: Dict[Type[DomainEvent], List[IEventHandler]] = {}

    def subscribe(self, event_class: Type[DomainEvent], handler: IEventHandler) -> None:
        handlers = self._handlers.setdefault(event_class, [])
        if handler not in handlers:
            handlers.append(handler)

    def handlers_for(self, event: DomainEvent) -> List[IEventHandler]:
        found: List[IEventHandler] = []
        for klass in type(event).__mro__:
            for handler in self._handlers.get(klass, []):
                if handler not in found:
                    found.append(handler)
        return found

    def publish(self, event: DomainEvent) -> None:
        handlers = self.handlers_for(event)
        logger.debug(
            "event.published",
            event_name=event.event_name,
            aggregate_id=str(event.aggregate_id),
            handler_count=len(handlers),
        )
        for handler in handlers:
            handler.handle(event)

    def publish_all(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            self.publish(event)

    def clear(self) -> None:
        self._handlers.clear()


event_bus = InMemoryEventBus()
