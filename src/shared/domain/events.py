"""Domain event primitives for the modular monolith.

Aggregates record events while they are being changed; the repository
that saves the aggregate pulls them, writes them to the outbox in the
same transaction and hands them to the in-process bus after commit.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, ClassVar, Dict, List
from uuid import UUID

import uuid6


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: _jsonable(val) for key, val in value.items()}
    return value


@dataclass(frozen=True)
class DomainEvent:
    """Base domain event (immutable).

    Subclasses add their own fields; every field needs a default because
    the base fields already have one.
    """

    topic: ClassVar[str] = "shop"

    aggregate_id: UUID
    event_id: UUID = field(default_factory=uuid6.uuid7)
    occurred_on: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def event_name(self) -> str:
        return type(self).__name__

    def to_payload(self) -> Dict[str, Any]:
        """JSON-safe dict of every field, for the outbox."""
        return _jsonable(asdict(self))


class DomainEventMixin:
    """Mixin for aggregate roots that collect domain events in memory."""

    _domain_events: List[DomainEvent]

    def _events(self) -> List[DomainEvent]:
        if not hasattr(self, "_domain_events"):
            self._domain_events = []
        return self._domain_events

    def add_domain_event(self, event: DomainEvent) -> None:
        self._events().append(event)

    @property
    def domain_events(self) -> List[DomainEvent]:
        return list(self._events())

    def pull_domain_events(self) -> List[DomainEvent]:
        """Return the recorded events and forget them."""
        events = list(self._events())
        self._events().clear()
        return events
