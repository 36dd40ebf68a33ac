"""Outbox relay: hands stored domain events to a publisher.

Rows are read in creation order; a row that fails is retried on the next
run until ``max_retries`` is reached, after which it stays ``FAILED`` for
manual inspection.
"""

from __future__ import annotations

from typing import Optional, Protocol

import structlog
from django.db import transaction
from django.db.models import Q

from modules.core.models import EventStatus, OutboxEvent

logger = structlog.get_logger(__name__)

DEFAULT_BATCH = 100
DEFAULT_MAX_RETRIES = 5


class OutboxPublisher(Protocol):
    def publish(self, topic: str, event_type: str, payload: dict) -> None: ...


class LogPublisher:
    """Publishes events to the structured log stream."""

    def __init__(self) -> None:
        self._log = structlog.get_logger("shop.events")

    def publish(self, topic: str, event_type: str, payload: dict) -> None:
        self._log.info("outbox.event", topic=topic, event_type=event_type, payload=payload)


def relay_pending(
    publisher: Optional[OutboxPublisher] = None,
    limit: int = DEFAULT_BATCH,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> dict:
    """Publish up to *limit* pending (or retryable) events."""
    publisher = publisher or LogPublisher()
    published = failed = 0
    with transaction.atomic():
        rows = list(
            OutboxEvent.objects.select_for_update(skip_locked=True)
            .filter(
                Q(status=EventStatus.PENDING)
                | Q(status=EventStatus.FAILED, retry_count__lt=max_retries)
            )
            .order_by("created_at")[:limit]
        )
        for row in rows:
            try:
                publisher.publish(row.topic, row.event_type, row.payload)
            except Exception as exc:  # noqa: BLE001
                row.mark_as_failed(str(exc))
                failed += 1
                logger.warning(
                    "outbox.publish_failed",
                    event_id=str(row.pk),
                    event_type=row.event_type,
                    retry_count=row.retry_count,
                    error=str(exc),
                )
            else:
                row.mark_as_published()
                published += 1

    if rows:
        logger.info("outbox.relayed", published=published, failed=failed)
    return {"published": published, "failed": failed}
