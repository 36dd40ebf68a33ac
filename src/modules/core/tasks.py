"""Background tasks for the core module."""

from celery import shared_task

from modules.core.outbox import DEFAULT_BATCH, relay_pending


@shared_task(name="core.relay_outbox")
def relay_outbox(limit: int = DEFAULT_BATCH):
    """Publish pending outbox events; meant to run periodically."""
    return relay_pending(limit=limit)
