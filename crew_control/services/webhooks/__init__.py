"""Webhook queueing + dispatch utilities.

Prefer importing from this package when used by other modules.
"""

from crew_control.services.webhooks.dispatch import run_flush_webhook_queue
from crew_control.services.webhooks.queue import (
    QueuedWebhookEvent,
    dequeue_webhook_event,
    enqueue_webhook_event,
    requeue_if_failed,
)
from crew_control.services.webhooks.sink import trigger_webhook

__all__ = [
    "QueuedWebhookEvent",
    "dequeue_webhook_event",
    "enqueue_webhook_event",
    "requeue_if_failed",
    "run_flush_webhook_queue",
    "trigger_webhook",
]
