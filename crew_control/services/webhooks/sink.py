"""Fire-and-forget webhook trigger used by the lifecycle engines."""

from __future__ import annotations

from typing import Any, Protocol
from uuid import UUID

from crew_control.core.logging import get_logger
from crew_control.services.webhooks.queue import QueuedWebhookEvent, enqueue_webhook_event

logger = get_logger(__name__)


class WebhookSink(Protocol):
    """Anything that accepts orchestration events for delivery."""

    async def trigger(self, event: str, payload: dict[str, Any]) -> None: ...


class QueuedWebhookSink:
    """Hands events to the Redis queue; the dispatch worker delivers them."""

    async def trigger(self, event: str, payload: dict[str, Any]) -> None:
        if not enqueue_webhook_event(QueuedWebhookEvent(event=event, data=payload)):
            raise RuntimeError(f"webhook event {event} could not be queued")


def event_payload(**fields: Any) -> dict[str, Any]:
    """JSON-safe event data: UUIDs and datetimes become strings."""
    out: dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, UUID):
            out[key] = str(value)
        elif hasattr(value, "isoformat"):
            out[key] = value.isoformat()
        else:
            out[key] = value
    return out


_default_sink: WebhookSink = QueuedWebhookSink()


def get_webhook_sink() -> WebhookSink:
    return _default_sink


async def trigger_webhook(
    event: str,
    payload: dict[str, Any],
    *,
    sink: WebhookSink | None = None,
) -> None:
    """Emit an event; failures are logged and never reach the caller."""
    target = sink if sink is not None else get_webhook_sink()
    try:
        await target.trigger(event, payload)
    except Exception:
        logger.warning("webhook.trigger_failed", extra={"event": event}, exc_info=True)
