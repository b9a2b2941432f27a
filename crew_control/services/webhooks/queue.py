"""Webhook event queue persistence helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from crew_control.core.config import settings
from crew_control.core.logging import get_logger
from crew_control.services.queue import QueuedTask, dequeue_task, enqueue_task
from crew_control.services.queue import requeue_if_failed as generic_requeue_if_failed

logger = get_logger(__name__)
TASK_TYPE = "webhook_event"


def _new_event_id() -> str:
    return f"evt_{uuid4().hex}"


@dataclass(frozen=True)
class QueuedWebhookEvent:
    """Orchestration event waiting to be fanned out to subscribed endpoints."""

    event: str
    data: dict[str, Any]
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    attempts: int = 0
    # Restricts a retry to the endpoints that failed last time.
    webhook_ids: tuple[str, ...] | None = None


def _task_from_event(item: QueuedWebhookEvent) -> QueuedTask:
    return QueuedTask(
        task_type=TASK_TYPE,
        payload={
            "event": item.event,
            "event_id": item.event_id,
            "data": item.data,
            "occurred_at": item.occurred_at.isoformat(),
            "webhook_ids": list(item.webhook_ids) if item.webhook_ids is not None else None,
        },
        created_at=item.occurred_at,
        attempts=item.attempts,
    )


def decode_webhook_task(task: QueuedTask) -> QueuedWebhookEvent:
    if task.task_type != TASK_TYPE:
        raise ValueError(f"Unexpected task_type={task.task_type!r}; expected {TASK_TYPE!r}")
    payload = task.payload
    webhook_ids = payload.get("webhook_ids")
    return QueuedWebhookEvent(
        event=str(payload["event"]),
        data=dict(payload.get("data") or {}),
        event_id=str(payload["event_id"]),
        occurred_at=datetime.fromisoformat(payload["occurred_at"]),
        attempts=task.attempts,
        webhook_ids=tuple(str(v) for v in webhook_ids) if webhook_ids is not None else None,
    )


def enqueue_webhook_event(item: QueuedWebhookEvent) -> bool:
    """Persist an event in the Redis queue for the dispatch worker."""
    queued = enqueue_task(
        _task_from_event(item),
        settings.rq_queue_name,
        redis_url=settings.rq_redis_url,
    )
    if queued:
        logger.info(
            "webhook.queue.enqueued",
            extra={"event": item.event, "event_id": item.event_id, "attempt": item.attempts},
        )
    return queued


def dequeue_webhook_event(
    *,
    block: bool = False,
    block_timeout: float = 0,
) -> QueuedWebhookEvent | None:
    """Pop one queued webhook event."""
    task = dequeue_task(
        settings.rq_queue_name,
        redis_url=settings.rq_redis_url,
        block=block,
        block_timeout=block_timeout,
    )
    if task is None:
        return None
    return decode_webhook_task(task)


def requeue_if_failed(item: QueuedWebhookEvent, *, delay_seconds: float = 0) -> bool:
    """Requeue an event delivery with capped retries.

    Returns True if requeued.
    """
    return generic_requeue_if_failed(
        _task_from_event(item),
        settings.rq_queue_name,
        max_retries=settings.rq_dispatch_max_retries,
        redis_url=settings.rq_redis_url,
        delay_seconds=delay_seconds,
    )
