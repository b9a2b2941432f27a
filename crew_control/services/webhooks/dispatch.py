"""Webhook dispatch worker routines."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import random
import time
from dataclasses import replace
from typing import TYPE_CHECKING

import httpx

from crew_control.core.config import settings
from crew_control.core.logging import get_logger
from crew_control.core.time import utcnow
from crew_control.db.session import async_session_maker
from crew_control.models.webhooks import Webhook, WebhookEvent
from crew_control.services.webhooks.queue import (
    QueuedWebhookEvent,
    decode_webhook_task,
    dequeue_webhook_event,
    requeue_if_failed,
)

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from crew_control.services.queue import QueuedTask

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"


class WebhookDeliveryError(Exception):
    """Raised when at least one endpoint did not accept an event."""

    def __init__(self, item: QueuedWebhookEvent, failed_ids: list[str]) -> None:
        super().__init__(f"{len(failed_ids)} webhook deliveries failed for {item.event_id}")
        self.item = item
        self.failed_ids = failed_ids


def sign_payload(body: str, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw request body."""
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


def build_event_body(item: QueuedWebhookEvent) -> str:
    return json.dumps(
        {
            "id": item.event_id,
            "event": item.event,
            "timestamp": item.occurred_at.isoformat(),
            "data": item.data,
        },
        sort_keys=True,
    )


async def _subscribed_webhooks(
    session: AsyncSession,
    item: QueuedWebhookEvent,
) -> list[Webhook]:
    webhooks = await Webhook.objects.filter_by(is_active=True).all(session)
    matched = [hook for hook in webhooks if item.event in (hook.events or [])]
    if item.webhook_ids is not None:
        wanted = set(item.webhook_ids)
        matched = [hook for hook in matched if str(hook.id) in wanted]
    return matched


async def _deliver_one(
    client: httpx.AsyncClient,
    *,
    session: AsyncSession,
    webhook: Webhook,
    item: QueuedWebhookEvent,
    body: str,
) -> bool:
    started = time.perf_counter()
    status_code = 0
    delivered = False
    try:
        response = await client.post(
            webhook.endpoint,
            content=body,
            headers={
                "Content-Type": "application/json",
                SIGNATURE_HEADER: sign_payload(body, webhook.secret),
                "X-Webhook-ID": str(webhook.id),
                "X-Event-ID": item.event_id,
            },
        )
        status_code = response.status_code
        delivered = response.is_success
    except httpx.HTTPError as exc:
        logger.warning(
            "webhook.dispatch.request_failed",
            extra={"webhook_id": str(webhook.id), "event_id": item.event_id, "error": str(exc)},
        )
    elapsed_ms = int((time.perf_counter() - started) * 1000)

    now = utcnow()
    session.add(
        WebhookEvent(
            event_id=item.event_id,
            webhook_id=webhook.id,
            event=item.event,
            payload=json.loads(body),
            status="success" if delivered else "failure",
            status_code=status_code,
            response_time_ms=elapsed_ms if status_code else None,
            timestamp=now,
        ),
    )
    webhook.last_triggered = now
    if delivered:
        webhook.success_count += 1
    else:
        webhook.failure_count += 1
    session.add(webhook)
    return delivered


async def deliver_event(
    item: QueuedWebhookEvent,
    *,
    client: httpx.AsyncClient | None = None,
) -> list[str]:
    """Deliver one event to every subscribed endpoint; return ids that failed."""
    body = build_event_body(item)
    failed: list[str] = []
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=settings.webhook_request_timeout_seconds)
    try:
        async with async_session_maker() as session:
            webhooks = await _subscribed_webhooks(session, item)
            for webhook in webhooks:
                delivered = await _deliver_one(
                    http,
                    session=session,
                    webhook=webhook,
                    item=item,
                    body=body,
                )
                if not delivered:
                    failed.append(str(webhook.id))
            await session.commit()
    finally:
        if owns_client:
            await http.aclose()
    if failed:
        logger.warning(
            "webhook.dispatch.partial_failure",
            extra={"event_id": item.event_id, "event": item.event, "failed": len(failed)},
        )
    return failed


def _compute_retry_delay(attempts: int) -> float:
    base = float(settings.rq_dispatch_retry_base_seconds) * (2 ** max(0, attempts))
    return float(min(base, float(settings.rq_dispatch_retry_max_seconds)))


def _compute_retry_jitter(base_delay: float) -> float:
    upper_bound = min(float(settings.rq_dispatch_retry_max_seconds) / 10.0, base_delay * 0.1)
    return random.uniform(0.0, upper_bound)


async def process_webhook_queue_task(task: QueuedTask) -> None:
    """Worker handler: deliver and signal partial failures for requeue."""
    item = decode_webhook_task(task)
    failed = await deliver_event(item)
    if failed:
        raise WebhookDeliveryError(item, failed)


def requeue_webhook_queue_task(
    task: QueuedTask,
    *,
    delay_seconds: float = 0,
    failed_ids: list[str] | None = None,
) -> bool:
    item = decode_webhook_task(task)
    if failed_ids is not None:
        item = replace(item, webhook_ids=tuple(failed_ids))
    return requeue_if_failed(item, delay_seconds=delay_seconds)


async def flush_webhook_queue(*, block: bool = False, block_timeout: float = 0) -> int:
    """Consume queued events and deliver them in a throttled batch."""
    processed = 0
    while True:
        try:
            item = dequeue_webhook_event(block=block, block_timeout=block_timeout)
        except Exception:
            logger.exception("webhook.dispatch.dequeue_failed")
            break

        if item is None:
            break

        try:
            failed = await deliver_event(item)
        except Exception:
            logger.exception(
                "webhook.dispatch.failed",
                extra={"event_id": item.event_id, "event": item.event, "attempt": item.attempts},
            )
            failed = list(item.webhook_ids) if item.webhook_ids is not None else None
            retry = item if failed is None else replace(item, webhook_ids=tuple(failed))
        else:
            processed += 1
            retry = replace(item, webhook_ids=tuple(failed)) if failed else None
            logger.info(
                "webhook.dispatch.success",
                extra={"event_id": item.event_id, "event": item.event, "attempt": item.attempts},
            )

        if retry is not None:
            delay = _compute_retry_delay(item.attempts)
            requeue_if_failed(retry, delay_seconds=delay + _compute_retry_jitter(delay))
        await asyncio.sleep(settings.rq_dispatch_throttle_seconds)

    if processed > 0:
        logger.info("webhook.dispatch.batch_complete", extra={"count": processed})
    return processed


def run_flush_webhook_queue() -> None:
    """RQ entrypoint for running the async queue flush from worker jobs."""
    logger.info(
        "webhook.dispatch.batch_started",
        extra={"throttle_seconds": settings.rq_dispatch_throttle_seconds},
    )
    start = time.time()
    asyncio.run(flush_webhook_queue())
    elapsed_ms = int((time.time() - start) * 1000)
    logger.info("webhook.dispatch.batch_finished", extra={"duration_ms": elapsed_ms})

