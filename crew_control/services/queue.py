"""Generic Redis list-backed queue helpers for background deliveries."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, cast

import redis

from crew_control.core.config import settings
from crew_control.core.logging import get_logger

logger = get_logger(__name__)

_SCHEDULED_SUFFIX = ":scheduled"
_DRAIN_BATCH_SIZE = 100


@dataclass(frozen=True)
class QueuedTask:
    """Generic queued job envelope."""

    task_type: str
    payload: dict[str, Any]
    created_at: datetime
    attempts: int = 0

    def to_json(self) -> str:
        return json.dumps(
            {
                "task_type": self.task_type,
                "payload": self.payload,
                "created_at": self.created_at.isoformat(),
                "attempts": self.attempts,
            },
            sort_keys=True,
        )

    def next_attempt(self) -> QueuedTask:
        return QueuedTask(
            task_type=self.task_type,
            payload=self.payload,
            created_at=self.created_at,
            attempts=self.attempts + 1,
        )


def _redis_client(redis_url: str | None = None) -> redis.Redis:
    return redis.Redis.from_url(redis_url or settings.rq_redis_url)


def _scheduled_queue_name(queue_name: str) -> str:
    return f"{queue_name}{_SCHEDULED_SUFFIX}"


def _drain_ready_scheduled(client: redis.Redis, queue_name: str) -> float | None:
    """Move due delayed jobs onto the main list; return seconds until the next one."""
    scheduled_queue = _scheduled_queue_name(queue_name)
    now = time.time()

    ready_items = cast(
        list[str | bytes],
        client.zrangebyscore(scheduled_queue, "-inf", now, start=0, num=_DRAIN_BATCH_SIZE),
    )
    if ready_items:
        client.lpush(queue_name, *ready_items)
        client.zrem(scheduled_queue, *ready_items)
        logger.debug(
            "queue.drain_ready_scheduled",
            extra={"queue_name": queue_name, "count": len(ready_items)},
        )

    next_item = cast(
        list[tuple[str | bytes, float]],
        client.zrangebyscore(scheduled_queue, now, "+inf", start=0, num=1, withscores=True),
    )
    if not next_item:
        return None
    return max(0.0, float(next_item[0][1]) - now)


def enqueue_task(
    task: QueuedTask,
    queue_name: str,
    *,
    redis_url: str | None = None,
    delay_seconds: float = 0,
) -> bool:
    """Push a job envelope now, or park it in the scheduled set when delayed."""
    try:
        client = _redis_client(redis_url=redis_url)
        if delay_seconds > 0:
            client.zadd(
                _scheduled_queue_name(queue_name),
                {task.to_json(): time.time() + delay_seconds},
            )
        else:
            client.lpush(queue_name, task.to_json())
        logger.info(
            "queue.enqueued",
            extra={
                "task_type": task.task_type,
                "queue_name": queue_name,
                "attempt": task.attempts,
                "delay_seconds": delay_seconds,
            },
        )
        return True
    except Exception as exc:
        logger.warning(
            "queue.enqueue_failed",
            extra={"task_type": task.task_type, "queue_name": queue_name, "error": str(exc)},
        )
        return False


def _coerce_datetime(raw: object | None) -> datetime:
    if isinstance(raw, str):
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            return datetime.now(UTC)
    return datetime.now(UTC)


def _decode_task(raw: str | bytes, queue_name: str) -> QueuedTask:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    try:
        payload: dict[str, Any] = json.loads(raw)
        return QueuedTask(
            task_type=str(payload["task_type"]),
            payload=dict(payload["payload"]),
            created_at=_coerce_datetime(payload.get("created_at")),
            attempts=int(payload.get("attempts", 0)),
        )
    except Exception as exc:
        logger.error(
            "queue.decode_failed",
            extra={"queue_name": queue_name, "raw_payload": raw, "error": str(exc)},
        )
        raise


def dequeue_task(
    queue_name: str,
    *,
    redis_url: str | None = None,
    block: bool = False,
    block_timeout: float = 0,
) -> QueuedTask | None:
    """Pop one job envelope from the queue."""
    client = _redis_client(redis_url=redis_url)
    raw: str | bytes | None
    if block:
        next_delay = _drain_ready_scheduled(client, queue_name)
        timeout = max(0.0, float(block_timeout))
        if next_delay is not None:
            timeout = min(timeout, next_delay) if timeout else next_delay
        popped = cast(
            tuple[bytes | str, bytes | str] | None,
            client.brpop([queue_name], timeout=timeout),
        )
        raw = popped[1] if popped is not None else None
    else:
        raw = cast(str | bytes | None, client.rpop(queue_name))
    if raw is None:
        _drain_ready_scheduled(client, queue_name)
        return None
    return _decode_task(raw, queue_name)


def requeue_if_failed(
    task: QueuedTask,
    queue_name: str,
    *,
    max_retries: int,
    redis_url: str | None = None,
    delay_seconds: float = 0,
) -> bool:
    """Requeue a failed job with capped retries.

    Returns True if requeued.
    """
    retry = task.next_attempt()
    if retry.attempts > max_retries:
        logger.warning(
            "queue.drop_failed_task",
            extra={
                "task_type": task.task_type,
                "queue_name": queue_name,
                "attempts": retry.attempts,
            },
        )
        return False
    return enqueue_task(retry, queue_name, redis_url=redis_url, delay_seconds=delay_seconds)
