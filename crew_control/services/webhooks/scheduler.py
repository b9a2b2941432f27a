"""Webhook dispatch scheduler bootstrap for rq-scheduler."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from redis import Redis
from rq_scheduler import Scheduler  # type: ignore[import-untyped]

from crew_control.core.config import settings
from crew_control.core.logging import get_logger
from crew_control.services.webhooks import dispatch

logger = get_logger(__name__)


def bootstrap_webhook_dispatch_schedule(interval_seconds: int | None = None) -> None:
    """Register the recurring queue flush, replacing any earlier registration."""
    connection = Redis.from_url(settings.rq_redis_url)
    scheduler = Scheduler(queue_name=settings.rq_queue_name, connection=connection)

    for job in scheduler.get_jobs():
        if job.id == settings.webhook_dispatch_schedule_id:
            scheduler.cancel(job)

    interval = (
        settings.webhook_dispatch_schedule_interval_seconds
        if interval_seconds is None
        else interval_seconds
    )
    scheduler.schedule(
        datetime.now(tz=UTC) + timedelta(seconds=5),
        func=dispatch.run_flush_webhook_queue,
        interval=interval,
        repeat=None,
        id=settings.webhook_dispatch_schedule_id,
        queue_name=settings.rq_queue_name,
    )
    logger.info(
        "webhook.scheduler.registered",
        extra={"interval_seconds": interval, "job_id": settings.webhook_dispatch_schedule_id},
    )
