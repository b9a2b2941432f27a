# ruff: noqa: INP001
"""Webhook queue, signing, delivery, and retry tests."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import httpx
import pytest

from crew_control.models.webhooks import Webhook, WebhookEvent
from crew_control.services import queue_worker
from crew_control.services.queue import QueuedTask
from crew_control.services.webhooks import dispatch
from crew_control.services.webhooks.queue import (
    QueuedWebhookEvent,
    _task_from_event,
    dequeue_webhook_event,
    enqueue_webhook_event,
    requeue_if_failed,
)
from crew_control.services.webhooks.sink import QueuedWebhookSink, event_payload, trigger_webhook
from fakes import make_engine, make_session_maker

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import async_sessionmaker
    from sqlmodel.ext.asyncio.session import AsyncSession


class _FakeRedis:
    def __init__(self) -> None:
        self.values: list[str] = []
        self.scheduled: dict[str, float] = {}

    def lpush(self, key: str, *values: str) -> None:
        for value in values:
            self.values.insert(0, value)

    def rpop(self, key: str) -> str | None:
        if not self.values:
            return None
        return self.values.pop()

    def zadd(self, key: str, mapping: dict[str, float]) -> None:
        self.scheduled.update(mapping)

    def zrangebyscore(self, key: str, low: object, high: object, **kwargs: object) -> list[object]:
        return []

    def zrem(self, key: str, *members: str) -> None:
        for member in members:
            self.scheduled.pop(member, None)


@pytest.fixture
def fake_redis(monkeypatch: pytest.MonkeyPatch) -> _FakeRedis:
    fake = _FakeRedis()

    def _fake_redis(*, redis_url: str | None = None) -> _FakeRedis:
        return fake

    monkeypatch.setattr("crew_control.services.queue._redis_client", _fake_redis)
    return fake


def _scheduled_events(fake: _FakeRedis) -> list[dict[str, object]]:
    return [json.loads(member) for member in fake.scheduled]


@pytest.mark.parametrize("attempts", [0, 2])
def test_webhook_queue_roundtrip(fake_redis: _FakeRedis, attempts: int) -> None:
    item = QueuedWebhookEvent(
        event="workflow.approved",
        data={"workflow_id": "w1"},
        attempts=attempts,
        webhook_ids=("h1",),
    )
    assert enqueue_webhook_event(item)

    dequeued = dequeue_webhook_event()
    assert dequeued is not None
    assert dequeued.event == "workflow.approved"
    assert dequeued.event_id == item.event_id
    assert dequeued.data == {"workflow_id": "w1"}
    assert dequeued.attempts == attempts
    assert dequeued.webhook_ids == ("h1",)


@pytest.mark.parametrize("attempts", [0, 1, 2, 3])
def test_requeue_respects_retry_cap(fake_redis: _FakeRedis, attempts: int) -> None:
    item = QueuedWebhookEvent(event="workflow.completed", data={}, attempts=attempts)

    if attempts >= 3:
        assert requeue_if_failed(item) is False
        assert fake_redis.values == []
    else:
        assert requeue_if_failed(item) is True
        requeued = dequeue_webhook_event()
        assert requeued is not None
        assert requeued.attempts == attempts + 1


@pytest.mark.asyncio
async def test_queued_sink_enqueues_and_trigger_swallows_failures(
    fake_redis: _FakeRedis,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    await trigger_webhook("workflow.completed", {"workflow_id": "w1"}, sink=QueuedWebhookSink())
    queued = dequeue_webhook_event()
    assert queued is not None
    assert queued.event == "workflow.completed"

    def _broken(*, redis_url: str | None = None) -> _FakeRedis:
        raise ConnectionError("redis down")

    monkeypatch.setattr("crew_control.services.queue._redis_client", _broken)
    await trigger_webhook("workflow.completed", {}, sink=QueuedWebhookSink())


def test_event_payload_stringifies_ids_and_times() -> None:
    stamp = datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)
    wid = UUID("6f3ab1ec-3ef6-4f4d-a6a7-e2d6e5d6f7a8")
    assert event_payload(workflow_id=wid, updated_at=stamp, name="x", notes=None) == {
        "workflow_id": str(wid),
        "updated_at": "2026-01-02T03:04:05+00:00",
        "name": "x",
        "notes": None,
    }


def test_signature_is_hmac_sha256_of_body() -> None:
    body = dispatch.build_event_body(
        QueuedWebhookEvent(
            event="workflow.completed",
            data={"workflow_id": "w1"},
            event_id="evt_1",
            occurred_at=datetime(2026, 1, 1, tzinfo=UTC),
        ),
    )
    assert json.loads(body) == {
        "id": "evt_1",
        "event": "workflow.completed",
        "timestamp": "2026-01-01T00:00:00+00:00",
        "data": {"workflow_id": "w1"},
    }
    assert dispatch.sign_payload(body, "secret") == dispatch.sign_payload(body, "secret")
    assert dispatch.sign_payload(body, "secret") != dispatch.sign_payload(body, "other")
    assert len(dispatch.sign_payload(body, "secret")) == 64


async def _seed_webhooks(
    maker: async_sessionmaker[AsyncSession],
) -> tuple[Webhook, Webhook, Webhook]:
    good = Webhook(
        name="good",
        endpoint="https://good.example/hook",
        events=["workflow.completed"],
        secret="s-good",
    )
    bad = Webhook(
        name="bad",
        endpoint="https://bad.example/hook",
        events=["workflow.completed", "workflow.approved"],
        secret="s-bad",
    )
    other = Webhook(
        name="other",
        endpoint="https://other.example/hook",
        events=["workflow.rejected"],
        secret="s-other",
    )
    async with maker() as session:
        session.add_all([good, bad, other])
        await session.commit()
    return good, bad, other


@pytest.mark.asyncio
async def test_deliver_event_signs_records_and_reports_failures(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    engine = await make_engine()
    maker = make_session_maker(engine)
    monkeypatch.setattr(dispatch, "async_session_maker", maker)
    _, bad, _ = await _seed_webhooks(maker)
    requests: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.host == "bad.example":
            return httpx.Response(500)
        return httpx.Response(200, json={"ok": True})

    item = QueuedWebhookEvent(event="workflow.completed", data={"workflow_id": "w1"})
    try:
        async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
            failed = await dispatch.deliver_event(item, client=client)

        assert failed == [str(bad.id)]
        assert {request.url.host for request in requests} == {"good.example", "bad.example"}
        good_request = next(r for r in requests if r.url.host == "good.example")
        body = good_request.content.decode("utf-8")
        signature = good_request.headers[dispatch.SIGNATURE_HEADER]
        assert signature == dispatch.sign_payload(body, "s-good")
        assert good_request.headers["X-Event-ID"] == item.event_id
        assert json.loads(body)["data"] == {"workflow_id": "w1"}

        async with maker() as session:
            hooks = {hook.name: hook for hook in await Webhook.objects.all().all(session)}
            assert (hooks["good"].success_count, hooks["good"].failure_count) == (1, 0)
            assert (hooks["bad"].success_count, hooks["bad"].failure_count) == (0, 1)
            assert hooks["other"].last_triggered is None
            events = await WebhookEvent.objects.filter_by(event_id=item.event_id).all(session)
            assert sorted(event.status for event in events) == ["failure", "success"]
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_retry_only_targets_failed_endpoints(monkeypatch: pytest.MonkeyPatch) -> None:
    engine = await make_engine()
    maker = make_session_maker(engine)
    monkeypatch.setattr(dispatch, "async_session_maker", maker)
    _, bad, _ = await _seed_webhooks(maker)
    hosts: list[str] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        return httpx.Response(200)

    item = QueuedWebhookEvent(
        event="workflow.completed",
        data={},
        attempts=1,
        webhook_ids=(str(bad.id),),
    )
    try:
        async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
            assert await dispatch.deliver_event(item, client=client) == []
        assert hosts == ["bad.example"]
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_flush_requeues_failed_subset_with_delay(
    fake_redis: _FakeRedis,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    item = QueuedWebhookEvent(event="workflow.completed", data={"workflow_id": "w1"})
    assert enqueue_webhook_event(item)

    async def _deliver(queued: QueuedWebhookEvent) -> list[str]:
        assert queued.event_id == item.event_id
        return ["hook-b"]

    monkeypatch.setattr(dispatch, "deliver_event", _deliver)
    monkeypatch.setattr(dispatch.settings, "rq_dispatch_throttle_seconds", 0)

    assert await dispatch.flush_webhook_queue() == 1

    assert fake_redis.values == []
    [retry] = _scheduled_events(fake_redis)
    assert retry["attempts"] == 1
    payload = retry["payload"]
    assert isinstance(payload, dict)
    assert payload["webhook_ids"] == ["hook-b"]
    assert payload["event_id"] == item.event_id


@pytest.mark.asyncio
async def test_flush_requeues_whole_event_on_crash(
    fake_redis: _FakeRedis,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    assert enqueue_webhook_event(QueuedWebhookEvent(event="workflow.completed", data={}))

    async def _deliver(_: QueuedWebhookEvent) -> list[str]:
        raise RuntimeError("db down")

    monkeypatch.setattr(dispatch, "deliver_event", _deliver)
    monkeypatch.setattr(dispatch.settings, "rq_dispatch_throttle_seconds", 0)

    assert await dispatch.flush_webhook_queue() == 0
    [retry] = _scheduled_events(fake_redis)
    payload = retry["payload"]
    assert isinstance(payload, dict)
    assert payload["webhook_ids"] is None


@pytest.mark.asyncio
async def test_worker_passes_failed_ids_to_requeue(monkeypatch: pytest.MonkeyPatch) -> None:
    item = QueuedWebhookEvent(event="workflow.completed", data={})
    tasks: list[QueuedTask | None] = [_task_from_event(item), None]
    requeued: list[tuple[QueuedTask, list[str] | None]] = []

    def _dequeue(*args: object, **kwargs: object) -> QueuedTask | None:
        return tasks.pop(0)

    async def _handler(task: QueuedTask) -> None:
        raise dispatch.WebhookDeliveryError(item, ["hook-a"])

    def _requeue(task: QueuedTask, delay: float, exc: Exception) -> bool:
        assert isinstance(exc, dispatch.WebhookDeliveryError)
        requeued.append((task, exc.failed_ids))
        return True

    monkeypatch.setattr(queue_worker, "dequeue_task", _dequeue)
    monkeypatch.setitem(
        queue_worker._TASK_HANDLERS,
        queue_worker.WEBHOOK_TASK_TYPE,
        queue_worker._TaskHandler(
            handler=_handler,
            attempts_to_delay=lambda attempts: 0.0,
            requeue=_requeue,
        ),
    )
    monkeypatch.setattr(queue_worker.settings, "rq_dispatch_throttle_seconds", 0)

    assert await queue_worker.flush_queue() == 0
    assert [failed for _, failed in requeued] == [["hook-a"]]


def test_requeue_webhook_task_narrows_to_failed_ids(fake_redis: _FakeRedis) -> None:
    task = _task_from_event(QueuedWebhookEvent(event="workflow.completed", data={}))
    assert dispatch.requeue_webhook_queue_task(task, delay_seconds=0, failed_ids=["h2"])
    requeued = dequeue_webhook_event()
    assert requeued is not None
    assert requeued.webhook_ids == ("h2",)
    assert requeued.attempts == 1
