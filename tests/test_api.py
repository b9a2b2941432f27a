# ruff: noqa: INP001
"""HTTP API tests over the FastAPI routers with an in-memory database."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any
from uuid import uuid4

import pytest
from fastapi import APIRouter, FastAPI
from httpx import ASGITransport, AsyncClient, Response
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from crew_control.api import deps
from crew_control.api.agents import router as agents_router
from crew_control.api.setup import router as setup_router
from crew_control.api.tasks import router as tasks_router
from crew_control.api.webhooks import router as webhooks_router
from crew_control.api.workflows import router as workflows_router
from crew_control.core.config import settings
from crew_control.core.error_handling import install_error_handling
from crew_control.db.session import get_session
from fakes import RecordingMemory, RecordingSink, make_engine, make_session_maker


def _build_test_app(
    session_maker: async_sessionmaker[AsyncSession],
    *,
    sink: RecordingSink,
    memory: RecordingMemory,
) -> FastAPI:
    app = FastAPI()
    install_error_handling(app)
    api_v1 = APIRouter(prefix="/api/v1")
    for router in (setup_router, agents_router, tasks_router, workflows_router, webhooks_router):
        api_v1.include_router(router)
    app.include_router(api_v1)

    async def _override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_session] = _override_get_session
    app.dependency_overrides[deps.webhook_sink] = lambda: sink
    app.dependency_overrides[deps.memory_sink] = lambda: memory
    return app


def _headers(user_id: str = "u1") -> dict[str, str]:
    return {"Authorization": f"Bearer {settings.local_auth_token}", "X-User-Id": user_id}


class _Harness:
    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self.sink = RecordingSink()
        self.memory = RecordingMemory()
        self.app = _build_test_app(
            make_session_maker(engine),
            sink=self.sink,
            memory=self.memory,
        )

    def client(self) -> AsyncClient:
        return AsyncClient(transport=ASGITransport(app=self.app), base_url="http://testserver")


async def _post(
    client: AsyncClient,
    path: str,
    body: Any = None,
    *,
    user: str = "u1",
) -> Response:
    return await client.post(f"/api/v1{path}", json=body or {}, headers=_headers(user))


@pytest.mark.asyncio
async def test_requests_without_token_are_rejected() -> None:
    harness = _Harness(await make_engine())
    try:
        async with harness.client() as client:
            response = await client.get("/api/v1/agents")
            assert response.status_code == 401
            response = await client.get(
                "/api/v1/agents",
                headers={"Authorization": "Bearer wrong"},
            )
            assert response.status_code == 401
    finally:
        await harness.engine.dispose()


@pytest.mark.asyncio
async def test_setup_status_reports_tables() -> None:
    harness = _Harness(await make_engine())
    try:
        async with harness.client() as client:
            response = await client.get("/api/v1/setup/status", headers=_headers())
            assert response.status_code == 200
            assert response.json() == {"tables_exist": True}
    finally:
        await harness.engine.dispose()


@pytest.mark.asyncio
async def test_missing_tables_surface_as_schema_missing() -> None:
    harness = _Harness(await make_engine(create_tables=False))
    try:
        async with harness.client() as client:
            status_response = await client.get("/api/v1/setup/status", headers=_headers())
            assert status_response.json() == {"tables_exist": False}

            response = await client.get("/api/v1/tasks", headers=_headers())
            assert response.status_code == 503
            assert response.json()["code"] == "schema_missing"
    finally:
        await harness.engine.dispose()


@pytest.mark.asyncio
async def test_roster_seed_and_best_match() -> None:
    harness = _Harness(await make_engine())
    try:
        async with harness.client() as client:
            seeded = await _post(client, "/agents/seed")
            assert seeded.status_code == 200
            assert len(seeded.json()) == 6

            roster = await client.get("/api/v1/agents", headers=_headers())
            assert [agent["slug"] for agent in roster.json()][:2] == ["lyra", "sophia"]

            match = await _post(
                client,
                "/agents/best-match",
                {"skills_required": ["code review", "API design"]},
            )
            assert match.json()["agent"]["slug"] == "stan"
            assert match.json()["score"] == 2

            nobody = await _post(client, "/agents/best-match", {"skills_required": ["Knitting"]})
            assert nobody.json() == {"agent": None, "score": 0}

            missing = await client.get(f"/api/v1/agents/{uuid4()}", headers=_headers())
            assert missing.status_code == 404
    finally:
        await harness.engine.dispose()


@pytest.mark.asyncio
async def test_workflow_review_requires_admin(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "admin_user_ids", "boss")
    harness = _Harness(await make_engine())
    try:
        async with harness.client() as client:
            created = await _post(client, "/workflows", {"name": "Gated"})
            assert created.status_code == 201
            workflow_id = created.json()["id"]

            submitted = await _post(client, f"/workflows/{workflow_id}/submit", {"notes": "pls"})
            assert submitted.json()["status"] == "waiting_approval"

            denied = await _post(client, f"/workflows/{workflow_id}/review", {"approved": True})
            assert denied.status_code == 403

            approved = await _post(
                client,
                f"/workflows/{workflow_id}/review",
                {"approved": True, "notes": "ship it"},
                user="boss",
            )
            assert approved.status_code == 200
            assert approved.json()["status"] == "active"
            assert approved.json()["admin_notes"] == "ship it"
            assert harness.sink.names() == ["workflow.approval_requested", "workflow.approved"]

            again = await _post(
                client,
                f"/workflows/{workflow_id}/review",
                {"approved": False},
                user="boss",
            )
            assert again.status_code == 409
            assert again.json()["code"] == "invalid_transition"
    finally:
        await harness.engine.dispose()


@pytest.mark.asyncio
async def test_workflow_tasks_complete_workflow_through_api() -> None:
    harness = _Harness(await make_engine())
    try:
        async with harness.client() as client:
            created = await _post(
                client,
                "/workflows",
                {
                    "name": "Pipeline",
                    "requires_approval": False,
                    "tasks": [{"title": "fetch"}, {"title": "report", "depends_on": [0]}],
                },
            )
            assert created.status_code == 201
            body = created.json()
            workflow_id = body["id"]
            fetch_id, report_id = (task["id"] for task in body["tasks"])
            assert body["tasks"][1]["dependencies"] == [fetch_id]

            started = await _post(client, f"/workflows/{workflow_id}/start")
            assert started.json()["status"] == "active"

            ready = await client.get(
                "/api/v1/tasks/ready",
                params={"workflow_id": workflow_id},
                headers=_headers(),
            )
            assert [task["id"] for task in ready.json()] == [fetch_id]

            done = await _post(client, f"/tasks/{fetch_id}/status", {"status": "completed"})
            assert done.status_code == 200
            progress = await client.get(
                f"/api/v1/workflows/{workflow_id}/progress",
                headers=_headers(),
            )
            assert progress.json()["progress"] == 50

            await _post(client, f"/tasks/{report_id}/status", {"status": "completed"})
            detail = await client.get(f"/api/v1/workflows/{workflow_id}", headers=_headers())
            assert detail.json()["status"] == "completed"
            assert detail.json()["progress"] == 100
            assert harness.sink.names() == ["workflow.completed"]

            reopened = await _post(client, f"/tasks/{report_id}/status", {"status": "pending"})
            assert reopened.status_code == 409
    finally:
        await harness.engine.dispose()


@pytest.mark.asyncio
async def test_task_endpoints_cover_crud_handoff_and_execute() -> None:
    harness = _Harness(await make_engine())
    try:
        async with harness.client() as client:
            roster = (await _post(client, "/agents/seed")).json()
            lyra, stan = roster[0], roster[3]

            created = await _post(
                client,
                "/tasks",
                {"title": "Review PR", "assignee_id": lyra["id"], "tags": ["code"]},
            )
            assert created.status_code == 201
            task = created.json()
            assert task["status"] == "assigned"
            assert task["creator_id"] == "u1"

            patched = await client.patch(
                f"/api/v1/tasks/{task['id']}",
                json={"description": "look at the diff"},
                headers=_headers(),
            )
            assert patched.json()["description"] == "look at the diff"

            by_tag = await client.get("/api/v1/tasks", params={"tag": "code"}, headers=_headers())
            assert [t["id"] for t in by_tag.json()] == [task["id"]]

            moved = await _post(
                client,
                f"/tasks/{task['id']}/handoff",
                {
                    "from_agent_id": lyra["id"],
                    "to_agent_id": stan["id"],
                    "reason": "needs code eyes",
                },
            )
            assert moved.json()["status"] == "handoff"
            assert moved.json()["assignee_id"] == stan["id"]
            assert len(harness.memory.notes) == 2

            agent_tasks = await client.get(f"/api/v1/agents/{stan['id']}/tasks", headers=_headers())
            assert [t["id"] for t in agent_tasks.json()] == [task["id"]]

            executed = await _post(client, f"/tasks/{task['id']}/execute", {"agent_id": stan["id"]})
            assert executed.status_code == 200
            outcome = executed.json()
            assert outcome["success"] is True
            assert outcome["task"]["status"] == "completed"
            assert "executed by Stan" in outcome["result"]

            refused = await _post(client, f"/tasks/{task['id']}/execute", {"agent_id": stan["id"]})
            assert refused.json()["success"] is False
            assert refused.json()["result"] == "Error: Task is already completed"

            deleted = await client.delete(f"/api/v1/tasks/{task['id']}", headers=_headers())
            assert deleted.status_code == 200
            gone = await client.get(f"/api/v1/tasks/{task['id']}", headers=_headers())
            assert gone.status_code == 404
    finally:
        await harness.engine.dispose()


@pytest.mark.asyncio
async def test_dependency_errors_return_task_ids() -> None:
    harness = _Harness(await make_engine())
    try:
        async with harness.client() as client:
            ghost = str(uuid4())
            response = await _post(client, "/tasks", {"title": "x", "dependencies": [ghost]})
            assert response.status_code == 422
            body = response.json()
            assert body["code"] == "dependency_validation_failed"
            assert body["detail"]["task_ids"] == [ghost]
    finally:
        await harness.engine.dispose()


@pytest.mark.asyncio
async def test_webhook_registration_returns_secret_once() -> None:
    harness = _Harness(await make_engine())
    try:
        async with harness.client() as client:
            created = await _post(
                client,
                "/webhooks",
                {
                    "name": "ops",
                    "endpoint": "https://hooks.example.com/crew",
                    "events": ["workflow.completed"],
                },
            )
            assert created.status_code == 201
            assert created.json()["secret"]

            listed = await client.get("/api/v1/webhooks", headers=_headers())
            assert [hook["secret"] for hook in listed.json()] == [None]

            invalid = await _post(
                client,
                "/webhooks",
                {"name": "bad", "endpoint": "ftp://nope", "events": ["workflow.completed"]},
            )
            assert invalid.status_code == 422

            hook_id = created.json()["id"]
            removed = await client.delete(f"/api/v1/webhooks/{hook_id}", headers=_headers())
            assert removed.status_code == 200
    finally:
        await harness.engine.dispose()


@pytest.mark.asyncio
async def test_health_probes_on_application_entrypoint() -> None:
    from crew_control.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        for path in ("/health", "/healthz", "/readyz"):
            response = await client.get(path)
            assert response.status_code == 200
            assert response.json() == {"ok": True}
