# ruff: noqa: INP001
"""HTTP backend tests using httpx.MockTransport."""

from __future__ import annotations

import json
from collections.abc import Callable
from uuid import uuid4

import httpx
import pytest

from crew_control.client.backend import HttpCrewBackend, raise_for_response
from crew_control.client.provider import NETWORK_ERROR_MESSAGE, CrewProvider
from crew_control.core.errors import NetworkError, OperationError, SchemaMissingError
from crew_control.schemas.tasks import TaskCreate


def _backend(handler: Callable[[httpx.Request], httpx.Response]) -> HttpCrewBackend:
    return HttpCrewBackend(
        "http://crew.local/",
        token="t" * 50,
        user_id="u1",
        transport=httpx.MockTransport(handler),
    )


def _task_body(title: str) -> dict[str, object]:
    return {
        "id": str(uuid4()),
        "title": title,
        "description": "",
        "type": "research",
        "status": "pending",
        "priority": "medium",
        "creator_id": "u1",
        "created_at": "2026-01-01T00:00:00",
        "updated_at": "2026-01-01T00:00:00",
    }


def test_error_codes_map_to_domain_errors() -> None:
    request = httpx.Request("GET", "http://crew.local/api/v1/tasks")
    with pytest.raises(SchemaMissingError):
        raise_for_response(
            httpx.Response(503, json={"detail": "x", "code": "schema_missing"}, request=request),
        )
    with pytest.raises(NetworkError):
        raise_for_response(
            httpx.Response(503, json={"detail": "x", "code": "network_error"}, request=request),
        )
    with pytest.raises(OperationError, match="cycle"):
        raise_for_response(
            httpx.Response(
                422,
                json={
                    "detail": {"message": "cycle", "task_ids": []},
                    "code": "dependency_validation_failed",
                },
                request=request,
            ),
        )
    with pytest.raises(OperationError):
        raise_for_response(httpx.Response(500, text="oops", request=request))
    raise_for_response(httpx.Response(200, json=[], request=request))


@pytest.mark.asyncio
async def test_requests_carry_prefix_and_identity() -> None:
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json=_task_body("hello"))

    backend = _backend(_handler)
    try:
        created = await backend.create_task(TaskCreate(title="hello"))
    finally:
        await backend.aclose()

    assert created.title == "hello"
    [request] = seen
    assert request.url.path == "/api/v1/tasks"
    assert request.headers["Authorization"] == "Bearer " + "t" * 50
    assert request.headers["X-User-Id"] == "u1"
    assert json.loads(request.content)["title"] == "hello"


@pytest.mark.asyncio
async def test_not_found_reads_return_none() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"detail": "Not Found"})

    backend = _backend(_handler)
    try:
        assert await backend.get_agent(uuid4()) is None
        assert await backend.delete_task(uuid4()) is False
    finally:
        await backend.aclose()


@pytest.mark.asyncio
async def test_not_found_on_json_reads_raises_operation_error() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"detail": "Not Found"})

    backend = _backend(_handler)
    try:
        with pytest.raises(OperationError, match="Not Found"):
            await backend.list_agents()
        with pytest.raises(OperationError):
            await backend.create_task(TaskCreate(title="hello"))
    finally:
        await backend.aclose()


@pytest.mark.asyncio
async def test_transport_failure_becomes_network_error() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Failed to fetch", request=request)

    backend = _backend(_handler)
    try:
        with pytest.raises(NetworkError):
            await backend.list_agents()

        provider = CrewProvider(backend)
        await provider.fetch_agents()
        assert provider.network_error is True
        assert provider.error == NETWORK_ERROR_MESSAGE
    finally:
        await backend.aclose()


@pytest.mark.asyncio
async def test_schema_missing_response_clears_tables_flag() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/setup/status"):
            return httpx.Response(200, json={"tables_exist": True})
        return httpx.Response(
            503,
            json={"detail": "Database tables not set up.", "code": "schema_missing"},
        )

    backend = _backend(_handler)
    try:
        provider = CrewProvider(backend)
        await provider.fetch_tasks()
        assert provider.tables_exist is False
        assert provider.network_error is False
    finally:
        await backend.aclose()
