"""HTTP backend used by the client provider, with typed failure mapping."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, Protocol
from uuid import UUID

import httpx

from crew_control.core.errors import NetworkError, OperationError, SchemaMissingError
from crew_control.core.logging import get_logger
from crew_control.schemas.agents import AgentRead, BestAgentResponse
from crew_control.schemas.health import SetupStatusResponse
from crew_control.schemas.tasks import ExecutionResultRead, TaskRead

if TYPE_CHECKING:
    from crew_control.schemas.tasks import TaskCreate, TaskHandoff, TaskUpdate

logger = get_logger(__name__)

API_PREFIX = "/api/v1"


class CrewBackend(Protocol):
    """Operations the provider needs from the server side."""

    async def check_tables_exist(self) -> bool: ...

    async def list_agents(self) -> list[AgentRead]: ...

    async def get_agent(self, agent_id: UUID) -> AgentRead | None: ...

    async def list_tasks(self) -> list[TaskRead]: ...

    async def list_tasks_by_agent(self, agent_id: UUID) -> list[TaskRead]: ...

    async def create_task(self, payload: TaskCreate) -> TaskRead: ...

    async def update_task(self, task_id: UUID, payload: TaskUpdate) -> TaskRead | None: ...

    async def delete_task(self, task_id: UUID) -> bool: ...

    async def find_best_agent(self, skills_required: Iterable[str]) -> AgentRead | None: ...

    async def handoff_task(self, task_id: UUID, payload: TaskHandoff) -> TaskRead: ...

    async def execute_task(self, task_id: UUID, agent_id: UUID) -> ExecutionResultRead: ...


def _error_detail(response: httpx.Response) -> tuple[str | None, str]:
    try:
        body = response.json()
    except ValueError:
        return None, response.text or response.reason_phrase
    if not isinstance(body, dict):
        return None, str(body)
    detail = body.get("detail")
    if isinstance(detail, dict):
        detail = detail.get("message", detail)
    code = body.get("code")
    return (code if isinstance(code, str) else None), str(detail)


def raise_for_response(response: httpx.Response) -> None:
    """Convert an error response into the matching domain error."""
    if response.is_success:
        return
    code, detail = _error_detail(response)
    if code == SchemaMissingError.code:
        raise SchemaMissingError(detail)
    if code == NetworkError.code:
        raise NetworkError(detail)
    raise OperationError(detail)


class HttpCrewBackend:
    """`CrewBackend` over the HTTP API using `httpx.AsyncClient`."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str,
        user_id: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"}
        if user_id:
            headers["X-User-Id"] = user_id
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + API_PREFIX,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(self, method: str, path: str, *, json: Any = None) -> httpx.Response:
        try:
            return await self._client.request(method, path, json=json)
        except httpx.TransportError as exc:
            logger.warning(
                "client.backend.transport_failed",
                extra={"method": method, "path": path, "error": str(exc)},
            )
            raise NetworkError from exc

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        allow_not_found: bool = False,
    ) -> httpx.Response | None:
        response = await self._send(method, path, json=json)
        if allow_not_found and response.status_code == httpx.codes.NOT_FOUND:
            return None
        raise_for_response(response)
        return response

    async def _json(self, method: str, path: str, *, json: Any = None) -> Any:
        response = await self._send(method, path, json=json)
        raise_for_response(response)
        return response.json()

    async def check_tables_exist(self) -> bool:
        body = await self._json("GET", "/setup/status")
        return SetupStatusResponse.model_validate(body).tables_exist

    async def list_agents(self) -> list[AgentRead]:
        return [AgentRead.model_validate(item) for item in await self._json("GET", "/agents")]

    async def get_agent(self, agent_id: UUID) -> AgentRead | None:
        response = await self._request("GET", f"/agents/{agent_id}", allow_not_found=True)
        return AgentRead.model_validate(response.json()) if response is not None else None

    async def list_tasks(self) -> list[TaskRead]:
        return [TaskRead.model_validate(item) for item in await self._json("GET", "/tasks")]

    async def list_tasks_by_agent(self, agent_id: UUID) -> list[TaskRead]:
        body = await self._json("GET", f"/agents/{agent_id}/tasks")
        return [TaskRead.model_validate(item) for item in body]

    async def create_task(self, payload: TaskCreate) -> TaskRead:
        body = await self._json("POST", "/tasks", json=payload.model_dump(mode="json"))
        return TaskRead.model_validate(body)

    async def update_task(self, task_id: UUID, payload: TaskUpdate) -> TaskRead | None:
        response = await self._request(
            "PATCH",
            f"/tasks/{task_id}",
            json=payload.model_dump(mode="json", exclude_unset=True),
            allow_not_found=True,
        )
        return TaskRead.model_validate(response.json()) if response is not None else None

    async def delete_task(self, task_id: UUID) -> bool:
        response = await self._request("DELETE", f"/tasks/{task_id}", allow_not_found=True)
        return response is not None

    async def find_best_agent(self, skills_required: Iterable[str]) -> AgentRead | None:
        body = await self._json(
            "POST",
            "/agents/best-match",
            json={"skills_required": list(skills_required)},
        )
        return BestAgentResponse.model_validate(body).agent

    async def handoff_task(self, task_id: UUID, payload: TaskHandoff) -> TaskRead:
        body = await self._json(
            "POST",
            f"/tasks/{task_id}/handoff",
            json=payload.model_dump(mode="json"),
        )
        return TaskRead.model_validate(body)

    async def execute_task(self, task_id: UUID, agent_id: UUID) -> ExecutionResultRead:
        body = await self._json(
            "POST",
            f"/tasks/{task_id}/execute",
            json={"agent_id": str(agent_id)},
        )
        return ExecutionResultRead.model_validate(body)
