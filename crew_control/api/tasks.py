"""Task endpoints: CRUD, readiness, status transitions, handoff, and execution."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from crew_control.api.deps import (
    ACTOR_DEP,
    EXECUTORS_DEP,
    MEMORY_SINK_DEP,
    SESSION_DEP,
    WEBHOOK_SINK_DEP,
)
from crew_control.schemas.common import OkResponse
from crew_control.schemas.tasks import (
    ExecutionResultRead,
    TaskCreate,
    TaskExecute,
    TaskHandoff,
    TaskRead,
    TaskStatusUpdate,
    TaskUpdate,
)
from crew_control.services import task_engine
from crew_control.services.dependencies import get_ready_tasks
from crew_control.services.tasks import (
    create_task,
    delete_task,
    get_all_tasks,
    get_task,
    update_task,
)

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from crew_control.core.auth import ActorContext
    from crew_control.services.executors import ExecutorRegistry
    from crew_control.services.memory import MemorySink
    from crew_control.services.webhooks.sink import WebhookSink

router = APIRouter(prefix="/tasks", tags=["tasks"])
WORKFLOW_QUERY = Query(default=None)
TAG_QUERY = Query(default=None)


def _read(task: object) -> TaskRead:
    return TaskRead.model_validate(task, from_attributes=True)


@router.get("", response_model=list[TaskRead])
async def list_tasks(
    status_filter: str | None = Query(default=None, alias="status"),
    workflow_id: UUID | None = WORKFLOW_QUERY,
    tag: str | None = TAG_QUERY,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> list[TaskRead]:
    """List tasks newest first with optional filters."""
    tasks = await get_all_tasks(session, status=status_filter, workflow_id=workflow_id, tag=tag)
    return [_read(task) for task in tasks]


@router.get("/ready", response_model=list[TaskRead])
async def list_ready_tasks(
    workflow_id: UUID | None = WORKFLOW_QUERY,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> list[TaskRead]:
    """Pending tasks whose dependencies are all completed."""
    return [_read(task) for task in await get_ready_tasks(session, workflow_id=workflow_id)]


@router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_new_task(
    payload: TaskCreate,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> TaskRead:
    task = await create_task(session, payload, creator_id=actor.user_id)
    return _read(task)


@router.get("/{task_id}", response_model=TaskRead)
async def get_single_task(
    task_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> TaskRead:
    task = await get_task(session, task_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return _read(task)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_existing_task(
    task_id: UUID,
    payload: TaskUpdate,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> TaskRead:
    """Edit non-status fields; use the status endpoint for transitions."""
    task = await update_task(session, task_id, payload)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return _read(task)


@router.delete("/{task_id}", response_model=OkResponse)
async def remove_task(
    task_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> OkResponse:
    if not await delete_task(session, task_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return OkResponse()


@router.post("/{task_id}/status", response_model=TaskRead)
async def update_status(
    task_id: UUID,
    payload: TaskStatusUpdate,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
    sink: WebhookSink = WEBHOOK_SINK_DEP,
    memory: MemorySink = MEMORY_SINK_DEP,
) -> TaskRead:
    """Transition a task; completing the last task completes its workflow."""
    kwargs: dict[str, Any] = {}
    if "output_data" in payload.model_fields_set:
        kwargs["output_data"] = payload.output_data
    task = await task_engine.update_task_status(
        session,
        task_id,
        payload.status,
        sink=sink,
        memory=memory,
        **kwargs,
    )
    return _read(task)


@router.post("/{task_id}/handoff", response_model=TaskRead)
async def handoff(
    task_id: UUID,
    payload: TaskHandoff,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
    memory: MemorySink = MEMORY_SINK_DEP,
) -> TaskRead:
    task = await task_engine.handoff_task(
        session,
        task_id,
        from_agent_id=payload.from_agent_id,
        to_agent_id=payload.to_agent_id,
        reason=payload.reason,
        memory=memory,
    )
    return _read(task)


@router.post("/{task_id}/execute", response_model=ExecutionResultRead)
async def execute(
    task_id: UUID,
    payload: TaskExecute,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
    executors: ExecutorRegistry = EXECUTORS_DEP,
    sink: WebhookSink = WEBHOOK_SINK_DEP,
    memory: MemorySink = MEMORY_SINK_DEP,
) -> ExecutionResultRead:
    """Run a task; refusals and executor failures return `success=false`."""
    outcome = await task_engine.execute_task(
        session,
        task_id,
        agent_id=payload.agent_id,
        executors=executors,
        sink=sink,
        memory=memory,
    )
    return ExecutionResultRead(
        success=outcome.success,
        result=outcome.result,
        task=_read(outcome.task) if outcome.task is not None else None,
    )
