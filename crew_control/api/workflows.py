"""Workflow endpoints: CRUD, task attachment, lifecycle actions, and progress."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from crew_control.api.deps import ACTOR_DEP, ADMIN_DEP, SESSION_DEP, WEBHOOK_SINK_DEP
from crew_control.schemas.common import OkResponse
from crew_control.schemas.tasks import TaskCreate, TaskRead
from crew_control.schemas.workflows import (
    WorkflowCreate,
    WorkflowProgressRead,
    WorkflowRead,
    WorkflowReview,
    WorkflowSubmit,
)
from crew_control.services import workflow_engine
from crew_control.services.workflows import (
    add_task_to_workflow,
    create_workflow,
    delete_workflow,
    get_workflow_detail,
    get_workflow_progress,
    list_workflows,
)

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from crew_control.core.auth import ActorContext
    from crew_control.services.webhooks.sink import WebhookSink

router = APIRouter(prefix="/workflows", tags=["workflows"])
MINE_QUERY = Query(default=False, description="Only workflows created by the caller.")


async def _detail_or_404(session: AsyncSession, workflow_id: UUID) -> WorkflowRead:
    detail = await get_workflow_detail(session, workflow_id)
    if detail is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return detail


@router.get("", response_model=list[WorkflowRead])
async def list_all_workflows(
    mine: bool = MINE_QUERY,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> list[WorkflowRead]:
    """List workflows newest first with their tasks and progress."""
    return await list_workflows(session, creator_id=actor.user_id if mine else None)


@router.post("", response_model=WorkflowRead, status_code=status.HTTP_201_CREATED)
async def create_new_workflow(
    payload: WorkflowCreate,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> WorkflowRead:
    return await create_workflow(session, payload, creator_id=actor.user_id)


@router.get("/{workflow_id}", response_model=WorkflowRead)
async def get_single_workflow(
    workflow_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> WorkflowRead:
    return await _detail_or_404(session, workflow_id)


@router.delete("/{workflow_id}", response_model=OkResponse)
async def remove_workflow(
    workflow_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> OkResponse:
    """Delete a workflow together with every task it owns."""
    if not await delete_workflow(session, workflow_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return OkResponse()


@router.post(
    "/{workflow_id}/tasks",
    response_model=TaskRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_workflow_task(
    workflow_id: UUID,
    payload: TaskCreate,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> TaskRead:
    task = await add_task_to_workflow(session, workflow_id, payload, creator_id=actor.user_id)
    return TaskRead.model_validate(task, from_attributes=True)


@router.get("/{workflow_id}/progress", response_model=WorkflowProgressRead)
async def workflow_progress(
    workflow_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> WorkflowProgressRead:
    return await get_workflow_progress(session, workflow_id)


@router.post("/{workflow_id}/submit", response_model=WorkflowRead)
async def submit_for_approval(
    workflow_id: UUID,
    payload: WorkflowSubmit,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
    sink: WebhookSink = WEBHOOK_SINK_DEP,
) -> WorkflowRead:
    await workflow_engine.submit_workflow_for_approval(
        session,
        workflow_id,
        notes=payload.notes,
        sink=sink,
    )
    return await _detail_or_404(session, workflow_id)


@router.post("/{workflow_id}/review", response_model=WorkflowRead)
async def review(
    workflow_id: UUID,
    payload: WorkflowReview,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ADMIN_DEP,
    sink: WebhookSink = WEBHOOK_SINK_DEP,
) -> WorkflowRead:
    """Approve or reject a workflow; admins only."""
    await workflow_engine.review_workflow(
        session,
        workflow_id,
        approved=payload.approved,
        notes=payload.notes,
        sink=sink,
    )
    return await _detail_or_404(session, workflow_id)


@router.post("/{workflow_id}/start", response_model=WorkflowRead)
async def start(
    workflow_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> WorkflowRead:
    await workflow_engine.start_workflow(session, workflow_id)
    return await _detail_or_404(session, workflow_id)


@router.post("/{workflow_id}/pause", response_model=WorkflowRead)
async def pause(
    workflow_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> WorkflowRead:
    await workflow_engine.pause_workflow(session, workflow_id)
    return await _detail_or_404(session, workflow_id)
