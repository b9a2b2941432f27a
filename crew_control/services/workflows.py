"""Workflow repository: creation with tasks, reads with progress, cascade delete."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from sqlmodel import col

from crew_control.core.errors import NotFoundError
from crew_control.core.logging import get_logger
from crew_control.core.time import utcnow
from crew_control.db import crud
from crew_control.db.errors import storage_guard
from crew_control.models.tasks import Task
from crew_control.models.workflows import Workflow
from crew_control.schemas.tasks import TaskCreate, TaskRead
from crew_control.schemas.workflows import WorkflowProgressRead, WorkflowRead
from crew_control.services.tasks import create_task

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from crew_control.schemas.workflows import WorkflowCreate

logger = get_logger(__name__)


def workflow_progress(tasks: Sequence[Task]) -> int:
    """Percentage of completed tasks, rounded half up; 0 for an empty workflow."""
    total = len(tasks)
    if total == 0:
        return 0
    completed = sum(1 for task in tasks if task.status == "completed")
    return (200 * completed + total) // (2 * total)


async def get_workflow_tasks(session: AsyncSession, workflow_id: UUID) -> list[Task]:
    with storage_guard("list workflow tasks"):
        return await (
            Task.objects.filter_by(workflow_id=workflow_id)
            .order_by(col(Task.created_at))
            .all(session)
        )


def to_workflow_read(workflow: Workflow, tasks: Sequence[Task]) -> WorkflowRead:
    return WorkflowRead(
        **workflow.model_dump(),
        progress=workflow_progress(tasks),
        tasks=[TaskRead.model_validate(task, from_attributes=True) for task in tasks],
    )


async def create_workflow(
    session: AsyncSession,
    payload: WorkflowCreate,
    *,
    creator_id: str,
) -> WorkflowRead:
    """Create a workflow and its declared tasks in one transaction."""
    now = utcnow()
    workflow = Workflow(
        name=payload.name,
        description=payload.description,
        creator_id=creator_id,
        status="draft",
        requires_approval=payload.requires_approval,
        admin_notes=payload.admin_notes,
        created_at=now,
        updated_at=now,
    )
    tasks: list[Task] = []
    with storage_guard("create workflow"):
        await crud.save(session, workflow, commit=False)
        for declared in payload.tasks:
            task_payload = TaskCreate(
                **declared.model_dump(exclude={"depends_on"}),
                workflow_id=workflow.id,
            )
            task = await create_task(
                session,
                task_payload,
                creator_id=creator_id,
                extra_dependencies=[tasks[position].id for position in declared.depends_on],
                commit=False,
            )
            tasks.append(task)
        await session.commit()
    logger.info(
        "workflow.created",
        extra={"workflow_id": str(workflow.id), "task_count": len(tasks)},
    )
    return to_workflow_read(workflow, tasks)


async def get_workflow(session: AsyncSession, workflow_id: UUID) -> Workflow | None:
    with storage_guard("load workflow"):
        return await Workflow.objects.by_id(workflow_id).first(session)


async def get_workflow_detail(session: AsyncSession, workflow_id: UUID) -> WorkflowRead | None:
    """Workflow with its tasks and progress; None when the id is unknown."""
    workflow = await get_workflow(session, workflow_id)
    if workflow is None:
        return None
    return to_workflow_read(workflow, await get_workflow_tasks(session, workflow_id))


async def list_workflows(
    session: AsyncSession,
    *,
    creator_id: str | None = None,
) -> list[WorkflowRead]:
    """Workflows newest first, each with its tasks attached."""
    query = Workflow.objects.all()
    if creator_id is not None:
        query = query.filter_by(creator_id=creator_id)
    with storage_guard("list workflows"):
        workflows = await query.order_by(col(Workflow.created_at).desc()).all(session)
        tasks = (
            await Task.objects.by_field_in("workflow_id", [wf.id for wf in workflows])
            .order_by(col(Task.created_at))
            .all(session)
            if workflows
            else []
        )
    by_workflow: dict[UUID, list[Task]] = {}
    for task in tasks:
        if task.workflow_id is not None:
            by_workflow.setdefault(task.workflow_id, []).append(task)
    return [to_workflow_read(wf, by_workflow.get(wf.id, [])) for wf in workflows]


async def get_workflow_progress(session: AsyncSession, workflow_id: UUID) -> WorkflowProgressRead:
    if await get_workflow(session, workflow_id) is None:
        raise NotFoundError.for_entity("Workflow", workflow_id)
    tasks = await get_workflow_tasks(session, workflow_id)
    return WorkflowProgressRead(
        workflow_id=workflow_id,
        progress=workflow_progress(tasks),
        completed_tasks=sum(1 for task in tasks if task.status == "completed"),
        total_tasks=len(tasks),
    )


async def add_task_to_workflow(
    session: AsyncSession,
    workflow_id: UUID,
    payload: TaskCreate,
    *,
    creator_id: str,
) -> Task:
    """Create a task owned by an existing workflow."""
    workflow = await get_workflow(session, workflow_id)
    if workflow is None:
        raise NotFoundError.for_entity("Workflow", workflow_id)
    task = await create_task(
        session,
        payload.model_copy(update={"workflow_id": workflow_id}),
        creator_id=creator_id,
    )
    return task


async def delete_workflow(session: AsyncSession, workflow_id: UUID) -> bool:
    """Delete a workflow and every task it owns."""
    with storage_guard("delete workflow"):
        if await Workflow.objects.by_id(workflow_id).first(session) is None:
            return False
        removed_tasks = await crud.delete_where(
            session,
            Task,
            col(Task.workflow_id) == workflow_id,
            commit=False,
        )
        await crud.delete_where(session, Workflow, col(Workflow.id) == workflow_id, commit=False)
        await session.commit()
    logger.info(
        "workflow.deleted",
        extra={"workflow_id": str(workflow_id), "task_count": removed_tasks},
    )
    return True
