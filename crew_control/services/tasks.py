"""Task repository: create, read, filter, update, and delete task rows."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlmodel import col

from crew_control.core.errors import NotFoundError
from crew_control.core.logging import get_logger
from crew_control.core.time import utcnow
from crew_control.db import crud
from crew_control.db.errors import storage_guard
from crew_control.models.agents import Agent
from crew_control.models.tasks import Task
from crew_control.models.workflows import Workflow
from crew_control.services.dependencies import validate_dependencies

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from crew_control.schemas.tasks import TaskCreate, TaskUpdate

logger = get_logger(__name__)


async def create_task(
    session: AsyncSession,
    payload: TaskCreate,
    *,
    creator_id: str,
    extra_dependencies: list[UUID] | None = None,
    commit: bool = True,
) -> Task:
    """Insert a task; status starts `assigned` when an assignee is given."""
    with storage_guard("create task"):
        if payload.workflow_id is not None:
            if await Workflow.objects.by_id(payload.workflow_id).first(session) is None:
                raise NotFoundError.for_entity("Workflow", payload.workflow_id)
        if payload.assignee_id is not None:
            if await Agent.objects.by_id(payload.assignee_id).first(session) is None:
                raise NotFoundError.for_entity("Agent", payload.assignee_id)

        dependencies = await validate_dependencies(
            session,
            task_id=None,
            dependencies=[*payload.dependencies, *(extra_dependencies or [])],
            workflow_id=payload.workflow_id,
        )
        now = utcnow()
        task = Task(
            workflow_id=payload.workflow_id,
            title=payload.title,
            description=payload.description,
            type=payload.type,
            status="assigned" if payload.assignee_id is not None else "pending",
            priority=payload.priority,
            due_date=payload.due_date,
            creator_id=creator_id,
            assignee_id=payload.assignee_id,
            dependencies=dependencies,
            input_data=payload.input_data,
            skills_required=list(payload.skills_required),
            tags=list(payload.tags),
            created_at=now,
            updated_at=now,
        )
        await crud.save(session, task, commit=commit)
    logger.info(
        "task.created",
        extra={
            "task_id": str(task.id),
            "workflow_id": str(task.workflow_id),
            "status": task.status,
        },
    )
    return task


async def get_task(session: AsyncSession, task_id: UUID) -> Task | None:
    with storage_guard("load task"):
        return await Task.objects.by_id(task_id).first(session)


async def get_tasks_by_agent(session: AsyncSession, agent_id: UUID) -> list[Task]:
    """Tasks assigned to an agent, newest first."""
    with storage_guard("list agent tasks"):
        return await (
            Task.objects.filter_by(assignee_id=agent_id)
            .order_by(col(Task.created_at).desc())
            .all(session)
        )


async def get_all_tasks(
    session: AsyncSession,
    *,
    status: str | None = None,
    workflow_id: UUID | None = None,
    tag: str | None = None,
) -> list[Task]:
    """All tasks newest first, optionally narrowed by status, workflow, or tag."""
    query = Task.objects.all()
    if status is not None:
        query = query.filter_by(status=status)
    if workflow_id is not None:
        query = query.filter_by(workflow_id=workflow_id)
    with storage_guard("list tasks"):
        tasks = await query.order_by(col(Task.created_at).desc()).all(session)
    if tag is not None:
        tasks = [task for task in tasks if tag in (task.tags or [])]
    return tasks


async def update_task(
    session: AsyncSession,
    task_id: UUID,
    payload: TaskUpdate,
) -> Task | None:
    """Apply a partial update of non-status fields; None when the id is unknown."""
    updates = payload.model_dump(exclude_unset=True)
    with storage_guard("update task"):
        task = await Task.objects.by_id(task_id).first(session)
        if task is None:
            return None
        if "dependencies" in updates:
            updates["dependencies"] = await validate_dependencies(
                session,
                task_id=task.id,
                dependencies=payload.dependencies or [],
                workflow_id=task.workflow_id,
            )
        for key in ("skills_required", "tags"):
            if key in updates and updates[key] is None:
                updates[key] = []
        if "title" in updates and not (updates["title"] or "").strip():
            updates.pop("title")
        for key, value in updates.items():
            setattr(task, key, value)
        task.updated_at = utcnow()
        await crud.save(session, task)
    logger.info(
        "task.updated",
        extra={"task_id": str(task.id), "fields": ",".join(sorted(updates))},
    )
    return task


async def delete_task(session: AsyncSession, task_id: UUID) -> bool:
    with storage_guard("delete task"):
        deleted = await crud.delete_where(session, Task, col(Task.id) == task_id)
    if deleted:
        logger.info("task.deleted", extra={"task_id": str(task_id)})
    return deleted > 0
