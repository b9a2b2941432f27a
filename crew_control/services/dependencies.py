"""Task dependency resolution: readiness and validation."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col

from crew_control.core.errors import DependencyValidationError
from crew_control.core.logging import get_logger
from crew_control.db.errors import storage_guard
from crew_control.models.tasks import Task

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)


def _as_uuid(value: object) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def dependency_uuids(values: Iterable[object]) -> list[UUID]:
    """Parse stored dependency ids, dropping anything that is not a UUID."""
    parsed = (_as_uuid(value) for value in values)
    return [value for value in parsed if value is not None]


async def blocking_dependency_ids(session: AsyncSession, task: Task) -> list[str]:
    """Dependency ids of `task` that are not completed, unknown ids included."""
    if not task.dependencies:
        return []
    wanted = dependency_uuids(task.dependencies)
    rows = await Task.objects.by_ids(wanted).all(session) if wanted else []
    completed = {str(row.id) for row in rows if row.status == "completed"}
    return [dep for dep in task.dependencies if str(_as_uuid(dep)) not in completed]


async def get_ready_tasks(
    session: AsyncSession,
    *,
    workflow_id: UUID | None = None,
) -> list[Task]:
    """Pending tasks whose dependencies are all completed, oldest first.

    A task whose dependency lookup fails is left out rather than reported.
    """
    query = Task.objects.filter_by(status="pending")
    if workflow_id is not None:
        query = query.filter_by(workflow_id=workflow_id)
    with storage_guard("list ready tasks"):
        candidates = await query.order_by(col(Task.created_at)).all(session)

    ready: list[Task] = []
    for task in candidates:
        try:
            blocking = await blocking_dependency_ids(session, task)
        except SQLAlchemyError:
            logger.error(
                "task.ready.dependency_lookup_failed",
                extra={"task_id": str(task.id)},
                exc_info=True,
            )
            continue
        if not blocking:
            ready.append(task)
    return ready


async def _dependencies_of(session: AsyncSession, task_ids: list[UUID]) -> dict[UUID, list[UUID]]:
    rows = await Task.objects.by_ids(task_ids).all(session)
    return {row.id: dependency_uuids(row.dependencies) for row in rows}


async def validate_dependencies(
    session: AsyncSession,
    *,
    task_id: UUID | None,
    dependencies: Iterable[UUID],
    workflow_id: UUID | None = None,
) -> list[str]:
    """Check a dependency list and return it normalised for storage.

    Rejects self references, ids that resolve to no task, tasks outside the
    owning workflow, and edges that would close a cycle back to `task_id`.
    """
    normalized: list[UUID] = []
    for dep in dependencies:
        if dep not in normalized:
            normalized.append(dep)
    if not normalized:
        return []

    if task_id is not None and task_id in normalized:
        raise DependencyValidationError("A task cannot depend on itself.", [task_id])

    with storage_guard("validate dependencies"):
        rows = await Task.objects.by_ids(normalized).all(session)
        found = {row.id: row for row in rows}
        missing = [dep for dep in normalized if dep not in found]
        if missing:
            raise DependencyValidationError("Dependencies reference unknown tasks.", missing)

        if workflow_id is not None:
            foreign = [dep for dep in normalized if found[dep].workflow_id != workflow_id]
            if foreign:
                raise DependencyValidationError(
                    "Dependencies must belong to the same workflow.",
                    foreign,
                )

        if task_id is not None:
            # Walk the dependency graph; reaching task_id again means a cycle.
            seen: set[UUID] = set()
            frontier = list(normalized)
            while frontier:
                if task_id in frontier:
                    raise DependencyValidationError(
                        "Dependencies would create a cycle.",
                        [task_id],
                    )
                fresh = [node for node in frontier if node not in seen]
                seen.update(fresh)
                graph = await _dependencies_of(session, fresh) if fresh else {}
                frontier = [dep for deps in graph.values() for dep in deps if dep not in seen]

    return [str(dep) for dep in normalized]
