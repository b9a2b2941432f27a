"""Task status engine: transitions, handoffs, and execution."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

from crew_control.core.config import settings
from crew_control.core.errors import InvalidTransitionError, NotFoundError, OperationError
from crew_control.core.logging import get_logger
from crew_control.core.time import utcnow
from crew_control.db import crud
from crew_control.db.errors import storage_guard
from crew_control.models.agents import Agent
from crew_control.models.tasks import Task
from crew_control.models.workflows import Workflow
from crew_control.schemas.tasks import TASK_STATUSES, TERMINAL_TASK_STATUSES
from crew_control.services.dependencies import blocking_dependency_ids
from crew_control.services.executors import ExecutionContext, ExecutorRegistry, default_registry
from crew_control.services.memory import add_memory, recent_notes
from crew_control.services.workflow_engine import complete_workflow, fail_workflow

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from crew_control.services.memory import MemorySink
    from crew_control.services.webhooks.sink import WebhookSink

logger = get_logger(__name__)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Final = _Unset()


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of `execute_task`; business failures are reported, not raised."""

    success: bool
    result: str
    task: Task | None = None


def check_status_transition(current: str, target: str) -> None:
    """Raise when `current -> target` is not an allowed task transition.

    Non-terminal states may move anywhere. Terminal states only accept the
    same status again, except that a failed task may be retried as pending.
    """
    if target not in TASK_STATUSES:
        raise OperationError(f"Unknown task status '{target}'.")
    if current not in TERMINAL_TASK_STATUSES or current == target:
        return
    if current == "failed" and target == "pending":
        return
    raise InvalidTransitionError("task", current, target)


async def _load_task(session: AsyncSession, task_id: UUID) -> Task:
    with storage_guard("load task"):
        task = await Task.objects.by_id(task_id).first(session)
    if task is None:
        raise NotFoundError.for_entity("Task", task_id)
    return task


async def _sync_workflow(
    session: AsyncSession,
    task: Task,
    *,
    sink: WebhookSink | None,
) -> None:
    """Complete or fail the owning workflow after a terminal task update."""
    if task.workflow_id is None:
        return
    with storage_guard("load workflow"):
        workflow = await Workflow.objects.by_id(task.workflow_id).first(session)
        if workflow is None:
            return
        siblings = await Task.objects.filter_by(workflow_id=workflow.id).all(session)
    if task.status == "completed":
        if siblings and all(sibling.status == "completed" for sibling in siblings):
            await complete_workflow(session, workflow, sink=sink)
    elif task.status == "failed":
        if await fail_workflow(session, workflow):
            logger.warning(
                "workflow.failed_by_task",
                extra={"workflow_id": str(workflow.id), "task_id": str(task.id)},
            )


def _completion_note(task: Task) -> str:
    output = json.dumps(task.output_data, default=str)[: settings.memory_note_output_chars]
    return f'Completed task "{task.title}" as part of workflow. Output: {output}...'


async def update_task_status(
    session: AsyncSession,
    task_id: UUID,
    status: str,
    *,
    output_data: dict[str, Any] | None | _Unset = UNSET,
    sink: WebhookSink | None = None,
    memory: MemorySink | None = None,
) -> Task:
    """Set a task's status (and output), then run completion side effects."""
    task = await _load_task(session, task_id)
    previous = task.status
    check_status_transition(previous, status)

    task.status = status
    if not isinstance(output_data, _Unset):
        task.output_data = output_data
    task.updated_at = utcnow()
    with storage_guard("update task status"):
        await crud.save(session, task)
    logger.info(
        "task.status.updated",
        extra={"task_id": str(task.id), "from": previous, "to": status},
    )

    if status in TERMINAL_TASK_STATUSES:
        await _sync_workflow(session, task, sink=sink)
    if status == "completed" and previous != "completed" and task.assignee_id is not None:
        await add_memory(
            _completion_note(task),
            creator_id=task.creator_id,
            agent_id=task.assignee_id,
            category="Tasks",
            sink=memory,
        )
    return task


async def handoff_task(
    session: AsyncSession,
    task_id: UUID,
    *,
    from_agent_id: UUID,
    to_agent_id: UUID,
    reason: str = "",
    memory: MemorySink | None = None,
) -> Task:
    """Reassign a non-terminal task to another agent with status `handoff`."""
    task = await _load_task(session, task_id)
    with storage_guard("load agents"):
        to_agent = await Agent.objects.by_id(to_agent_id).first(session)
        from_agent = await Agent.objects.by_id(from_agent_id).first(session)
    if to_agent is None:
        raise NotFoundError.for_entity("Agent", to_agent_id)
    if task.status in TERMINAL_TASK_STATUSES:
        raise InvalidTransitionError("task", task.status, "handoff")

    task.assignee_id = to_agent.id
    task.status = "handoff"
    task.handoff_to = to_agent.id
    task.handoff_reason = reason
    task.updated_at = utcnow()
    with storage_guard("hand off task"):
        await crud.save(session, task)
    logger.info(
        "task.handoff",
        extra={
            "task_id": str(task.id),
            "from_agent": str(from_agent_id),
            "to_agent": str(to_agent_id),
        },
    )

    if from_agent is not None:
        await add_memory(
            f'Handed off task "{task.title}" to {to_agent.name} because: {reason}',
            creator_id=task.creator_id,
            agent_id=from_agent.id,
            category="Handoffs",
            sink=memory,
        )
        await add_memory(
            f'Received task "{task.title}" from {from_agent.name} because: {reason}',
            creator_id=task.creator_id,
            agent_id=to_agent.id,
            category="Handoffs",
            sink=memory,
        )
    return task


async def execute_task(
    session: AsyncSession,
    task_id: UUID,
    *,
    agent_id: UUID,
    executors: ExecutorRegistry | None = None,
    sink: WebhookSink | None = None,
    memory: MemorySink | None = None,
) -> ExecutionResult:
    """Run a task with an agent through the executor registered for its type.

    Refusals (unknown ids, terminal or blocked tasks) come back with
    `success=False` and leave the task untouched. Only storage failures raise.
    """
    with storage_guard("load task"):
        task = await Task.objects.by_id(task_id).first(session)
        agent = await Agent.objects.by_id(agent_id).first(session)
    if task is None or agent is None:
        return ExecutionResult(success=False, result="Error: Task or agent not found", task=task)
    if task.status in TERMINAL_TASK_STATUSES:
        return ExecutionResult(
            success=False,
            result=f"Error: Task is already {task.status}",
            task=task,
        )
    with storage_guard("check dependencies"):
        blocking = await blocking_dependency_ids(session, task)
    if blocking:
        return ExecutionResult(
            success=False,
            result=f"Error: Task is blocked by unfinished dependencies: {', '.join(blocking)}",
            task=task,
        )

    registry = executors if executors is not None else default_registry()
    notes = await recent_notes(agent.id, sink=memory)

    task.assignee_id = agent.id
    task.status = "in_progress"
    task.updated_at = utcnow()
    with storage_guard("start task"):
        await crud.save(session, task)
    logger.info(
        "task.execution.started",
        extra={"task_id": str(task.id), "agent_id": str(agent.id)},
    )

    try:
        entry = registry.resolve(task.type)
        inputs = entry.decode_inputs(task.input_data)
        context = ExecutionContext(task=task, agent=agent, inputs=inputs, memories=notes)
        output = await entry.run(context)
    except Exception as exc:
        message = str(exc) or type(exc).__name__
        logger.warning(
            "task.execution.failed",
            extra={"task_id": str(task.id), "task_type": task.type, "error": message},
        )
        task = await update_task_status(
            session,
            task.id,
            "failed",
            output_data={"error": message},
            sink=sink,
            memory=memory,
        )
        return ExecutionResult(success=False, result=f"Error: {message}", task=task)

    task = await update_task_status(
        session,
        task.id,
        "completed",
        output_data={"result": output.result, **output.output_data},
        sink=sink,
        memory=memory,
    )
    logger.info("task.execution.completed", extra={"task_id": str(task.id)})
    return ExecutionResult(success=True, result=output.result, task=task)
