"""Workflow lifecycle engine: approval, activation, pause, and completion."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from crew_control.core.errors import InvalidTransitionError, NotFoundError
from crew_control.core.logging import get_logger
from crew_control.core.time import utcnow
from crew_control.db import crud
from crew_control.db.errors import storage_guard
from crew_control.models.workflows import Workflow
from crew_control.services.webhooks.sink import event_payload, trigger_webhook

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from crew_control.services.webhooks.sink import WebhookSink

logger = get_logger(__name__)

# Workflows in these states never change again.
FINAL_WORKFLOW_STATUSES = frozenset({"completed", "rejected"})


async def _load(session: AsyncSession, workflow_id: UUID) -> Workflow:
    with storage_guard("load workflow"):
        workflow = await Workflow.objects.by_id(workflow_id).first(session)
    if workflow is None:
        raise NotFoundError.for_entity("Workflow", workflow_id)
    return workflow


def _require(workflow: Workflow, allowed: set[str], target: str) -> None:
    if workflow.status not in allowed:
        raise InvalidTransitionError("workflow", workflow.status, target)


async def _transition(
    session: AsyncSession,
    workflow: Workflow,
    target: str,
    **changes: Any,
) -> Workflow:
    previous = workflow.status
    workflow.status = target
    for key, value in changes.items():
        setattr(workflow, key, value)
    workflow.updated_at = utcnow()
    with storage_guard("update workflow"):
        await crud.save(session, workflow)
    logger.info(
        "workflow.status.updated",
        extra={"workflow_id": str(workflow.id), "from": previous, "to": target},
    )
    return workflow


def _event_data(workflow: Workflow) -> dict[str, Any]:
    return event_payload(
        workflow_id=workflow.id,
        name=workflow.name,
        status=workflow.status,
        creator_id=workflow.creator_id,
        admin_notes=workflow.admin_notes,
        updated_at=workflow.updated_at,
    )


async def submit_workflow_for_approval(
    session: AsyncSession,
    workflow_id: UUID,
    *,
    notes: str | None = None,
    sink: WebhookSink | None = None,
) -> Workflow:
    """Move a draft workflow to `waiting_approval`."""
    workflow = await _load(session, workflow_id)
    _require(workflow, {"draft"}, "waiting_approval")
    changes: dict[str, Any] = {}
    if notes is not None:
        changes["admin_notes"] = notes
    await _transition(session, workflow, "waiting_approval", **changes)
    await trigger_webhook("workflow.approval_requested", _event_data(workflow), sink=sink)
    return workflow


async def review_workflow(
    session: AsyncSession,
    workflow_id: UUID,
    *,
    approved: bool,
    notes: str | None = None,
    sink: WebhookSink | None = None,
) -> Workflow:
    """Approve (-> active) or reject (-> rejected) a workflow awaiting review."""
    workflow = await _load(session, workflow_id)
    target = "active" if approved else "rejected"
    _require(workflow, {"waiting_approval"}, target)
    await _transition(session, workflow, target, admin_notes=notes)
    event = "workflow.approved" if approved else "workflow.rejected"
    await trigger_webhook(event, _event_data(workflow), sink=sink)
    return workflow


async def start_workflow(session: AsyncSession, workflow_id: UUID) -> Workflow:
    """Activate a workflow that needs no approval, or resume a paused one."""
    workflow = await _load(session, workflow_id)
    if workflow.status != "paused":
        _require(workflow, {"draft", "waiting_approval"}, "active")
        if workflow.requires_approval:
            raise InvalidTransitionError("workflow", workflow.status, "active")
    return await _transition(session, workflow, "active")


async def pause_workflow(session: AsyncSession, workflow_id: UUID) -> Workflow:
    workflow = await _load(session, workflow_id)
    _require(workflow, {"active"}, "paused")
    return await _transition(session, workflow, "paused")


async def complete_workflow(
    session: AsyncSession,
    workflow: Workflow,
    *,
    sink: WebhookSink | None = None,
) -> bool:
    """Mark a workflow completed once; returns False when nothing changed.

    Driven by the task status engine when the last owned task completes.
    """
    if workflow.status in FINAL_WORKFLOW_STATUSES:
        return False
    await _transition(session, workflow, "completed")
    await trigger_webhook("workflow.completed", _event_data(workflow), sink=sink)
    return True


async def fail_workflow(session: AsyncSession, workflow: Workflow) -> bool:
    """Mark an active workflow failed after one of its tasks failed."""
    if workflow.status != "active":
        return False
    await _transition(session, workflow, "failed")
    return True
