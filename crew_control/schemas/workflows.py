"""Schemas for workflow payloads and lifecycle actions."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import Field, model_validator
from sqlmodel import SQLModel

from crew_control.schemas.tasks import TaskRead, WorkflowTaskCreate

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)

WorkflowStatus = Literal[
    "draft",
    "waiting_approval",
    "active",
    "paused",
    "completed",
    "failed",
    "rejected",
]


class WorkflowCreate(SQLModel):
    """Payload for creating a workflow together with its tasks."""

    name: str = Field(min_length=1)
    description: str = ""
    requires_approval: bool = True
    admin_notes: str | None = None
    tasks: list[WorkflowTaskCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_positions(self) -> WorkflowCreate:
        for index, task in enumerate(self.tasks):
            for position in task.depends_on:
                if position < 0 or position >= index:
                    raise ValueError(
                        f"tasks[{index}].depends_on may only reference earlier tasks",
                    )
        return self


class WorkflowRead(SQLModel):
    """Workflow payload with owned tasks and derived progress."""

    id: UUID
    name: str
    description: str
    creator_id: str
    status: str
    requires_approval: bool
    admin_notes: str | None = None
    created_at: datetime
    updated_at: datetime
    progress: int = 0
    tasks: list[TaskRead] = Field(default_factory=list)


class WorkflowSubmit(SQLModel):
    """Optional notes sent along with an approval request."""

    notes: str | None = None


class WorkflowReview(SQLModel):
    """Admin decision on a workflow waiting for approval."""

    approved: bool
    notes: str | None = None


class WorkflowProgressRead(SQLModel):
    """Completion percentage of a workflow's tasks."""

    workflow_id: UUID
    progress: int
    completed_tasks: int
    total_tasks: int
