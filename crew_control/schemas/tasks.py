"""Schemas for task create/update/read payloads and engine operations."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import Field, field_validator
from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)

TaskStatus = Literal[
    "pending",
    "assigned",
    "in_progress",
    "handoff",
    "completed",
    "failed",
    "waiting_approval",
]
TaskPriority = Literal["low", "medium", "high"]

TASK_STATUSES: frozenset[str] = frozenset(TaskStatus.__args__)  # type: ignore[attr-defined]
TERMINAL_TASK_STATUSES: frozenset[str] = frozenset({"completed", "failed"})

BUILTIN_TASK_TYPES = (
    "web_scraping",
    "content_creation",
    "image_generation",
    "code_generation",
    "data_analysis",
    "research",
    "validation",
    "deployment",
)


def _clean_strings(values: list[str]) -> list[str]:
    seen: list[str] = []
    for value in values:
        cleaned = value.strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


class TaskBase(SQLModel):
    """Fields shared by task creation payloads."""

    title: str = Field(min_length=1)
    description: str = ""
    type: str = Field(default="research", min_length=1, examples=list(BUILTIN_TASK_TYPES))
    priority: TaskPriority = "medium"
    due_date: datetime | None = None
    assignee_id: UUID | None = None
    dependencies: list[UUID] = Field(default_factory=list)
    input_data: dict[str, Any] | None = None
    skills_required: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value

    @field_validator("skills_required", "tags")
    @classmethod
    def _dedupe(cls, value: list[str]) -> list[str]:
        return _clean_strings(value)


class TaskCreate(TaskBase):
    """Payload for creating a standalone or workflow-owned task."""

    workflow_id: UUID | None = None


class WorkflowTaskCreate(TaskBase):
    """Task declared inline with a new workflow.

    `depends_on` lists zero-based positions of earlier tasks in the same
    payload, for dependencies whose ids do not exist yet.
    """

    depends_on: list[int] = Field(default_factory=list)


class TaskUpdate(SQLModel):
    """Partial update of non-status task fields."""

    title: str | None = None
    description: str | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    dependencies: list[UUID] | None = None
    input_data: dict[str, Any] | None = None
    skills_required: list[str] | None = None
    tags: list[str] | None = None

    @field_validator("skills_required", "tags")
    @classmethod
    def _dedupe(cls, value: list[str] | None) -> list[str] | None:
        return None if value is None else _clean_strings(value)


class TaskStatusUpdate(SQLModel):
    """Payload for an explicit status transition."""

    status: TaskStatus
    output_data: dict[str, Any] | None = None


class TaskHandoff(SQLModel):
    """Reassign a task from one agent to another."""

    from_agent_id: UUID
    to_agent_id: UUID
    reason: str = ""


class TaskExecute(SQLModel):
    """Run a task with the given agent."""

    agent_id: UUID


class TaskRead(SQLModel):
    """Task payload returned by read endpoints."""

    id: UUID
    workflow_id: UUID | None = None
    title: str
    description: str
    type: str
    status: str
    priority: str
    due_date: datetime | None = None
    creator_id: str
    assignee_id: UUID | None = None
    dependencies: list[UUID] = Field(default_factory=list)
    input_data: dict[str, Any] | None = None
    output_data: dict[str, Any] | None = None
    skills_required: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    handoff_to: UUID | None = None
    handoff_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class ExecutionResultRead(SQLModel):
    """Outcome of running a task; business failures are reported, not raised."""

    success: bool
    result: str
    task: TaskRead | None = None
