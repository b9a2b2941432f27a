"""Task model representing crew work items and execution metadata."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Text
from sqlmodel import Field

from crew_control.core.time import utcnow
from crew_control.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Task(QueryModel, table=True):
    """Unit of crew work with status, dependencies, and optional workflow owner."""

    __tablename__ = "crew_tasks"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    workflow_id: UUID | None = Field(
        default=None,
        foreign_key="crew_workflows.id",
        ondelete="CASCADE",
        index=True,
    )

    title: str
    description: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    type: str = Field(default="research", index=True)
    status: str = Field(default="pending", index=True)
    priority: str = Field(default="medium", index=True)
    due_date: datetime | None = None

    creator_id: str = Field(index=True)
    assignee_id: UUID | None = Field(default=None, foreign_key="agents.id", index=True)

    # Task ids (as strings) that must be completed before this task may run.
    dependencies: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    input_data: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    output_data: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    skills_required: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    handoff_to: UUID | None = Field(default=None, foreign_key="agents.id")
    handoff_reason: str | None = Field(default=None, sa_column=Column(Text))

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
