"""Workflow model grouping tasks under an approval lifecycle."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Column, Text
from sqlmodel import Field

from crew_control.core.time import utcnow
from crew_control.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Workflow(QueryModel, table=True):
    """Named collection of tasks that owns their lifetime."""

    __tablename__ = "crew_workflows"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str
    description: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    creator_id: str = Field(index=True)
    status: str = Field(default="draft", index=True)
    requires_approval: bool = Field(default=True)
    admin_notes: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
