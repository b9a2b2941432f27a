"""Agent model representing AI family members available for task work."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Text
from sqlmodel import Field

from crew_control.core.time import utcnow
from crew_control.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Agent(QueryModel, table=True):
    """Roster entry with the skills used for task matching."""

    __tablename__ = "agents"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    slug: str = Field(index=True, unique=True)
    name: str = Field(index=True)
    role: str = Field(default="")
    specialty: str = Field(default="")
    description: str | None = Field(default=None, sa_column=Column(Text))
    skills: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    avatar_url: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
