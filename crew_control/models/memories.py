"""Long-term memory notes recorded for agents by orchestration side effects."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Column, Text
from sqlmodel import Field

from crew_control.core.time import utcnow
from crew_control.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class AgentMemory(QueryModel, table=True):
    """Append-only note attached to an agent."""

    __tablename__ = "agent_memories"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    agent_id: UUID = Field(foreign_key="agents.id", ondelete="CASCADE", index=True)
    creator_id: str = Field(index=True)
    category: str = Field(default="General", index=True)
    content: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(default_factory=utcnow)
