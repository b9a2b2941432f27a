"""Schemas for agent roster reads and best-agent matching."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field
from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class AgentRead(SQLModel):
    """Agent payload returned by read endpoints."""

    id: UUID
    slug: str
    name: str
    role: str
    specialty: str
    description: str | None = None
    skills: list[str] = Field(default_factory=list)
    avatar_url: str | None = None
    created_at: datetime
    updated_at: datetime


class AgentSeed(SQLModel):
    """Roster entry as declared in the default agents file."""

    slug: str
    name: str
    role: str = ""
    specialty: str = ""
    description: str | None = None
    skills: list[str] = Field(default_factory=list)
    avatar_url: str | None = None


class BestAgentRequest(SQLModel):
    """Skills to match against the roster."""

    skills_required: list[str] = Field(
        default_factory=list,
        description="Skills the task needs; an empty list never matches.",
        examples=[["Code review", "API design"]],
    )


class BestAgentResponse(SQLModel):
    """Best-fit agent, or null when nobody overlaps."""

    agent: AgentRead | None = None
    score: int = 0
