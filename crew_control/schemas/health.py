"""Health, readiness, and schema setup probe response schemas."""

from __future__ import annotations

from pydantic import Field
from sqlmodel import SQLModel


class HealthStatusResponse(SQLModel):
    """Standard payload for service liveness/readiness checks."""

    ok: bool = Field(
        description="Indicates whether the probe check succeeded.",
        examples=[True],
    )


class SetupStatusResponse(SQLModel):
    """Whether the orchestration tables have been provisioned."""

    tables_exist: bool = Field(
        description="False until the database setup has been run.",
        examples=[True],
    )
