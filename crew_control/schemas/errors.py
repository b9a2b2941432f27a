"""Structured error payload schemas used by API responses."""

from __future__ import annotations

from pydantic import Field
from sqlmodel import SQLModel


class ErrorResponse(SQLModel):
    """Standardized error payload returned by every failing endpoint."""

    detail: str | dict[str, object] | list[object] = Field(
        description=(
            "Error payload. Clients should rely on `code` when present and default "
            "to `detail` for fallback display."
        ),
        examples=[
            "Task 5f0c... not found.",
            {"message": "Dependencies would create a cycle.", "task_ids": []},
        ],
    )
    request_id: str | None = Field(
        default=None,
        description="Request correlation identifier injected by middleware.",
    )
    code: str | None = Field(
        default=None,
        description="Optional machine-readable error code.",
        examples=["schema_missing", "not_found", "invalid_transition"],
    )
    retryable: bool | None = Field(
        default=None,
        description="Whether retrying the call may succeed once transient conditions clear.",
    )


class DependencyErrorDetail(SQLModel):
    """Error detail payload naming the task ids a dependency check rejected."""

    message: str
    task_ids: list[str] = Field(default_factory=list)
