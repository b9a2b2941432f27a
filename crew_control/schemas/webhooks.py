"""Schemas for outbound webhook subscriptions."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import Field, field_validator
from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)

WorkflowEventType = Literal[
    "workflow.completed",
    "workflow.approval_requested",
    "workflow.approved",
    "workflow.rejected",
]


class WebhookCreate(SQLModel):
    """Payload for registering an endpoint."""

    name: str = Field(min_length=1)
    endpoint: str = Field(min_length=1, examples=["https://hooks.example.com/crew"])
    description: str | None = None
    events: list[WorkflowEventType] = Field(min_length=1)
    secret: str | None = Field(
        default=None,
        description="Signing secret; generated when omitted.",
    )
    is_active: bool = True

    @field_validator("endpoint")
    @classmethod
    def _http_endpoint(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("endpoint must be an http(s) URL")
        return value


class WebhookRead(SQLModel):
    """Webhook payload returned by read endpoints; the secret is included once on create."""

    id: UUID
    name: str
    endpoint: str
    description: str | None = None
    events: list[str]
    is_active: bool
    success_count: int
    failure_count: int
    last_triggered: datetime | None = None
    created_at: datetime
    secret: str | None = None
