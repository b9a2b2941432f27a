"""Outbound webhook subscriptions and their delivery log."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Text
from sqlmodel import Field

from crew_control.core.time import utcnow
from crew_control.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Webhook(QueryModel, table=True):
    """Endpoint subscribed to one or more orchestration events."""

    __tablename__ = "crew_webhooks"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str
    endpoint: str
    description: str | None = Field(default=None, sa_column=Column(Text))
    events: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    secret: str
    is_active: bool = Field(default=True, index=True)
    success_count: int = Field(default=0)
    failure_count: int = Field(default=0)
    last_triggered: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)


class WebhookEvent(QueryModel, table=True):
    """One delivery attempt of an event to a webhook endpoint."""

    __tablename__ = "crew_webhook_events"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    event_id: str = Field(index=True)
    webhook_id: UUID = Field(foreign_key="crew_webhooks.id", ondelete="CASCADE", index=True)
    event: str = Field(index=True)
    payload: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    status: str
    status_code: int = Field(default=0)
    response_time_ms: int | None = None
    timestamp: datetime = Field(default_factory=utcnow)
