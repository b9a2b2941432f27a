"""Model exports for SQLAlchemy/SQLModel metadata discovery."""

from crew_control.models.agents import Agent
from crew_control.models.memories import AgentMemory
from crew_control.models.tasks import Task
from crew_control.models.webhooks import Webhook, WebhookEvent
from crew_control.models.workflows import Workflow

__all__ = [
    "Agent",
    "AgentMemory",
    "Task",
    "Webhook",
    "WebhookEvent",
    "Workflow",
]
