"""Public schema exports shared across API route modules."""

from crew_control.schemas.agents import AgentRead, AgentSeed, BestAgentRequest, BestAgentResponse
from crew_control.schemas.common import OkResponse
from crew_control.schemas.errors import DependencyErrorDetail, ErrorResponse
from crew_control.schemas.health import HealthStatusResponse, SetupStatusResponse
from crew_control.schemas.tasks import (
    ExecutionResultRead,
    TaskCreate,
    TaskExecute,
    TaskHandoff,
    TaskRead,
    TaskStatusUpdate,
    TaskUpdate,
    WorkflowTaskCreate,
)
from crew_control.schemas.webhooks import WebhookCreate, WebhookRead
from crew_control.schemas.workflows import (
    WorkflowCreate,
    WorkflowProgressRead,
    WorkflowRead,
    WorkflowReview,
    WorkflowSubmit,
)

__all__ = [
    "AgentRead",
    "AgentSeed",
    "BestAgentRequest",
    "BestAgentResponse",
    "DependencyErrorDetail",
    "ErrorResponse",
    "ExecutionResultRead",
    "HealthStatusResponse",
    "OkResponse",
    "SetupStatusResponse",
    "TaskCreate",
    "TaskExecute",
    "TaskHandoff",
    "TaskRead",
    "TaskStatusUpdate",
    "TaskUpdate",
    "WebhookCreate",
    "WebhookRead",
    "WorkflowCreate",
    "WorkflowProgressRead",
    "WorkflowRead",
    "WorkflowReview",
    "WorkflowSubmit",
    "WorkflowTaskCreate",
]
