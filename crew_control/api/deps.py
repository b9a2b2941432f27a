"""Reusable FastAPI dependencies for auth, sessions, and collaborators.

Routers take their webhook sink, memory sink, and executor registry from
here so tests can swap them through `app.dependency_overrides`.
"""

from __future__ import annotations

from fastapi import Depends

from crew_control.core.auth import ActorContext, get_actor, require_admin
from crew_control.db.session import get_session
from crew_control.services.executors import ExecutorRegistry, default_registry
from crew_control.services.memory import MemorySink, get_memory_sink
from crew_control.services.webhooks.sink import WebhookSink, get_webhook_sink

SESSION_DEP = Depends(get_session)
ACTOR_DEP = Depends(get_actor)

_registry = default_registry()


def require_admin_actor(actor: ActorContext = ACTOR_DEP) -> ActorContext:
    """Require an authenticated admin caller."""
    require_admin(actor)
    return actor


def webhook_sink() -> WebhookSink:
    return get_webhook_sink()


def memory_sink() -> MemorySink:
    return get_memory_sink()


def executor_registry() -> ExecutorRegistry:
    return _registry


ADMIN_DEP = Depends(require_admin_actor)
WEBHOOK_SINK_DEP = Depends(webhook_sink)
MEMORY_SINK_DEP = Depends(memory_sink)
EXECUTORS_DEP = Depends(executor_registry)
