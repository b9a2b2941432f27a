"""FastAPI application entrypoint and router wiring."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import APIRouter, FastAPI, status
from fastapi.middleware.cors import CORSMiddleware

from crew_control.api.agents import router as agents_router
from crew_control.api.setup import router as setup_router
from crew_control.api.tasks import router as tasks_router
from crew_control.api.webhooks import router as webhooks_router
from crew_control.api.workflows import router as workflows_router
from crew_control.core.config import settings
from crew_control.core.error_handling import install_error_handling
from crew_control.core.logging import configure_logging, get_logger
from crew_control.db.session import init_db
from crew_control.schemas.errors import ErrorResponse
from crew_control.schemas.health import HealthStatusResponse

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

configure_logging()
logger = get_logger(__name__)
OPENAPI_TAGS = [
    {"name": "health", "description": "Service liveness/readiness probes."},
    {"name": "setup", "description": "Database provisioning status and initialisation."},
    {"name": "agents", "description": "AI family roster and skill matching."},
    {"name": "tasks", "description": "Task records, readiness, transitions, and execution."},
    {"name": "workflows", "description": "Workflow approval lifecycle and progress."},
    {"name": "webhooks", "description": "Outbound subscriptions for workflow events."},
]


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Initialize application resources before serving requests."""
    logger.info(
        "app.lifecycle.starting",
        extra={"environment": settings.environment, "db_auto_migrate": settings.db_auto_migrate},
    )
    await init_db()
    logger.info("app.lifecycle.started")
    try:
        yield
    finally:
        logger.info("app.lifecycle.stopped")


app = FastAPI(
    title="Crew Control API",
    version="0.1.0",
    lifespan=lifespan,
    openapi_tags=OPENAPI_TAGS,
)

origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info("app.cors.enabled", extra={"origins_count": len(origins)})
else:
    logger.info("app.cors.disabled")

install_error_handling(app)


@app.get(
    "/health",
    tags=["health"],
    response_model=HealthStatusResponse,
    responses={status.HTTP_200_OK: {"description": "Service is alive."}},
)
def health() -> HealthStatusResponse:
    """Lightweight liveness probe endpoint."""
    return HealthStatusResponse(ok=True)


@app.get("/healthz", tags=["health"], response_model=HealthStatusResponse)
def healthz() -> HealthStatusResponse:
    """Alias liveness probe endpoint for platform compatibility."""
    return HealthStatusResponse(ok=True)


@app.get("/readyz", tags=["health"], response_model=HealthStatusResponse)
def readyz() -> HealthStatusResponse:
    """Readiness probe endpoint for service orchestration checks."""
    return HealthStatusResponse(ok=True)


api_v1 = APIRouter(
    prefix="/api/v1",
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
)
api_v1.include_router(setup_router)
api_v1.include_router(agents_router)
api_v1.include_router(tasks_router)
api_v1.include_router(workflows_router)
api_v1.include_router(webhooks_router)
app.include_router(api_v1)
