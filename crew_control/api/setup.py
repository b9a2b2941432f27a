"""Database setup status and initialisation endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter

from crew_control.api.deps import ACTOR_DEP, SESSION_DEP
from crew_control.db.session import check_tables_exist, init_db
from crew_control.schemas.health import SetupStatusResponse

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from crew_control.core.auth import ActorContext

router = APIRouter(prefix="/setup", tags=["setup"])


@router.get("/status", response_model=SetupStatusResponse)
async def setup_status(
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> SetupStatusResponse:
    """Report whether the orchestration tables exist."""
    return SetupStatusResponse(tables_exist=await check_tables_exist(session))


@router.post("", response_model=SetupStatusResponse)
async def run_setup(
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> SetupStatusResponse:
    """Create missing tables, then re-check them."""
    await init_db()
    return SetupStatusResponse(tables_exist=await check_tables_exist(session))
