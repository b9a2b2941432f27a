"""Agent roster reads and default roster seeding."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import yaml
from sqlmodel import col

from crew_control.core.logging import get_logger
from crew_control.core.time import utcnow
from crew_control.db.errors import storage_guard
from crew_control.models.agents import Agent
from crew_control.schemas.agents import AgentSeed

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)

DEFAULT_AGENTS_PATH = Path(__file__).resolve().parents[1] / "data" / "default_agents.yaml"


def load_default_agents(path: Path = DEFAULT_AGENTS_PATH) -> list[AgentSeed]:
    """Parse the roster file into seed entries, preserving file order."""
    with path.open(encoding="utf-8") as handle:
        document = yaml.safe_load(handle) or {}
    entries = document.get("agents") or []
    return [AgentSeed.model_validate(entry) for entry in entries]


async def list_agents(session: AsyncSession) -> list[Agent]:
    """Return the roster in its stable matching order."""
    with storage_guard("list agents"):
        query = Agent.objects.all().order_by(col(Agent.created_at), col(Agent.name))
        return await query.all(session)


async def get_agent(session: AsyncSession, agent_id: UUID) -> Agent | None:
    with storage_guard("load agent"):
        return await Agent.objects.by_id(agent_id).first(session)


async def seed_default_agents(
    session: AsyncSession,
    *,
    path: Path = DEFAULT_AGENTS_PATH,
) -> list[Agent]:
    """Insert the default roster when no agents exist yet.

    Returns the created agents; an already populated roster is left untouched.
    """
    with storage_guard("seed agents"):
        if await Agent.objects.all().count(session) > 0:
            return []
        base = utcnow()
        created: list[Agent] = []
        for offset, seed in enumerate(load_default_agents(path)):
            # Offset timestamps so roster order follows the file.
            stamp = base + timedelta(microseconds=offset)
            agent = Agent(**seed.model_dump(), created_at=stamp, updated_at=stamp)
            session.add(agent)
            created.append(agent)
        await session.commit()
    logger.info("agents.seeded", extra={"count": len(created)})
    return created
