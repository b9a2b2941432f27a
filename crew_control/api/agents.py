"""Agent roster endpoints: list, fetch, best match, and default seeding."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from crew_control.api.deps import ACTOR_DEP, SESSION_DEP
from crew_control.schemas.agents import AgentRead, BestAgentRequest, BestAgentResponse
from crew_control.schemas.tasks import TaskRead
from crew_control.services.agent_matcher import find_best_agent
from crew_control.services.agents import get_agent, list_agents, seed_default_agents
from crew_control.services.tasks import get_tasks_by_agent

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from crew_control.core.auth import ActorContext

router = APIRouter(prefix="/agents", tags=["agents"])


@router.get("", response_model=list[AgentRead])
async def list_roster(
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> list[AgentRead]:
    """List agents in roster order."""
    agents = await list_agents(session)
    return [AgentRead.model_validate(agent, from_attributes=True) for agent in agents]


@router.post("/seed", response_model=list[AgentRead])
async def seed_roster(
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> list[AgentRead]:
    """Insert the default AI family when the roster is empty."""
    created = await seed_default_agents(session)
    return [AgentRead.model_validate(agent, from_attributes=True) for agent in created]


@router.post("/best-match", response_model=BestAgentResponse)
async def best_match(
    payload: BestAgentRequest,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> BestAgentResponse:
    """Pick the agent with the largest skill overlap, if any."""
    agent, score = await find_best_agent(session, payload.skills_required)
    if agent is None:
        return BestAgentResponse(agent=None, score=0)
    return BestAgentResponse(
        agent=AgentRead.model_validate(agent, from_attributes=True),
        score=score,
    )


@router.get("/{agent_id}", response_model=AgentRead)
async def get_roster_agent(
    agent_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> AgentRead:
    agent = await get_agent(session, agent_id)
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return AgentRead.model_validate(agent, from_attributes=True)


@router.get("/{agent_id}/tasks", response_model=list[TaskRead])
async def list_agent_tasks(
    agent_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> list[TaskRead]:
    """Tasks assigned to an agent, newest first."""
    tasks = await get_tasks_by_agent(session, agent_id)
    return [TaskRead.model_validate(task, from_attributes=True) for task in tasks]
