"""Skill-overlap matching of tasks to roster agents."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Protocol, TypeVar

from crew_control.services.agents import list_agents

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from crew_control.models.agents import Agent


class _Skilled(Protocol):
    skills: list[str]


SkilledT = TypeVar("SkilledT", bound=_Skilled)


def normalize_skills(skills: Iterable[str]) -> set[str]:
    return {skill.strip().lower() for skill in skills if skill and skill.strip()}


def skill_score(agent_skills: Iterable[str], skills_required: Iterable[str]) -> int:
    """Number of required skills the agent has."""
    return len(normalize_skills(agent_skills) & normalize_skills(skills_required))


def rank_best_agent(
    agents: Sequence[SkilledT],
    skills_required: Iterable[str],
) -> tuple[SkilledT | None, int]:
    """Return the best agent and its score; the earliest agent wins a tie."""
    required = normalize_skills(skills_required)
    if not required:
        return None, 0
    best: SkilledT | None = None
    best_score = 0
    for agent in agents:
        score = len(normalize_skills(agent.skills) & required)
        if score > best_score:
            best, best_score = agent, score
    return best, best_score


def find_best_agent_for_task(
    agents: Sequence[SkilledT],
    skills_required: Iterable[str],
) -> SkilledT | None:
    agent, _ = rank_best_agent(agents, skills_required)
    return agent


async def find_best_agent(
    session: AsyncSession,
    skills_required: Iterable[str],
) -> tuple[Agent | None, int]:
    """Match against the stored roster in (created_at, name) order."""
    return rank_best_agent(await list_agents(session), skills_required)
