"""Best-effort agent memory notes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from sqlmodel import col

from crew_control.core.logging import get_logger
from crew_control.db.session import async_session_maker
from crew_control.models.memories import AgentMemory

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.ext.asyncio import async_sessionmaker
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)


class MemorySink(Protocol):
    """Receives and recalls notes about what an agent did."""

    async def add_memory(
        self,
        text: str,
        *,
        creator_id: str,
        agent_id: UUID,
        category: str,
    ) -> None: ...

    async def recent_notes(self, agent_id: UUID, *, limit: int) -> list[str]: ...


class DatabaseMemorySink:
    """Stores and reads notes as `AgentMemory` rows in sessions of its own.

    A separate session keeps a failed note or read from touching the
    caller's transaction.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_maker = session_maker

    async def add_memory(
        self,
        text: str,
        *,
        creator_id: str,
        agent_id: UUID,
        category: str,
    ) -> None:
        maker = self._session_maker or async_session_maker
        async with maker() as session:
            session.add(
                AgentMemory(
                    agent_id=agent_id,
                    creator_id=creator_id,
                    category=category,
                    content=text,
                ),
            )
            await session.commit()

    async def recent_notes(self, agent_id: UUID, *, limit: int) -> list[str]:
        maker = self._session_maker or async_session_maker
        async with maker() as session:
            rows = await (
                AgentMemory.objects.filter_by(agent_id=agent_id)
                .order_by(col(AgentMemory.created_at).desc())
                .limit(limit)
                .all(session)
            )
        return [row.content for row in rows]


_default_sink: MemorySink = DatabaseMemorySink()


def get_memory_sink() -> MemorySink:
    return _default_sink


async def add_memory(
    text: str,
    *,
    creator_id: str,
    agent_id: UUID,
    category: str = "General",
    sink: MemorySink | None = None,
) -> None:
    """Record a note; failures are logged and never reach the caller."""
    target = sink if sink is not None else get_memory_sink()
    try:
        await target.add_memory(text, creator_id=creator_id, agent_id=agent_id, category=category)
    except Exception:
        logger.warning(
            "memory.add_failed",
            extra={"agent_id": str(agent_id), "category": category},
            exc_info=True,
        )


async def recent_notes(
    agent_id: UUID,
    *,
    limit: int = 5,
    sink: MemorySink | None = None,
) -> list[str]:
    """Newest notes for an agent; empty when they cannot be read."""
    target = sink if sink is not None else get_memory_sink()
    try:
        return await target.recent_notes(agent_id, limit=limit)
    except Exception:
        logger.warning("memory.recent_failed", extra={"agent_id": str(agent_id)}, exc_info=True)
        return []
