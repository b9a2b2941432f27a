"""Generic write helpers shared by repositories."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import delete
from sqlmodel import SQLModel

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement
    from sqlmodel.ext.asyncio.session import AsyncSession

ModelT = TypeVar("ModelT", bound=SQLModel)


async def save(session: AsyncSession, obj: ModelT, *, commit: bool = True) -> ModelT:
    """Add an object to the session and optionally commit + refresh it."""
    session.add(obj)
    if commit:
        await session.commit()
        await session.refresh(obj)
    else:
        await session.flush()
    return obj


async def delete_where(
    session: AsyncSession,
    model: type[SQLModel],
    *clauses: ColumnElement[bool],
    commit: bool = True,
) -> int:
    """Bulk delete rows matching all clauses and return the affected row count."""
    stmt: Any = delete(model)
    if clauses:
        stmt = stmt.where(*clauses)
    result = await session.exec(stmt)
    if commit:
        await session.commit()
    return int(getattr(result, "rowcount", 0) or 0)
