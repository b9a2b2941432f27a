"""Small chainable query builder exposed as `Model.objects` on table models."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import func
from sqlmodel import SQLModel, col, select

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement
    from sqlmodel.ext.asyncio.session import AsyncSession

ModelT = TypeVar("ModelT", bound=SQLModel)


@dataclass(frozen=True, eq=False)
class ModelQuery(Generic[ModelT]):
    """Immutable query description; every refinement returns a new instance."""

    model: type[ModelT]
    clauses: tuple[ColumnElement[bool], ...] = ()
    ordering: tuple[Any, ...] = ()
    limit_value: int | None = None

    def filter(self, *clauses: ColumnElement[bool]) -> ModelQuery[ModelT]:
        return replace(self, clauses=(*self.clauses, *clauses))

    def filter_by(self, **values: object) -> ModelQuery[ModelT]:
        clauses = tuple(
            col(getattr(self.model, name)) == value for name, value in values.items()
        )
        return self.filter(*clauses)

    def order_by(self, *ordering: Any) -> ModelQuery[ModelT]:
        return replace(self, ordering=(*self.ordering, *ordering))

    def limit(self, value: int) -> ModelQuery[ModelT]:
        return replace(self, limit_value=value)

    def statement(self) -> Any:
        stmt = select(self.model)
        if self.clauses:
            stmt = stmt.where(*self.clauses)
        if self.ordering:
            stmt = stmt.order_by(*self.ordering)
        if self.limit_value is not None:
            stmt = stmt.limit(self.limit_value)
        return stmt

    async def all(self, session: AsyncSession) -> list[ModelT]:
        result = await session.exec(self.statement())
        return list(result)

    async def first(self, session: AsyncSession) -> ModelT | None:
        result = await session.exec(self.limit(1).statement())
        return result.first()

    async def count(self, session: AsyncSession) -> int:
        stmt = select(func.count()).select_from(self.model)
        if self.clauses:
            stmt = stmt.where(*self.clauses)
        result = await session.exec(stmt)
        return int(result.one())


class ModelManager(Generic[ModelT]):
    """Entry point for building queries against one model class."""

    def __init__(self, model: type[ModelT]) -> None:
        self.model = model

    def all(self) -> ModelQuery[ModelT]:
        return ModelQuery(self.model)

    def by_id(self, obj_id: object) -> ModelQuery[ModelT]:
        return self.filter_by(id=obj_id)

    def by_ids(self, obj_ids: Iterable[object]) -> ModelQuery[ModelT]:
        return self.by_field_in("id", obj_ids)

    def by_field_in(self, field_name: str, values: Iterable[object]) -> ModelQuery[ModelT]:
        return ModelQuery(self.model).filter(col(getattr(self.model, field_name)).in_(list(values)))

    def filter_by(self, **values: object) -> ModelQuery[ModelT]:
        return ModelQuery(self.model).filter_by(**values)

    def filter(self, *clauses: ColumnElement[bool]) -> ModelQuery[ModelT]:
        return ModelQuery(self.model).filter(*clauses)
