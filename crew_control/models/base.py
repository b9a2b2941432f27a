"""Base model class that exposes the `objects` query manager."""

from __future__ import annotations

from typing import Any, ClassVar

from sqlmodel import SQLModel

from crew_control.db.query_manager import ModelManager


class _ManagerDescriptor:
    def __get__(self, instance: object, owner: type[Any]) -> ModelManager[Any]:
        return ModelManager(owner)


class QueryModel(SQLModel, table=False):
    """SQLModel base with `Model.objects.by_id(...)`-style query helpers."""

    objects: ClassVar[ModelManager[Any]] = _ManagerDescriptor()  # type: ignore[assignment]
