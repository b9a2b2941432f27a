"""Classify raw storage failures into structured kinds at the adapter boundary."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Literal, NoReturn

from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    InterfaceError,
    OperationalError,
    ProgrammingError,
    SQLAlchemyError,
)

from crew_control.core.errors import NetworkError, PersistenceError, SchemaMissingError

StorageFailureKind = Literal["schema_missing", "transport", "other"]

UNDEFINED_TABLE_SQLSTATE = "42P01"
_MISSING_TABLE_MARKERS = ("no such table", "undefinedtable")


@dataclass(frozen=True)
class StorageFailure:
    """Structured description of a storage error."""

    kind: StorageFailureKind
    message: str


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    for attr in ("sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if isinstance(value, str):
            return value
    return None


def _is_missing_table(exc: DBAPIError) -> bool:
    if _sqlstate(exc) == UNDEFINED_TABLE_SQLSTATE:
        return True
    orig_name = type(exc.orig).__name__.lower() if exc.orig is not None else ""
    text = f"{orig_name} {exc.orig}".lower()
    return any(marker in text for marker in _MISSING_TABLE_MARKERS)


def classify_storage_error(exc: SQLAlchemyError) -> StorageFailure:
    """Return the structured kind of a SQLAlchemy failure."""
    if isinstance(exc, (ProgrammingError, OperationalError)) and _is_missing_table(exc):
        return StorageFailure(kind="schema_missing", message=str(exc.orig))
    if isinstance(exc, DisconnectionError):
        return StorageFailure(kind="transport", message=str(exc))
    if isinstance(exc, DBAPIError) and (
        exc.connection_invalidated or isinstance(exc, (OperationalError, InterfaceError))
    ):
        return StorageFailure(kind="transport", message=str(exc.orig))
    return StorageFailure(kind="other", message=str(exc))


def raise_storage_error(exc: SQLAlchemyError, *, action: str) -> NoReturn:
    """Re-raise a storage failure as the matching domain error."""
    failure = classify_storage_error(exc)
    if failure.kind == "schema_missing":
        raise SchemaMissingError from exc
    if failure.kind == "transport":
        raise NetworkError from exc
    raise PersistenceError(f"Failed to {action}: {failure.message}") from exc


@contextmanager
def storage_guard(action: str) -> Iterator[None]:
    """Translate SQLAlchemy failures raised inside the block into domain errors."""
    try:
        yield
    except SQLAlchemyError as exc:
        raise_storage_error(exc, action=action)
