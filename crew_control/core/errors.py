"""Domain error taxonomy shared by repositories, engines, and the client provider."""

from __future__ import annotations

from collections.abc import Iterable

SETUP_REQUIRED_MESSAGE = "Database tables not set up. Please set up CrewAI first."


class CrewError(Exception):
    """Base class for expected orchestration failures."""

    code = "crew_error"
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(CrewError):
    """A task, workflow, or agent id did not resolve."""

    code = "not_found"

    @classmethod
    def for_entity(cls, entity: str, entity_id: object) -> NotFoundError:
        return cls(f"{entity} {entity_id} not found.")


class SchemaMissingError(CrewError):
    """Backing tables have not been provisioned yet."""

    code = "schema_missing"
    retryable = True

    def __init__(self, message: str = SETUP_REQUIRED_MESSAGE) -> None:
        super().__init__(message)


class NetworkError(CrewError):
    """The storage or API transport could not be reached."""

    code = "network_error"
    retryable = True

    def __init__(self, message: str = "Failed to fetch") -> None:
        super().__init__(message)


class PersistenceError(CrewError):
    """The store rejected a write."""

    code = "persistence_failed"


class OperationError(CrewError):
    """Any other failure: validation, unexpected storage responses."""

    code = "operation_failed"


class InvalidTransitionError(OperationError):
    """A status change is not allowed from the current state."""

    code = "invalid_transition"

    def __init__(self, entity: str, current: str, target: str) -> None:
        super().__init__(f"Cannot move {entity} from '{current}' to '{target}'.")
        self.current = current
        self.target = target


class DependencyValidationError(OperationError):
    """Task dependencies reference itself, unknown tasks, or form a cycle."""

    code = "dependency_validation_failed"

    def __init__(self, message: str, task_ids: Iterable[object] = ()) -> None:
        super().__init__(message)
        self.task_ids = [str(task_id) for task_id in task_ids]
