"""Client-side orchestration state for a UI session.

`CrewProvider` keeps the last fetched agents and tasks, the current
selection, and status flags. Every failure is classified into one of three
buckets (network, schema missing, anything else) and recorded on the
provider; no exception escapes an operation.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from crew_control.core.errors import SETUP_REQUIRED_MESSAGE, NetworkError, SchemaMissingError
from crew_control.core.logging import get_logger
from crew_control.schemas.tasks import ExecutionResultRead, TaskHandoff

if TYPE_CHECKING:
    from uuid import UUID

    from crew_control.client.backend import CrewBackend
    from crew_control.schemas.agents import AgentRead
    from crew_control.schemas.tasks import TaskCreate, TaskRead, TaskUpdate

logger = get_logger(__name__)

NETWORK_ERROR_MESSAGE = "Network error. Please check your connection and try again."


class CrewProvider:
    """Explicit state container over a `CrewBackend`."""

    def __init__(self, backend: CrewBackend) -> None:
        self.backend = backend
        self.agents: list[AgentRead] = []
        self.tasks: list[TaskRead] = []
        self.selected_agent: AgentRead | None = None
        self.selected_task: TaskRead | None = None
        self.error: str | None = None
        self.network_error = False
        self.tables_exist = True
        self.is_checking_tables = False
        self.pending_operations: set[str] = set()

    @property
    def loading(self) -> bool:
        return bool(self.pending_operations)

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        self.pending_operations.add(name)
        self.error = None
        try:
            yield
        finally:
            self.pending_operations.discard(name)

    def _record_failure(self, operation: str, exc: Exception, message: str) -> None:
        if isinstance(exc, NetworkError):
            self.network_error = True
            self.error = NETWORK_ERROR_MESSAGE
        elif isinstance(exc, SchemaMissingError):
            self.tables_exist = False
            self.error = SETUP_REQUIRED_MESSAGE
        else:
            self.error = message
        logger.warning(
            "client.operation_failed",
            extra={"operation": operation, "error_type": type(exc).__name__, "error": str(exc)},
        )

    def _succeeded(self) -> None:
        self.network_error = False

    def _replace_task(self, task: TaskRead) -> None:
        self.tasks = [task if existing.id == task.id else existing for existing in self.tasks]
        if self.selected_task is not None and self.selected_task.id == task.id:
            self.selected_task = task

    async def _gate(self) -> bool:
        """True when writes may proceed.

        A failed check keeps the network message when the backend was
        unreachable and records the setup message otherwise.
        """
        if await self.check_tables_exist():
            return True
        if not self.network_error:
            self.error = SETUP_REQUIRED_MESSAGE
        return False

    async def check_tables_exist(self) -> bool:
        self.is_checking_tables = True
        try:
            exists = await self.backend.check_tables_exist()
        except NetworkError as exc:
            self._record_failure("check_tables_exist", exc, NETWORK_ERROR_MESSAGE)
            return False
        except Exception as exc:
            logger.warning(
                "client.tables_check_failed",
                extra={"error_type": type(exc).__name__},
            )
            exists = False
        finally:
            self.is_checking_tables = False
        self.tables_exist = exists
        self._succeeded()
        return exists

    async def initialize(self) -> None:
        """Check the schema, load agents, then tasks when the tables exist."""
        exists = await self.check_tables_exist()
        await self.fetch_agents()
        if exists:
            await self.fetch_tasks()
        else:
            self.tasks = []

    async def retry_fetch(self) -> None:
        self.network_error = False
        self.error = None
        await self.fetch_agents()
        await self.fetch_tasks()

    async def fetch_agents(self) -> None:
        with self._operation("fetch_agents"):
            try:
                self.agents = await self.backend.list_agents()
            except Exception as exc:
                self._record_failure("fetch_agents", exc, "Failed to fetch agents")
                return
            self._succeeded()

    async def select_agent(self, agent_id: UUID) -> None:
        with self._operation("select_agent"):
            try:
                self.selected_agent = await self.backend.get_agent(agent_id)
            except Exception as exc:
                self._record_failure("select_agent", exc, "Failed to select agent")
                return
            self._succeeded()

    async def fetch_tasks(self) -> None:
        if not await self.check_tables_exist():
            self.tasks = []
            return
        with self._operation("fetch_tasks"):
            try:
                self.tasks = await self.backend.list_tasks()
            except Exception as exc:
                self._record_failure("fetch_tasks", exc, "Failed to fetch tasks")
                return
            self._succeeded()

    async def fetch_tasks_by_agent(self, agent_id: UUID) -> None:
        if not await self.check_tables_exist():
            return
        with self._operation("fetch_tasks_by_agent"):
            try:
                self.tasks = await self.backend.list_tasks_by_agent(agent_id)
            except Exception as exc:
                self._record_failure("fetch_tasks_by_agent", exc, "Failed to fetch tasks for agent")
                return
            self._succeeded()

    async def select_task(self, task_id: UUID) -> None:
        """Select from the local cache; no backend round trip."""
        if not await self.check_tables_exist():
            return
        self.selected_task = next((task for task in self.tasks if task.id == task_id), None)

    async def create_new_task(self, payload: TaskCreate) -> TaskRead | None:
        if not await self._gate():
            return None
        with self._operation("create_task"):
            try:
                task = await self.backend.create_task(payload)
            except Exception as exc:
                self._record_failure("create_task", exc, "Failed to create task")
                return None
            self.tasks = [task, *self.tasks]
            self._succeeded()
            return task

    async def update_existing_task(self, task_id: UUID, payload: TaskUpdate) -> TaskRead | None:
        if not await self._gate():
            return None
        with self._operation("update_task"):
            try:
                task = await self.backend.update_task(task_id, payload)
            except Exception as exc:
                self._record_failure("update_task", exc, "Failed to update task")
                return None
            if task is not None:
                self._replace_task(task)
            self._succeeded()
            return task

    async def remove_task(self, task_id: UUID) -> bool:
        if not await self._gate():
            return False
        with self._operation("remove_task"):
            try:
                removed = await self.backend.delete_task(task_id)
            except Exception as exc:
                self._record_failure("remove_task", exc, "Failed to delete task")
                return False
            if removed:
                self.tasks = [task for task in self.tasks if task.id != task_id]
                if self.selected_task is not None and self.selected_task.id == task_id:
                    self.selected_task = None
            self._succeeded()
            return removed

    async def find_best_agent(self, skills_required: Iterable[str]) -> AgentRead | None:
        with self._operation("find_best_agent"):
            try:
                agent = await self.backend.find_best_agent(list(skills_required))
            except Exception as exc:
                self._record_failure("find_best_agent", exc, "Failed to find best agent")
                return None
            self._succeeded()
            return agent

    async def handoff_task_to_agent(
        self,
        task_id: UUID,
        from_agent_id: UUID,
        to_agent_id: UUID,
        reason: str,
    ) -> TaskRead | None:
        if not await self._gate():
            return None
        with self._operation("handoff_task"):
            try:
                task = await self.backend.handoff_task(
                    task_id,
                    TaskHandoff(
                        from_agent_id=from_agent_id,
                        to_agent_id=to_agent_id,
                        reason=reason,
                    ),
                )
            except Exception as exc:
                self._record_failure("handoff_task", exc, "Failed to handoff task")
                return None
            self._replace_task(task)
            self._succeeded()
            return task

    async def execute_task_with_agent(self, task_id: UUID, agent_id: UUID) -> ExecutionResultRead:
        if not await self._gate():
            return ExecutionResultRead(success=False, result=self.error or SETUP_REQUIRED_MESSAGE)
        with self._operation("execute_task"):
            try:
                outcome = await self.backend.execute_task(task_id, agent_id)
            except Exception as exc:
                self._record_failure("execute_task", exc, "Failed to execute task")
                return ExecutionResultRead(success=False, result="Failed to execute task")
            if outcome.task is not None:
                self._replace_task(outcome.task)
            self._succeeded()
            return outcome
