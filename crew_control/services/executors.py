"""Executor registry: per task type runners with typed inputs."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from crew_control.core.errors import OperationError
from crew_control.schemas.tasks import BUILTIN_TASK_TYPES

if TYPE_CHECKING:
    from crew_control.models.agents import Agent
    from crew_control.models.tasks import Task


class WebScrapingInput(BaseModel):
    url: str = Field(min_length=1)
    selectors: list[str] = Field(default_factory=list)


class ImageGenerationInput(BaseModel):
    prompt: str = Field(min_length=1)
    size: str = "1024x1024"
    style: str | None = None


@dataclass(frozen=True)
class ExecutionContext:
    """Everything an executor may look at; it must not write the task itself."""

    task: Task
    agent: Agent
    inputs: BaseModel | dict[str, Any]
    memories: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ExecutorOutput:
    result: str
    output_data: dict[str, Any] = field(default_factory=dict)


Executor = Callable[[ExecutionContext], Awaitable[ExecutorOutput]]


@dataclass(frozen=True)
class ExecutorEntry:
    run: Executor
    input_model: type[BaseModel] | None = None

    def decode_inputs(self, input_data: dict[str, Any] | None) -> BaseModel | dict[str, Any]:
        data = dict(input_data or {})
        if self.input_model is None:
            return data
        return self.input_model.model_validate(data)


async def simulated_executor(context: ExecutionContext) -> ExecutorOutput:
    """Placeholder runner that describes what the agent would do."""
    task, agent = context.task, context.agent
    if context.memories:
        memories_text = "Relevant memories:\n" + "\n".join(f"- {note}" for note in context.memories)
    else:
        memories_text = "No specific memories available."
    result = (
        f'Task "{task.title}" executed by {agent.name} ({agent.specialty}).\n\n'
        f'Based on the task description: "{task.description}"\n\n'
        f"{memories_text}\n\n"
        f"{agent.name}'s response: This is a simulated task execution."
    )
    return ExecutorOutput(result=result, output_data={"simulated": True})


class ExecutorRegistry:
    """Maps task types to executors; unknown types use the fallback when set."""

    def __init__(self, *, fallback: Executor | None = None) -> None:
        self._entries: dict[str, ExecutorEntry] = {}
        self._fallback = fallback

    def register(
        self,
        task_type: str,
        run: Executor,
        *,
        input_model: type[BaseModel] | None = None,
    ) -> None:
        self._entries[task_type] = ExecutorEntry(run=run, input_model=input_model)

    def task_types(self) -> list[str]:
        return sorted(self._entries)

    def resolve(self, task_type: str) -> ExecutorEntry:
        entry = self._entries.get(task_type)
        if entry is not None:
            return entry
        if self._fallback is None:
            raise OperationError(f"No executor registered for task type '{task_type}'.")
        return ExecutorEntry(run=self._fallback)


def default_registry() -> ExecutorRegistry:
    registry = ExecutorRegistry(fallback=simulated_executor)
    for task_type in BUILTIN_TASK_TYPES:
        registry.register(task_type, simulated_executor)
    registry.register("web_scraping", simulated_executor, input_model=WebScrapingInput)
    registry.register("image_generation", simulated_executor, input_model=ImageGenerationInput)
    return registry
