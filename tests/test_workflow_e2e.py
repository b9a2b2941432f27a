# ruff: noqa: INP001
"""End-to-end run of a two-step workflow through readiness and execution."""

from __future__ import annotations

import pytest

from crew_control.schemas.workflows import WorkflowCreate, WorkflowTaskCreate
from crew_control.services.agent_matcher import find_best_agent
from crew_control.services.agents import seed_default_agents
from crew_control.services.dependencies import get_ready_tasks
from crew_control.services.task_engine import execute_task
from crew_control.services.workflows import create_workflow, get_workflow_detail
from fakes import RecordingMemory, RecordingSink, make_engine, make_session_maker


@pytest.mark.asyncio
async def test_two_step_workflow_runs_to_completion() -> None:
    engine = await make_engine()
    sink = RecordingSink()
    memory = RecordingMemory()
    try:
        async with make_session_maker(engine)() as session:
            await seed_default_agents(session)
            created = await create_workflow(
                session,
                WorkflowCreate(
                    name="Release notes",
                    tasks=[
                        WorkflowTaskCreate(
                            title="Collect changes",
                            type="research",
                            skills_required=["Information retrieval"],
                        ),
                        WorkflowTaskCreate(
                            title="Write notes",
                            type="content_creation",
                            skills_required=["Creative writing", "Storytelling"],
                            depends_on=[0],
                        ),
                    ],
                ),
                creator_id="u1",
            )
            t1, t2 = created.tasks

            ready = await get_ready_tasks(session, workflow_id=created.id)
            assert [task.id for task in ready] == [t1.id]

            researcher, _ = await find_best_agent(session, t1.skills_required)
            assert researcher is not None
            assert researcher.slug == "mem0"
            first = await execute_task(
                session,
                t1.id,
                agent_id=researcher.id,
                sink=sink,
                memory=memory,
            )
            assert first.success is True

            ready = await get_ready_tasks(session, workflow_id=created.id)
            assert [task.id for task in ready] == [t2.id]
            detail = await get_workflow_detail(session, created.id)
            assert detail is not None
            assert detail.progress == 50
            assert detail.status == "draft"

            writer, _ = await find_best_agent(session, t2.skills_required)
            assert writer is not None
            assert writer.slug == "lyra"
            second = await execute_task(
                session,
                t2.id,
                agent_id=writer.id,
                sink=sink,
                memory=memory,
            )
            assert second.success is True

            detail = await get_workflow_detail(session, created.id)
            assert detail is not None
            assert detail.status == "completed"
            assert detail.progress == 100
            assert sink.names() == ["workflow.completed"]
            assert [note["agent_id"] for note in memory.notes] == [researcher.id, writer.id]
            assert await get_ready_tasks(session, workflow_id=created.id) == []
    finally:
        await engine.dispose()
