"""Shared test fixtures for litestar-automations test suite."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from uuid import UUID

import pytest

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from litestar_automations.config import EngineConfig
    from litestar_automations.core.models import Workflow, WorkflowState, WorkflowTransition
    from litestar_automations.engine.lifecycle import WorkflowEngine
    from litestar_automations.store.memory import InMemoryWorkflowStore


@dataclass
class BuiltWorkflow:
    """A workflow created through the engine, with its states by name."""

    workflow: Workflow
    states: dict[str, WorkflowState] = field(default_factory=dict)
    transitions: list[WorkflowTransition] = field(default_factory=list)

    @property
    def id(self) -> UUID:
        return self.workflow.id


@pytest.fixture
def memory_store() -> InMemoryWorkflowStore:
    """Create an empty in-memory store."""
    from litestar_automations.store.memory import InMemoryWorkflowStore

    return InMemoryWorkflowStore()


@pytest.fixture
def engine_config() -> EngineConfig | None:
    """Engine configuration; override in a test class to customise the engine."""
    return None


@pytest.fixture
async def engine(
    memory_store: InMemoryWorkflowStore,
    engine_config: EngineConfig | None,
) -> AsyncIterator[WorkflowEngine]:
    """Create a workflow engine over the in-memory store.

    Background runs are cancelled when the test finishes.
    """
    from litestar_automations.engine.lifecycle import WorkflowEngine

    workflow_engine = WorkflowEngine(memory_store, config=engine_config)
    yield workflow_engine
    await workflow_engine.shutdown()


@pytest.fixture
def build_workflow(engine: WorkflowEngine):
    """Return a coroutine that builds a workflow graph through the engine.

    ``states`` maps names to ``add_state`` keyword arguments, ``transitions``
    is a list of ``(from_name, to_name, add_transition kwargs)`` tuples.
    """

    async def _build(
        states: dict[str, dict[str, Any]],
        transitions: list[tuple[str, str, dict[str, Any]]],
        *,
        name: str = "test_workflow",
        user_id: str | None = "user-1",
    ) -> BuiltWorkflow:
        workflow = await engine.create_workflow(name, user_id=user_id)
        built = BuiltWorkflow(workflow=workflow)
        for state_name, options in states.items():
            built.states[state_name] = await engine.add_state(workflow.id, state_name, **options)
        for source, target, options in transitions:
            built.transitions.append(
                await engine.add_transition(
                    workflow.id,
                    built.states[source].id,
                    built.states[target].id,
                    **options,
                )
            )
        return built

    return _build


@pytest.fixture
async def task_router(build_workflow) -> BuiltWorkflow:
    """Create the five-state routing workflow.

    ``check`` routes to ``prioritize`` when ``task_count`` is positive and
    straight to ``end`` when it is zero.
    """
    from litestar_automations.core.types import StateType

    return await build_workflow(
        {
            "start": {"state_type": StateType.START},
            "fetch": {"state_type": StateType.ACTION},
            "check": {"state_type": StateType.DECISION},
            "prioritize": {"state_type": StateType.ACTION},
            "end": {"state_type": StateType.END},
        },
        [
            ("start", "fetch", {}),
            ("fetch", "check", {}),
            ("check", "prioritize", {"condition": {"task_count": {"$gt": 0}}}),
            ("check", "end", {"condition": {"task_count": 0}}),
            ("prioritize", "end", {}),
        ],
        name="task_router",
    )


@pytest.fixture
def sample_context() -> dict[str, Any]:
    """Create a sample instance context."""
    return {
        "variables": {
            "task_count": 7,
            "name": "Weekly Review",
            "tags": ["ops", "urgent"],
            "owner": {"email": "ada@example.com", "teams": [{"name": "core"}]},
        },
        "outputs": {"fetch": {"items": [1, 2, 3], "status": 200}},
    }
