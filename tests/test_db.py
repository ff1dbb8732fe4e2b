"""Integration tests for the database persistence layer.

Tests the SQLAlchemy models, repositories and the SQLAlchemyWorkflowStore
driving a WorkflowEngine, using an async SQLite database.
"""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest
from sqlalchemy import event, inspect
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from litestar_automations.core.models import Workflow, WorkflowInstance, WorkflowLog, WorkflowState
from litestar_automations.core.types import InstanceStatus, LogAction, StateType
from litestar_automations.db import (
    SQLAlchemyWorkflowStore,
    WorkflowLogRepository,
    WorkflowModel,
    WorkflowTransitionRepository,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def async_engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    """Create an async SQLite engine for testing."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'automations.db'}")

    # Enable foreign keys for SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(WorkflowModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def sql_store(async_engine: AsyncEngine) -> SQLAlchemyWorkflowStore:
    """Create a store over the test database."""
    return SQLAlchemyWorkflowStore(async_engine)


@pytest.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Create an async session for repository tests."""
    session_maker = async_sessionmaker(bind=async_engine, class_=AsyncSession, expire_on_commit=False)

    async with session_maker() as session:
        yield session
        await session.rollback()


# =============================================================================
# Schema
# =============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
class TestSchema:
    """Tests for the table layout."""

    async def test_tables_created(self, async_engine: AsyncEngine) -> None:
        """Test every automation table exists."""
        async with async_engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))

        assert {
            "automation_workflows",
            "automation_workflow_states",
            "automation_workflow_transitions",
            "automation_workflow_schedules",
            "automation_workflow_instances",
            "automation_workflow_logs",
        } <= tables

    async def test_enum_values_are_stored(self, sql_store: SQLAlchemyWorkflowStore, async_engine: AsyncEngine) -> None:
        """Test enums are persisted by value."""
        from sqlalchemy import text

        workflow = await sql_store.create_workflow(Workflow(name="wf"))

        async with async_engine.connect() as conn:
            result = await conn.execute(text("SELECT status, trigger_type FROM automation_workflows"))
            row = result.one()

        assert workflow.status == "draft"
        assert tuple(row) == ("draft", "manual")


@pytest.mark.unit
class TestMigration:
    """Tests for the Alembic migration module."""

    def test_initial_revision(self) -> None:
        """Test the initial migration is the root revision."""
        migration = importlib.import_module(
            "litestar_automations.db.migrations.versions.001_initial_automation_tables"
        )

        assert migration.revision == "001_initial"
        assert migration.down_revision is None
        assert callable(migration.upgrade)
        assert callable(migration.downgrade)


# =============================================================================
# Repositories
# =============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
class TestRepositories:
    """Tests for repository queries."""

    async def test_next_sequence(self, sql_store: SQLAlchemyWorkflowStore, async_session: AsyncSession) -> None:
        """Test next_sequence follows the stored rows and starts at one for new instances."""
        workflow = await sql_store.create_workflow(Workflow(name="wf"))
        instance = await sql_store.create_instance(WorkflowInstance(workflow_id=workflow.id))
        await sql_store.add_log(WorkflowLog(instance_id=instance.id, action=LogAction.WORKFLOW_STARTED))
        await sql_store.add_log(WorkflowLog(instance_id=instance.id, action=LogAction.STATE_EXECUTED))
        repo = WorkflowLogRepository(session=async_session)

        assert await repo.next_sequence(instance.id) == 3
        assert await repo.next_sequence(uuid4()) == 1

    async def test_find_outgoing_empty(self, async_session: AsyncSession) -> None:
        """Test states without transitions have no outgoing edges."""
        repo = WorkflowTransitionRepository(session=async_session)

        assert list(await repo.find_outgoing(uuid4())) == []


# =============================================================================
# Store behaviour
# =============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
class TestSQLAlchemyWorkflowStore:
    """Tests specific to the SQLAlchemy store."""

    async def test_constraint_violation_raises_store_error(self, sql_store: SQLAlchemyWorkflowStore) -> None:
        """Test database errors surface as StoreError."""
        from litestar_automations.exceptions import StoreError

        with pytest.raises(StoreError) as exc_info:
            await sql_store.add_state(WorkflowState(workflow_id=uuid4(), name="orphan"))

        assert exc_info.value.operation == "add_state"

    async def test_duplicate_id_raises_store_error(self, sql_store: SQLAlchemyWorkflowStore) -> None:
        """Test inserting the same id twice raises StoreError."""
        from litestar_automations.exceptions import StoreError

        workflow = Workflow(name="wf")
        await sql_store.create_workflow(workflow)

        with pytest.raises(StoreError):
            await sql_store.create_workflow(workflow)

    async def test_from_session_factory(self, async_engine: AsyncEngine) -> None:
        """Test the store can be built from an existing session factory."""
        factory = async_sessionmaker(async_engine, expire_on_commit=False)
        store = SQLAlchemyWorkflowStore(factory)

        workflow = await store.create_workflow(Workflow(name="wf"))

        assert (await store.get_workflow(workflow.id)).name == "wf"
        with pytest.raises(RuntimeError):
            await store.create_all()

    async def test_store_satisfies_protocol(self, sql_store: SQLAlchemyWorkflowStore) -> None:
        """Test the store is a WorkflowStore."""
        from litestar_automations.core.protocols import WorkflowStore

        assert isinstance(sql_store, WorkflowStore)


# =============================================================================
# Engine on SQL
# =============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
class TestEngineOnDatabase:
    """Tests running workflows against the SQLAlchemy store."""

    @pytest.fixture
    async def sql_engine(self, sql_store: SQLAlchemyWorkflowStore):
        from litestar_automations.engine.lifecycle import WorkflowEngine

        engine = WorkflowEngine(sql_store)
        yield engine
        await engine.shutdown()

    async def test_task_router(self, sql_engine) -> None:
        """Test the routing workflow completes with a persisted audit trail."""
        workflow = await sql_engine.create_workflow("task_router", user_id="user-1")
        names = ("start", "fetch", "check", "prioritize", "end")
        types = (StateType.START, StateType.ACTION, StateType.DECISION, StateType.ACTION, StateType.END)
        states = {}
        for name, state_type in zip(names, types):
            states[name] = await sql_engine.add_state(workflow.id, name, state_type=state_type)
        await sql_engine.add_transition(workflow.id, states["start"].id, states["fetch"].id)
        await sql_engine.add_transition(workflow.id, states["fetch"].id, states["check"].id)
        await sql_engine.add_transition(
            workflow.id, states["check"].id, states["prioritize"].id, condition={"task_count": {"$gt": 0}}
        )
        await sql_engine.add_transition(
            workflow.id, states["check"].id, states["end"].id, condition={"task_count": 0}
        )
        await sql_engine.add_transition(workflow.id, states["prioritize"].id, states["end"].id)
        await sql_engine.activate_workflow(workflow.id)

        instance = await sql_engine.start_workflow(workflow.id, "user-1", {"task_count": 7})
        final = await sql_engine.wait_for(instance.id, timeout=10)
        logs = await sql_engine.get_instance_logs(instance.id)

        assert final.status == InstanceStatus.COMPLETED
        assert [log.action for log in logs].count(LogAction.STATE_TRANSITION) == 4
        assert [log.sequence for log in logs] == list(range(1, len(logs) + 1))
        assert final.output_data[str(states["prioritize"].id)] == {"executed": True, "action_type": None}

    async def test_cancel_persists(self, sql_engine) -> None:
        """Test lifecycle changes are persisted."""
        import asyncio

        release = asyncio.Event()
        entered = asyncio.Event()

        async def wait_for_release(state, instance):
            entered.set()
            await release.wait()
            return {}

        sql_engine.dispatcher.register("wait_for_release", wait_for_release)
        workflow = await sql_engine.create_workflow("gate", user_id="user-1")
        start = await sql_engine.add_state(workflow.id, "start", state_type=StateType.START)
        gate = await sql_engine.add_state(workflow.id, "gate", action_type="wait_for_release")
        await sql_engine.add_transition(workflow.id, start.id, gate.id)

        instance = await sql_engine.start_workflow(workflow.id, "user-1")
        await asyncio.wait_for(entered.wait(), timeout=10)
        await sql_engine.cancel_workflow(instance.id, reason="test")
        release.set()
        final = await sql_engine.wait_for(instance.id, timeout=10)

        assert final.status == InstanceStatus.CANCELLED
        assert final.current_state_id == gate.id
        assert final.completed_at is not None

    async def test_code_set_result_persists(self, sql_engine) -> None:
        """Test a code action returning a set completes and stores a sorted list."""
        workflow = await sql_engine.create_workflow("set_result", user_id="user-1")
        start = await sql_engine.add_state(workflow.id, "start", state_type=StateType.START)
        code = await sql_engine.add_state(workflow.id, "code", action_type="code", action_config={"code": "{2, 1}"})
        end = await sql_engine.add_state(workflow.id, "end", state_type=StateType.END)
        await sql_engine.add_transition(workflow.id, start.id, code.id)
        await sql_engine.add_transition(workflow.id, code.id, end.id)

        instance = await sql_engine.start_workflow(workflow.id, "user-1")
        final = await sql_engine.wait_for(instance.id, timeout=10)

        assert final.status == InstanceStatus.COMPLETED
        assert final.output_data[str(code.id)] == {"result": [1, 2]}
        assert sql_engine.audit.failed_writes == 0

    async def test_unserializable_result_fails_instance(self, sql_engine) -> None:
        """Test a result that cannot be stored fails the instance with a log row."""

        async def opaque(state, instance):
            return {"handle": object()}

        sql_engine.dispatcher.register("opaque", opaque)
        workflow = await sql_engine.create_workflow("opaque_result", user_id="user-1")
        start = await sql_engine.add_state(workflow.id, "start", state_type=StateType.START)
        step = await sql_engine.add_state(workflow.id, "opaque", action_type="opaque")
        await sql_engine.add_transition(workflow.id, start.id, step.id)

        instance = await sql_engine.start_workflow(workflow.id, "user-1")
        final = await sql_engine.wait_for(instance.id, timeout=10)
        logs = await sql_engine.get_instance_logs(instance.id)

        assert final.status == InstanceStatus.FAILED
        assert "not JSON serializable" in final.error_message
        assert logs[-1].action == LogAction.WORKFLOW_FAILED
        assert sql_engine.audit.failed_writes == 0
