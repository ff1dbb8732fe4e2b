"""Workflow store backed by SQLAlchemy.

Each store operation runs in its own session from an ``async_sessionmaker``
and commits before returning, so the runner and the lifecycle operations never
share a transaction.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from advanced_alchemy.exceptions import AdvancedAlchemyError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from litestar_automations.core.models import (
    Workflow,
    WorkflowInstance,
    WorkflowLog,
    WorkflowSchedule,
    WorkflowState,
    WorkflowTransition,
)
from litestar_automations.db.models import (
    WorkflowInstanceModel,
    WorkflowLogModel,
    WorkflowModel,
    WorkflowScheduleModel,
    WorkflowStateModel,
    WorkflowTransitionModel,
)
from litestar_automations.db.repositories import (
    WorkflowInstanceRepository,
    WorkflowLogRepository,
    WorkflowRepository,
    WorkflowScheduleRepository,
    WorkflowStateRepository,
    WorkflowTransitionRepository,
)
from litestar_automations.exceptions import StoreError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from uuid import UUID

    from advanced_alchemy.repository import SQLAlchemyAsyncRepository

    from litestar_automations.core.types import InstanceStatus, WorkflowStatus

__all__ = ["SQLAlchemyWorkflowStore"]

ModelT = TypeVar("ModelT")


def _workflow_from_model(model: WorkflowModel) -> Workflow:
    return Workflow(
        id=model.id,
        user_id=model.user_id,
        name=model.name,
        description=model.description,
        status=model.status,
        trigger_type=model.trigger_type,
        trigger_config=dict(model.trigger_config or {}),
        version=model.version,
        is_template=model.is_template,
        template_category=model.template_category,
        metadata=dict(model.metadata_ or {}),
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _workflow_values(workflow: Workflow) -> dict[str, Any]:
    return {
        "user_id": workflow.user_id,
        "name": workflow.name,
        "description": workflow.description,
        "status": workflow.status,
        "trigger_type": workflow.trigger_type,
        "trigger_config": workflow.trigger_config,
        "version": workflow.version,
        "is_template": workflow.is_template,
        "template_category": workflow.template_category,
        "metadata_": workflow.metadata,
    }


def _state_from_model(model: WorkflowStateModel) -> WorkflowState:
    return WorkflowState(
        id=model.id,
        workflow_id=model.workflow_id,
        name=model.name,
        description=model.description,
        state_type=model.state_type,
        action_type=model.action_type,
        action_config=dict(model.action_config or {}),
        position_x=model.position_x,
        position_y=model.position_y,
        color=model.color,
        icon=model.icon,
        timeout_seconds=model.timeout_seconds,
        retry_count=model.retry_count,
        retry_delay_seconds=model.retry_delay_seconds,
        created_at=model.created_at,
    )


def _state_values(state: WorkflowState) -> dict[str, Any]:
    return {
        "workflow_id": state.workflow_id,
        "name": state.name,
        "description": state.description,
        "state_type": state.state_type,
        "action_type": state.action_type,
        "action_config": state.action_config,
        "position_x": state.position_x,
        "position_y": state.position_y,
        "color": state.color,
        "icon": state.icon,
        "timeout_seconds": state.timeout_seconds,
        "retry_count": state.retry_count,
        "retry_delay_seconds": state.retry_delay_seconds,
    }


def _transition_from_model(model: WorkflowTransitionModel) -> WorkflowTransition:
    return WorkflowTransition(
        id=model.id,
        workflow_id=model.workflow_id,
        from_state_id=model.from_state_id,
        to_state_id=model.to_state_id,
        name=model.name,
        condition=dict(model.condition or {}),
        condition_expression=model.condition_expression,
        priority=model.priority,
        routing_points=list(model.routing_points or []),
        created_at=model.created_at,
    )


def _schedule_from_model(model: WorkflowScheduleModel) -> WorkflowSchedule:
    return WorkflowSchedule(
        id=model.id,
        workflow_id=model.workflow_id,
        cron_expression=model.cron_expression,
        timezone=model.timezone,
        enabled=model.enabled,
        input_data=dict(model.input_data or {}),
        last_run_at=model.last_run_at,
        next_run_at=model.next_run_at,
        run_count=model.run_count,
        created_at=model.created_at,
    )


def _instance_from_model(model: WorkflowInstanceModel) -> WorkflowInstance:
    return WorkflowInstance(
        id=model.id,
        workflow_id=model.workflow_id,
        user_id=model.user_id,
        status=model.status,
        current_state_id=model.current_state_id,
        context=dict(model.context or {}),
        input_data=dict(model.input_data or {}),
        output_data=dict(model.output_data or {}),
        error_message=model.error_message,
        trigger_source=model.trigger_source,
        started_at=model.started_at,
        completed_at=model.completed_at,
    )


def _instance_values(instance: WorkflowInstance) -> dict[str, Any]:
    return {
        "workflow_id": instance.workflow_id,
        "user_id": instance.user_id,
        "status": instance.status,
        "current_state_id": instance.current_state_id,
        "context": instance.context,
        "input_data": instance.input_data,
        "output_data": instance.output_data,
        "error_message": instance.error_message,
        "trigger_source": instance.trigger_source,
        "started_at": instance.started_at,
        "completed_at": instance.completed_at,
    }


def _log_from_model(model: WorkflowLogModel) -> WorkflowLog:
    return WorkflowLog(
        id=model.id,
        instance_id=model.instance_id,
        sequence=model.sequence,
        state_id=model.state_id,
        transition_id=model.transition_id,
        action=model.action,
        status=model.status,
        input_data=model.input_data,
        output_data=model.output_data,
        error=model.error,
        duration_ms=model.duration_ms,
        created_at=model.created_at,
    )


class SQLAlchemyWorkflowStore:
    """SQLAlchemy implementation of :class:`~litestar_automations.core.protocols.WorkflowStore`.

    Works with any async driver SQLAlchemy supports; JSON columns use JSONB on
    PostgreSQL. Driver and repository errors are raised as
    :class:`~litestar_automations.exceptions.StoreError`.

    Example:
        >>> engine = create_async_engine("sqlite+aiosqlite:///automations.db")
        >>> store = SQLAlchemyWorkflowStore(engine)
        >>> await store.create_all()
    """

    def __init__(self, bind: AsyncEngine | async_sessionmaker[AsyncSession]) -> None:
        """Initialize the store.

        Args:
            bind: An async engine, or a session factory. Sessions created
                from an engine do not expire objects on commit.
        """
        if isinstance(bind, AsyncEngine):
            self.engine: AsyncEngine | None = bind
            self.session_factory = async_sessionmaker(bind, expire_on_commit=False)
        else:
            self.engine = None
            self.session_factory = bind
        self._log_lock = asyncio.Lock()

    async def create_all(self) -> None:
        """Create the tables. Use the Alembic migration in production."""
        if self.engine is None:
            msg = "create_all requires the store to be built from an AsyncEngine"
            raise RuntimeError(msg)
        async with self.engine.begin() as conn:
            await conn.run_sync(WorkflowModel.metadata.create_all)

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as session:
                yield session
        except (SQLAlchemyError, AdvancedAlchemyError) as exc:
            raise StoreError(operation, exc) from exc

    async def _insert(
        self,
        operation: str,
        repository_type: type[SQLAlchemyAsyncRepository[Any]],
        model: Any,
        convert: Callable[[Any], ModelT],
    ) -> ModelT:
        async with self._session(operation) as session:
            repo = repository_type(session=session)
            stored = await repo.add(model)
            result = convert(stored)
            await session.commit()
            return result

    async def _get(
        self,
        operation: str,
        repository_type: type[SQLAlchemyAsyncRepository[Any]],
        record_id: UUID,
        convert: Callable[[Any], ModelT],
    ) -> ModelT | None:
        async with self._session(operation) as session:
            model = await repository_type(session=session).get_one_or_none(id=record_id)
            return convert(model) if model is not None else None

    async def _replace(
        self,
        operation: str,
        repository_type: type[SQLAlchemyAsyncRepository[Any]],
        record_id: UUID,
        values: dict[str, Any],
        convert: Callable[[Any], ModelT],
    ) -> ModelT:
        async with self._session(operation) as session:
            repo = repository_type(session=session)
            model = await repo.get_one_or_none(id=record_id)
            if model is None:
                raise StoreError(operation, KeyError(f"unknown id {record_id}"))
            for key, value in values.items():
                setattr(model, key, value)
            stored = await repo.update(model)
            result = convert(stored)
            await session.commit()
            return result

    # Workflows

    async def create_workflow(self, workflow: Workflow) -> Workflow:
        model = WorkflowModel(id=workflow.id, created_at=workflow.created_at, **_workflow_values(workflow))
        return await self._insert("create_workflow", WorkflowRepository, model, _workflow_from_model)

    async def get_workflow(self, workflow_id: UUID) -> Workflow | None:
        return await self._get("get_workflow", WorkflowRepository, workflow_id, _workflow_from_model)

    async def update_workflow(self, workflow: Workflow) -> Workflow:
        return await self._replace(
            "update_workflow", WorkflowRepository, workflow.id, _workflow_values(workflow), _workflow_from_model
        )

    async def list_workflows(
        self,
        *,
        user_id: str | None = None,
        status: WorkflowStatus | None = None,
        is_template: bool | None = None,
    ) -> list[Workflow]:
        async with self._session("list_workflows") as session:
            models = await WorkflowRepository(session=session).find(
                user_id=user_id, status=status, is_template=is_template
            )
            return [_workflow_from_model(m) for m in models]

    # States

    async def add_state(self, state: WorkflowState) -> WorkflowState:
        model = WorkflowStateModel(id=state.id, created_at=state.created_at, **_state_values(state))
        return await self._insert("add_state", WorkflowStateRepository, model, _state_from_model)

    async def get_state(self, state_id: UUID) -> WorkflowState | None:
        return await self._get("get_state", WorkflowStateRepository, state_id, _state_from_model)

    async def list_states(self, workflow_id: UUID) -> list[WorkflowState]:
        async with self._session("list_states") as session:
            models = await WorkflowStateRepository(session=session).find_by_workflow(workflow_id)
            return [_state_from_model(m) for m in models]

    async def update_state(self, state: WorkflowState) -> WorkflowState:
        return await self._replace(
            "update_state", WorkflowStateRepository, state.id, _state_values(state), _state_from_model
        )

    # Transitions

    async def add_transition(self, transition: WorkflowTransition) -> WorkflowTransition:
        model = WorkflowTransitionModel(
            id=transition.id,
            workflow_id=transition.workflow_id,
            from_state_id=transition.from_state_id,
            to_state_id=transition.to_state_id,
            name=transition.name,
            condition=transition.condition,
            condition_expression=transition.condition_expression,
            priority=transition.priority,
            routing_points=transition.routing_points,
            created_at=transition.created_at,
        )
        return await self._insert("add_transition", WorkflowTransitionRepository, model, _transition_from_model)

    async def list_transitions(self, workflow_id: UUID) -> list[WorkflowTransition]:
        async with self._session("list_transitions") as session:
            models = await WorkflowTransitionRepository(session=session).find_by_workflow(workflow_id)
            return [_transition_from_model(m) for m in models]

    async def get_transitions_from(self, state_id: UUID) -> list[WorkflowTransition]:
        async with self._session("get_transitions_from") as session:
            models = await WorkflowTransitionRepository(session=session).find_outgoing(state_id)
            return [_transition_from_model(m) for m in models]

    # Schedules

    async def add_schedule(self, schedule: WorkflowSchedule) -> WorkflowSchedule:
        model = WorkflowScheduleModel(
            id=schedule.id,
            workflow_id=schedule.workflow_id,
            cron_expression=schedule.cron_expression,
            timezone=schedule.timezone,
            enabled=schedule.enabled,
            input_data=schedule.input_data,
            last_run_at=schedule.last_run_at,
            next_run_at=schedule.next_run_at,
            run_count=schedule.run_count,
            created_at=schedule.created_at,
        )
        return await self._insert("add_schedule", WorkflowScheduleRepository, model, _schedule_from_model)

    async def list_schedules(self, workflow_id: UUID) -> list[WorkflowSchedule]:
        async with self._session("list_schedules") as session:
            models = await WorkflowScheduleRepository(session=session).find_by_workflow(workflow_id)
            return [_schedule_from_model(m) for m in models]

    # Instances

    async def create_instance(self, instance: WorkflowInstance) -> WorkflowInstance:
        model = WorkflowInstanceModel(id=instance.id, **_instance_values(instance))
        return await self._insert("create_instance", WorkflowInstanceRepository, model, _instance_from_model)

    async def get_instance(self, instance_id: UUID) -> WorkflowInstance | None:
        return await self._get("get_instance", WorkflowInstanceRepository, instance_id, _instance_from_model)

    async def update_instance(self, instance: WorkflowInstance) -> WorkflowInstance:
        return await self._replace(
            "update_instance",
            WorkflowInstanceRepository,
            instance.id,
            _instance_values(instance),
            _instance_from_model,
        )

    async def list_instances(
        self,
        *,
        workflow_id: UUID | None = None,
        status: InstanceStatus | None = None,
    ) -> list[WorkflowInstance]:
        async with self._session("list_instances") as session:
            models = await WorkflowInstanceRepository(session=session).find(workflow_id=workflow_id, status=status)
            return [_instance_from_model(m) for m in models]

    # Logs

    async def add_log(self, log: WorkflowLog) -> WorkflowLog:
        async with self._log_lock, self._session("add_log") as session:
            repo = WorkflowLogRepository(session=session)
            model = WorkflowLogModel(
                id=log.id,
                instance_id=log.instance_id,
                sequence=await repo.next_sequence(log.instance_id),
                state_id=log.state_id,
                transition_id=log.transition_id,
                action=log.action,
                status=log.status,
                input_data=log.input_data,
                output_data=log.output_data,
                error=log.error,
                duration_ms=log.duration_ms,
                created_at=log.created_at,
            )
            stored = await repo.add(model)
            result = _log_from_model(stored)
            await session.commit()
            return result

    async def list_logs(
        self,
        instance_id: UUID,
        *,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[WorkflowLog]:
        async with self._session("list_logs") as session:
            models = await WorkflowLogRepository(session=session).find_by_instance(
                instance_id, limit=limit, newest_first=newest_first
            )
            return [_log_from_model(m) for m in models]
