"""Repository implementations for workflow persistence.

This module provides async repositories for the workflow models using
advanced-alchemy's repository pattern. Generic CRUD comes from
``SQLAlchemyAsyncRepository``; the methods here are the queries the workflow
store needs on top of it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from advanced_alchemy.filters import LimitOffset, OrderBy
from advanced_alchemy.repository import SQLAlchemyAsyncRepository
from sqlalchemy import and_, func, select

from litestar_automations.db.models import (
    WorkflowInstanceModel,
    WorkflowLogModel,
    WorkflowModel,
    WorkflowScheduleModel,
    WorkflowStateModel,
    WorkflowTransitionModel,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from litestar_automations.core.types import InstanceStatus, WorkflowStatus

__all__ = [
    "WorkflowInstanceRepository",
    "WorkflowLogRepository",
    "WorkflowRepository",
    "WorkflowScheduleRepository",
    "WorkflowStateRepository",
    "WorkflowTransitionRepository",
]


class WorkflowRepository(SQLAlchemyAsyncRepository[WorkflowModel]):
    """Repository for workflow definitions and templates."""

    model_type = WorkflowModel

    async def find(
        self,
        *,
        user_id: str | None = None,
        status: WorkflowStatus | None = None,
        is_template: bool | None = None,
    ) -> Sequence[WorkflowModel]:
        """Find workflows, most recently updated first.

        Args:
            user_id: Optional owner filter.
            status: Optional status filter.
            is_template: Optional template filter.

        Returns:
            Matching workflows.
        """
        conditions = []
        if user_id is not None:
            conditions.append(WorkflowModel.user_id == user_id)
        if status is not None:
            conditions.append(WorkflowModel.status == status)
        if is_template is not None:
            conditions.append(WorkflowModel.is_template == is_template)

        return await self.list(
            *conditions,
            OrderBy(field_name="updated_at", sort_order="desc"),
        )


class WorkflowStateRepository(SQLAlchemyAsyncRepository[WorkflowStateModel]):
    """Repository for workflow states."""

    model_type = WorkflowStateModel

    async def find_by_workflow(self, workflow_id: UUID) -> Sequence[WorkflowStateModel]:
        """Find the states of a workflow in creation order."""
        stmt = (
            select(WorkflowStateModel)
            .where(WorkflowStateModel.workflow_id == workflow_id)
            .order_by(WorkflowStateModel.created_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()


class WorkflowTransitionRepository(SQLAlchemyAsyncRepository[WorkflowTransitionModel]):
    """Repository for workflow transitions."""

    model_type = WorkflowTransitionModel

    async def find_by_workflow(self, workflow_id: UUID) -> Sequence[WorkflowTransitionModel]:
        """Find the transitions of a workflow in creation order."""
        stmt = (
            select(WorkflowTransitionModel)
            .where(WorkflowTransitionModel.workflow_id == workflow_id)
            .order_by(WorkflowTransitionModel.created_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def find_outgoing(self, state_id: UUID) -> Sequence[WorkflowTransitionModel]:
        """Find transitions leaving a state.

        Args:
            state_id: The source state.

        Returns:
            Transitions by descending priority, ties in creation order.
        """
        stmt = (
            select(WorkflowTransitionModel)
            .where(WorkflowTransitionModel.from_state_id == state_id)
            .order_by(WorkflowTransitionModel.priority.desc(), WorkflowTransitionModel.created_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()


class WorkflowScheduleRepository(SQLAlchemyAsyncRepository[WorkflowScheduleModel]):
    """Repository for workflow schedules."""

    model_type = WorkflowScheduleModel

    async def find_by_workflow(self, workflow_id: UUID) -> Sequence[WorkflowScheduleModel]:
        stmt = (
            select(WorkflowScheduleModel)
            .where(WorkflowScheduleModel.workflow_id == workflow_id)
            .order_by(WorkflowScheduleModel.created_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()


class WorkflowInstanceRepository(SQLAlchemyAsyncRepository[WorkflowInstanceModel]):
    """Repository for workflow instances."""

    model_type = WorkflowInstanceModel

    async def find(
        self,
        *,
        workflow_id: UUID | None = None,
        status: InstanceStatus | None = None,
    ) -> Sequence[WorkflowInstanceModel]:
        """Find instances, oldest first.

        Args:
            workflow_id: Optional workflow filter.
            status: Optional status filter.

        Returns:
            Matching instances.
        """
        conditions = []
        if workflow_id is not None:
            conditions.append(WorkflowInstanceModel.workflow_id == workflow_id)
        if status is not None:
            conditions.append(WorkflowInstanceModel.status == status)

        stmt = select(WorkflowInstanceModel).where(and_(True, *conditions)).order_by(WorkflowInstanceModel.started_at)
        result = await self.session.execute(stmt)
        return result.scalars().all()


class WorkflowLogRepository(SQLAlchemyAsyncRepository[WorkflowLogModel]):
    """Repository for the append-only execution log."""

    model_type = WorkflowLogModel

    async def next_sequence(self, instance_id: UUID) -> int:
        """Return the sequence number the next row of an instance gets."""
        stmt = select(func.coalesce(func.max(WorkflowLogModel.sequence), 0)).where(
            WorkflowLogModel.instance_id == instance_id
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one()) + 1

    async def find_by_instance(
        self,
        instance_id: UUID,
        *,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> Sequence[WorkflowLogModel]:
        """Find the log rows of an instance by sequence.

        Args:
            instance_id: The instance.
            limit: Optional maximum number of rows.
            newest_first: Order by descending sequence.

        Returns:
            The log rows.
        """
        filters = [
            WorkflowLogModel.instance_id == instance_id,
            OrderBy(field_name="sequence", sort_order="desc" if newest_first else "asc"),
        ]
        if limit is not None:
            filters.append(LimitOffset(limit=max(limit, 0), offset=0))
        return await self.list(*filters)
