"""Database persistence layer for litestar-automations.

This module provides SQLAlchemy models, advanced-alchemy repositories and the
:class:`SQLAlchemyWorkflowStore` built on them. The Alembic migration for the
tables lives in ``litestar_automations/db/migrations``.
"""

from __future__ import annotations

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
from litestar_automations.db.store import SQLAlchemyWorkflowStore

__all__ = [
    "SQLAlchemyWorkflowStore",
    "WorkflowInstanceModel",
    "WorkflowInstanceRepository",
    "WorkflowLogModel",
    "WorkflowLogRepository",
    "WorkflowModel",
    "WorkflowRepository",
    "WorkflowScheduleModel",
    "WorkflowScheduleRepository",
    "WorkflowStateModel",
    "WorkflowStateRepository",
    "WorkflowTransitionModel",
    "WorkflowTransitionRepository",
]
