"""SQLAlchemy models for workflow persistence.

This module defines the database models behind
:class:`~litestar_automations.db.store.SQLAlchemyWorkflowStore`:

- WorkflowModel: Workflow definitions and templates
- WorkflowStateModel: Nodes of a workflow graph
- WorkflowTransitionModel: Guarded edges between states
- WorkflowScheduleModel: Stored cron schedules
- WorkflowInstanceModel: Running and finished executions
- WorkflowLogModel: Append-only execution log
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any
from uuid import UUID

from advanced_alchemy.base import UUIDAuditBase
from advanced_alchemy.types import DateTimeUTC
from sqlalchemy import JSON, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from litestar_automations.core.types import InstanceStatus, LogAction, LogStatus, StateType, TriggerType, WorkflowStatus

__all__ = [
    "JSONType",
    "WorkflowInstanceModel",
    "WorkflowLogModel",
    "WorkflowModel",
    "WorkflowScheduleModel",
    "WorkflowStateModel",
    "WorkflowTransitionModel",
]


# Cross-database JSON type: uses JSONB for PostgreSQL, JSON for others (SQLite, MySQL, etc.)
JSONType = JSON().with_variant(JSONB, "postgresql")


def _enum_column(enum_class: type[PyEnum]) -> Enum:
    """Store enum values ("running"), not member names, as plain strings."""
    return Enum(
        enum_class,
        native_enum=False,
        length=50,
        values_callable=lambda members: [member.value for member in members],
    )


class WorkflowModel(UUIDAuditBase):
    """Persisted workflow definition.

    Attributes:
        user_id: Owning user; ``None`` for shared templates.
        name: Display name.
        description: Human-readable description.
        status: Lifecycle status.
        trigger_type: How the workflow is meant to be triggered.
        trigger_config: Free-form trigger configuration.
        version: Integer version.
        is_template: Whether the workflow is a template.
        template_category: Category of a template.
        metadata_: Free-form metadata, stored in the ``metadata`` column.
    """

    __tablename__ = "automation_workflows"
    __table_args__ = (
        Index("ix_automation_workflows_user_id", "user_id"),
        Index("ix_automation_workflows_status", "status"),
        Index("ix_automation_workflows_is_template", "is_template"),
    )

    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[WorkflowStatus] = mapped_column(_enum_column(WorkflowStatus), default=WorkflowStatus.DRAFT)
    trigger_type: Mapped[TriggerType] = mapped_column(_enum_column(TriggerType), default=TriggerType.MANUAL)
    trigger_config: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    version: Mapped[int] = mapped_column(Integer, default=1)
    is_template: Mapped[bool] = mapped_column(default=False)
    template_category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONType,
        default=dict,
    )

    # Relationships
    states: Mapped[list[WorkflowStateModel]] = relationship(
        back_populates="workflow",
        lazy="noload",
        cascade="all, delete-orphan",
    )


class WorkflowStateModel(UUIDAuditBase):
    """A node of a workflow graph.

    Attributes:
        workflow_id: Foreign key to the owning workflow.
        state_type: Node classification.
        action_type: Discriminator for the action dispatcher.
        action_config: Payload for the action.
        timeout_seconds: Deadline of the action.
        retry_count: Retries allowed by an opted-in retry policy.
        retry_delay_seconds: Delay between retries.
    """

    __tablename__ = "automation_workflow_states"
    __table_args__ = (Index("ix_automation_workflow_states_workflow_id", "workflow_id"),)

    workflow_id: Mapped[UUID] = mapped_column(
        ForeignKey("automation_workflows.id", ondelete="CASCADE"),
    )
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    state_type: Mapped[StateType] = mapped_column(_enum_column(StateType), default=StateType.ACTION)
    action_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    action_config: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    position_x: Mapped[int] = mapped_column(Integer, default=0)
    position_y: Mapped[int] = mapped_column(Integer, default=0)
    color: Mapped[str] = mapped_column(String(20), default="#6366f1")
    icon: Mapped[str | None] = mapped_column(String(50), nullable=True)
    timeout_seconds: Mapped[int] = mapped_column(Integer, default=300)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    retry_delay_seconds: Mapped[int] = mapped_column(Integer, default=60)

    # Relationships
    workflow: Mapped[WorkflowModel] = relationship(back_populates="states")


class WorkflowTransitionModel(UUIDAuditBase):
    """A guarded edge between two states of one workflow.

    Attributes:
        condition: Structured guard document.
        condition_expression: Raw expression used when ``condition`` is empty.
        priority: Higher priorities are evaluated first.
        routing_points: Editor routing hints.
    """

    __tablename__ = "automation_workflow_transitions"
    __table_args__ = (
        Index("ix_automation_workflow_transitions_workflow_id", "workflow_id"),
        Index("ix_automation_workflow_transitions_from_state", "from_state_id", "priority"),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        ForeignKey("automation_workflows.id", ondelete="CASCADE"),
    )
    from_state_id: Mapped[UUID] = mapped_column(
        ForeignKey("automation_workflow_states.id", ondelete="CASCADE"),
    )
    to_state_id: Mapped[UUID] = mapped_column(
        ForeignKey("automation_workflow_states.id", ondelete="CASCADE"),
    )
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    condition: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    condition_expression: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    routing_points: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)


class WorkflowScheduleModel(UUIDAuditBase):
    """A stored cron schedule of a workflow."""

    __tablename__ = "automation_workflow_schedules"
    __table_args__ = (Index("ix_automation_workflow_schedules_workflow_id", "workflow_id"),)

    workflow_id: Mapped[UUID] = mapped_column(
        ForeignKey("automation_workflows.id", ondelete="CASCADE"),
    )
    cron_expression: Mapped[str] = mapped_column(String(100))
    timezone: Mapped[str] = mapped_column(String(50), default="UTC")
    enabled: Mapped[bool] = mapped_column(default=True)
    input_data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    next_run_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    run_count: Mapped[int] = mapped_column(Integer, default=0)


class WorkflowInstanceModel(UUIDAuditBase):
    """Persisted execution of a workflow.

    Attributes:
        workflow_id: Foreign key to the executed workflow.
        user_id: User the instance runs for.
        status: Current execution status.
        current_state_id: State the instance is at.
        context: ``{"variables": ..., "outputs": ...}`` document.
        input_data: Snapshot of the input.
        output_data: Final output.
        error_message: Failure reason.
        trigger_source: What started the instance.
        started_at: When the instance was created.
        completed_at: When the instance reached a terminal status.
    """

    __tablename__ = "automation_workflow_instances"
    __table_args__ = (
        Index("ix_automation_workflow_instances_workflow_id", "workflow_id"),
        Index("ix_automation_workflow_instances_status", "status"),
        Index("ix_automation_workflow_instances_user_id", "user_id"),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        ForeignKey("automation_workflows.id", ondelete="CASCADE"),
    )
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[InstanceStatus] = mapped_column(_enum_column(InstanceStatus), default=InstanceStatus.RUNNING)
    current_state_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("automation_workflow_states.id", ondelete="SET NULL"),
        nullable=True,
    )
    context: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    input_data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    output_data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    trigger_source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTimeUTC(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTimeUTC(timezone=True),
        nullable=True,
    )


class WorkflowLogModel(UUIDAuditBase):
    """Append-only execution log row.

    Attributes:
        instance_id: Foreign key to the instance.
        sequence: Per-instance insertion counter.
        action: Event name.
        status: Outcome of the event.
        duration_ms: Duration of the action, if timed.
    """

    __tablename__ = "automation_workflow_logs"
    __table_args__ = (
        Index("ix_automation_workflow_logs_instance_sequence", "instance_id", "sequence", unique=True),
    )

    instance_id: Mapped[UUID] = mapped_column(
        ForeignKey("automation_workflow_instances.id", ondelete="CASCADE"),
    )
    sequence: Mapped[int] = mapped_column(Integer)
    state_id: Mapped[UUID | None] = mapped_column(nullable=True)
    transition_id: Mapped[UUID | None] = mapped_column(nullable=True)
    action: Mapped[LogAction] = mapped_column(_enum_column(LogAction))
    status: Mapped[LogStatus] = mapped_column(_enum_column(LogStatus), default=LogStatus.SUCCESS)
    input_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    output_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
