"""Concrete data models for litestar-automations.

These dataclasses are the records exchanged between the engine and a
:class:`~litestar_automations.core.protocols.WorkflowStore`. Stores translate
them to and from their own representation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from litestar_automations.core.types import (
    InstanceStatus,
    LogAction,
    LogStatus,
    StateType,
    TriggerType,
    WorkflowStatus,
)

__all__ = [
    "Workflow",
    "WorkflowDetails",
    "WorkflowInstance",
    "WorkflowLog",
    "WorkflowSchedule",
    "WorkflowState",
    "WorkflowTransition",
    "utcnow",
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Workflow:
    """A reusable workflow definition.

    Attributes:
        name: Display name of the workflow.
        user_id: Owning user; ``None`` for shared templates.
        description: Human-readable description.
        status: Lifecycle status. Only draft and active workflows can be started.
        trigger_type: How the workflow is meant to be triggered.
        trigger_config: Free-form trigger configuration.
        version: Integer version, bumped by authors.
        is_template: Whether this workflow is a template for cloning.
        template_category: Optional category for templates.
        metadata: Free-form metadata.
    """

    name: str
    id: UUID = field(default_factory=uuid4)
    user_id: str | None = None
    description: str | None = None
    status: WorkflowStatus = WorkflowStatus.DRAFT
    trigger_type: TriggerType = TriggerType.MANUAL
    trigger_config: dict[str, Any] = field(default_factory=dict)
    version: int = 1
    is_template: bool = False
    template_category: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class WorkflowState:
    """A node in a workflow graph.

    Attributes:
        workflow_id: The owning workflow.
        name: Display name, used in error messages.
        state_type: Node classification.
        action_type: Discriminator for the action dispatcher.
        action_config: Payload for the action handler.
        position_x: Canvas position, kept for editors.
        position_y: Canvas position, kept for editors.
        timeout_seconds: Deadline for the action; ``0`` disables it.
        retry_count: Retries allowed by a retry policy that honours it.
        retry_delay_seconds: Delay between retries.
    """

    workflow_id: UUID
    name: str
    id: UUID = field(default_factory=uuid4)
    description: str | None = None
    state_type: StateType = StateType.ACTION
    action_type: str | None = None
    action_config: dict[str, Any] = field(default_factory=dict)
    position_x: int = 0
    position_y: int = 0
    color: str = "#6366f1"
    icon: str | None = None
    timeout_seconds: int = 300
    retry_count: int = 0
    retry_delay_seconds: int = 60
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class WorkflowTransition:
    """A directed, optionally guarded edge between two states of one workflow.

    Attributes:
        workflow_id: The owning workflow.
        from_state_id: Source state.
        to_state_id: Target state.
        condition: Structured guard; empty means always true.
        condition_expression: Raw expression used when ``condition`` is empty.
        priority: Higher priorities are evaluated first.
        routing_points: Editor routing hints.
    """

    workflow_id: UUID
    from_state_id: UUID
    to_state_id: UUID
    id: UUID = field(default_factory=uuid4)
    name: str | None = None
    condition: dict[str, Any] = field(default_factory=dict)
    condition_expression: str | None = None
    priority: int = 0
    routing_points: list[dict[str, Any]] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class WorkflowSchedule:
    """A stored cron schedule for a workflow."""

    workflow_id: UUID
    cron_expression: str
    id: UUID = field(default_factory=uuid4)
    timezone: str = "UTC"
    enabled: bool = True
    input_data: dict[str, Any] = field(default_factory=dict)
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    run_count: int = 0
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class WorkflowDetails:
    """A workflow together with its graph and schedules."""

    workflow: Workflow
    states: list[WorkflowState] = field(default_factory=list)
    transitions: list[WorkflowTransition] = field(default_factory=list)
    schedules: list[WorkflowSchedule] = field(default_factory=list)

    @property
    def id(self) -> UUID:
        return self.workflow.id

    @property
    def start_state(self) -> WorkflowState | None:
        """Return the workflow's start state, if it has one."""
        return next((s for s in self.states if s.state_type == StateType.START), None)

    def get_state(self, state_id: UUID) -> WorkflowState | None:
        return next((s for s in self.states if s.id == state_id), None)


@dataclass
class WorkflowInstance:
    """One execution of a workflow.

    Attributes:
        workflow_id: The workflow being executed.
        user_id: User on whose behalf the instance runs.
        status: Current execution status.
        current_state_id: State the instance is at; ``None`` only when terminal.
        context: Mutable ``{"variables": ..., "outputs": ...}`` document.
        input_data: Snapshot of the input taken at start.
        output_data: Final output, set on completion.
        error_message: Failure reason for failed instances.
        trigger_source: What started the instance.
        started_at: When the instance was created.
        completed_at: When the instance reached a terminal status.
    """

    workflow_id: UUID
    id: UUID = field(default_factory=uuid4)
    user_id: str | None = None
    status: InstanceStatus = InstanceStatus.RUNNING
    current_state_id: UUID | None = None
    context: dict[str, Any] = field(default_factory=lambda: {"variables": {}, "outputs": {}})
    input_data: dict[str, Any] = field(default_factory=dict)
    output_data: dict[str, Any] = field(default_factory=dict)
    error_message: str | None = None
    trigger_source: str | None = None
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None


@dataclass
class WorkflowLog:
    """An append-only audit record for one instance.

    Attributes:
        instance_id: The instance this row belongs to.
        action: Event name.
        status: Outcome of the event.
        sequence: Per-instance insertion counter assigned by the store.
        state_id: State involved, if any.
        transition_id: Transition taken, if any.
        input_data: Snapshot of inputs.
        output_data: Snapshot of outputs.
        error: Error text for failed events.
        duration_ms: Wall-clock duration of the action, if timed.
    """

    instance_id: UUID
    action: LogAction
    status: LogStatus = LogStatus.SUCCESS
    id: UUID = field(default_factory=uuid4)
    sequence: int = 0
    state_id: UUID | None = None
    transition_id: UUID | None = None
    input_data: dict[str, Any] | None = None
    output_data: dict[str, Any] | None = None
    error: str | None = None
    duration_ms: int | None = None
    created_at: datetime = field(default_factory=utcnow)
