"""Core type definitions for litestar-automations.

This module defines the enums and type aliases shared by the store, the
engine and the persistence models.
"""

from __future__ import annotations

import sys
from enum import Enum
from typing import Any, TypeAlias

# StrEnum backport for Python < 3.11
if sys.version_info >= (3, 11):
    from enum import StrEnum
else:

    class StrEnum(str, Enum):
        """String enumeration compatibility for Python < 3.11."""

        def __str__(self) -> str:
            return str(self.value)


__all__ = [
    "ActionType",
    "Context",
    "InstanceStatus",
    "LogAction",
    "LogStatus",
    "StateType",
    "TriggerType",
    "WorkflowStatus",
]


class WorkflowStatus(StrEnum):
    """Lifecycle status of a workflow definition.

    Only ``DRAFT`` and ``ACTIVE`` workflows can be started.
    """

    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class TriggerType(StrEnum):
    """How a workflow is meant to be triggered."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"
    EVENT = "event"
    AI_SUGGESTED = "ai_suggested"
    WEBHOOK = "webhook"


class StateType(StrEnum):
    """Classification of nodes in a workflow graph.

    Attributes:
        START: Entry point. Exactly one per workflow.
        ACTION: Executes its action and moves on.
        DECISION: Branching point; usually carries no action.
        PARALLEL: Reserved for fan-out; executed like an action state.
        WAIT: Waits, typically through a ``delay`` action.
        END: Terminal node. Reaching it completes the instance.
    """

    START = "start"
    ACTION = "action"
    DECISION = "decision"
    PARALLEL = "parallel"
    WAIT = "wait"
    END = "end"


class InstanceStatus(StrEnum):
    """Execution status of a workflow instance.

    ``COMPLETED``, ``FAILED`` and ``CANCELLED`` are terminal.
    """

    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (InstanceStatus.COMPLETED, InstanceStatus.FAILED, InstanceStatus.CANCELLED)


class LogStatus(StrEnum):
    """Outcome recorded on a log row."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    PENDING = "pending"


class LogAction(StrEnum):
    """Event names written to the execution log."""

    WORKFLOW_STARTED = "workflow_started"
    STATE_EXECUTED = "state_executed"
    STATE_TRANSITION = "state_transition"
    WORKFLOW_PAUSED = "workflow_paused"
    WORKFLOW_RESUMED = "workflow_resumed"
    WORKFLOW_CANCELLED = "workflow_cancelled"
    WORKFLOW_COMPLETED = "workflow_completed"
    WORKFLOW_FAILED = "workflow_failed"


class ActionType(StrEnum):
    """Built-in action kinds understood by the dispatcher."""

    AI_TASK = "ai_task"
    HTTP_REQUEST = "http_request"
    DELAY = "delay"
    TRANSFORM = "transform"
    CODE = "code"


# Type aliases for workflow data
Context: TypeAlias = dict[str, Any]
"""Instance context document: ``{"variables": {...}, "outputs": {...}}``."""
