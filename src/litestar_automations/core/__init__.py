"""Core domain module for litestar-automations.

This module exports the records, enums, guard conditions, context helpers and
protocols shared by the engine and the stores.
"""

from __future__ import annotations

from litestar_automations.core.conditions import (
    AllCondition,
    AnyCondition,
    ComparisonCondition,
    Condition,
    EmptyCondition,
    ExpressionCondition,
    FieldMatchCondition,
    UnknownCondition,
    parse_condition,
    transition_condition,
)
from litestar_automations.core.context import (
    MISSING,
    new_context,
    render_template,
    resolve_context_path,
    resolve_path,
    with_output,
)
from litestar_automations.core.models import (
    Workflow,
    WorkflowDetails,
    WorkflowInstance,
    WorkflowLog,
    WorkflowSchedule,
    WorkflowState,
    WorkflowTransition,
)
from litestar_automations.core.protocols import CompletionClient, WorkflowStore
from litestar_automations.core.types import (
    ActionType,
    Context,
    InstanceStatus,
    LogAction,
    LogStatus,
    StateType,
    TriggerType,
    WorkflowStatus,
)

__all__ = [
    "MISSING",
    "ActionType",
    "AllCondition",
    "AnyCondition",
    "ComparisonCondition",
    "CompletionClient",
    "Condition",
    "Context",
    "EmptyCondition",
    "ExpressionCondition",
    "FieldMatchCondition",
    "InstanceStatus",
    "LogAction",
    "LogStatus",
    "StateType",
    "TriggerType",
    "UnknownCondition",
    "Workflow",
    "WorkflowDetails",
    "WorkflowInstance",
    "WorkflowLog",
    "WorkflowSchedule",
    "WorkflowState",
    "WorkflowStatus",
    "WorkflowStore",
    "WorkflowTransition",
    "new_context",
    "parse_condition",
    "render_template",
    "resolve_context_path",
    "resolve_path",
    "transition_condition",
    "with_output",
]
