"""Litestar Automations - persisted state-machine workflows for Litestar.

This package runs user-defined automation workflows: graphs of states and
guarded transitions that are advanced on behalf of users, executing an action
at each state and recording a full audit trail.

Key Features:
    - Workflows, instances and logs persisted through a pluggable store
      (in-memory or SQLAlchemy)
    - Structured and expression guards on transitions, evaluated by a
      restricted interpreter
    - Built-in actions: AI tasks, HTTP requests, delays, transforms and code
    - Pause, resume, cancel and crash recovery of running instances
    - Litestar plugin for dependency injection

Example:
    >>> from litestar_automations import InMemoryWorkflowStore, StateType, WorkflowEngine
    >>>
    >>> engine = WorkflowEngine(InMemoryWorkflowStore())
    >>> workflow = await engine.create_workflow("welcome", user_id="u1")
    >>> start = await engine.add_state(workflow.id, "start", state_type=StateType.START)
    >>> end = await engine.add_state(workflow.id, "end", state_type=StateType.END)
    >>> await engine.add_transition(workflow.id, start.id, end.id)
    >>> instance = await engine.start_workflow(workflow.id, "u1")
"""

from __future__ import annotations

from litestar_automations.__metadata__ import __project__, __version__
from litestar_automations.config import EngineConfig, ExpressionLimits
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
    InstanceStatus,
    LogAction,
    LogStatus,
    StateType,
    TriggerType,
    WorkflowStatus,
)
from litestar_automations.engine import ActionDispatcher, NoRetryPolicy, StateRetryPolicy, WorkflowEngine
from litestar_automations.exceptions import (
    ActionExecutionError,
    ActionTimeoutError,
    AutomationsError,
    ExpressionError,
    InvalidStateError,
    MissingStartStateError,
    NoMatchingTransitionError,
    NotFoundError,
    StateNotFoundError,
    StoreError,
    WorkflowInstanceNotFoundError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from litestar_automations.plugin import AutomationPlugin, AutomationPluginConfig
from litestar_automations.store import InMemoryWorkflowStore

__all__ = (
    "ActionDispatcher",
    "ActionExecutionError",
    "ActionTimeoutError",
    "ActionType",
    "AutomationPlugin",
    "AutomationPluginConfig",
    "AutomationsError",
    "CompletionClient",
    "EngineConfig",
    "ExpressionError",
    "ExpressionLimits",
    "InMemoryWorkflowStore",
    "InstanceStatus",
    "InvalidStateError",
    "LogAction",
    "LogStatus",
    "MissingStartStateError",
    "NoMatchingTransitionError",
    "NoRetryPolicy",
    "NotFoundError",
    "StateNotFoundError",
    "StateRetryPolicy",
    "StateType",
    "StoreError",
    "TriggerType",
    "Workflow",
    "WorkflowDetails",
    "WorkflowEngine",
    "WorkflowInstance",
    "WorkflowInstanceNotFoundError",
    "WorkflowLog",
    "WorkflowNotFoundError",
    "WorkflowSchedule",
    "WorkflowState",
    "WorkflowStatus",
    "WorkflowStore",
    "WorkflowTransition",
    "WorkflowValidationError",
    "__project__",
    "__version__",
)
