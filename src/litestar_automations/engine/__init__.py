"""Execution engine for litestar-automations.

This module provides the workflow engine together with the pieces it is built
from: the condition evaluator, the expression interpreter, the action
dispatcher, retry policies, the instance runner and the execution logger.
"""

from __future__ import annotations

from litestar_automations.engine.actions import (
    ActionDispatcher,
    ActionHandler,
    AITaskConfig,
    CodeConfig,
    DelayConfig,
    HttpRequestConfig,
    TransformConfig,
)
from litestar_automations.engine.audit import ExecutionLogger
from litestar_automations.engine.conditions import ConditionEvaluator, compare
from litestar_automations.engine.expressions import ExpressionInterpreter, evaluate
from litestar_automations.engine.lifecycle import WorkflowEngine
from litestar_automations.engine.retry import NoRetryPolicy, RetryPolicy, StateRetryPolicy
from litestar_automations.engine.runner import InstanceRunner

__all__ = [
    "AITaskConfig",
    "ActionDispatcher",
    "ActionHandler",
    "CodeConfig",
    "ConditionEvaluator",
    "DelayConfig",
    "ExecutionLogger",
    "ExpressionInterpreter",
    "HttpRequestConfig",
    "InstanceRunner",
    "NoRetryPolicy",
    "RetryPolicy",
    "StateRetryPolicy",
    "TransformConfig",
    "WorkflowEngine",
    "compare",
    "evaluate",
]
