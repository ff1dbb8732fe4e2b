"""Transition guard evaluation.

Evaluation is pure: it reads the instance context and never raises. A guard
that cannot be evaluated, for example an ordering comparison between a string
and a number or an expression that fails to parse, is simply false.
"""

from __future__ import annotations

import logging
import operator
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable

from litestar_automations.core.conditions import (
    AllCondition,
    AnyCondition,
    ComparisonCondition,
    Condition,
    EmptyCondition,
    ExpressionCondition,
    FieldMatchCondition,
    UnknownCondition,
    transition_condition,
)
from litestar_automations.core.context import MISSING, resolve_context_path
from litestar_automations.engine.expressions import evaluate
from litestar_automations.exceptions import ExpressionError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from litestar_automations.config import ExpressionLimits
    from litestar_automations.core.models import WorkflowTransition

__all__ = ["ConditionEvaluator", "compare"]

logger = logging.getLogger(__name__)


def _stringify(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _strict_equal(left: Any, right: Any) -> bool:
    # booleans never equal numbers
    if isinstance(left, bool) is not isinstance(right, bool):
        return False
    return bool(left == right)


def _not_equal(left: Any, right: Any) -> bool:
    return not _strict_equal(left, right)


def _contains(container: Any, item: Any) -> bool:
    if isinstance(container, Mapping):
        return item in container
    if isinstance(container, (list, tuple, set, frozenset)):
        return any(_strict_equal(member, item) for member in container)
    return _stringify(item) in _stringify(container)


def _starts_with(value: Any, prefix: Any) -> bool:
    return _stringify(value).startswith(_stringify(prefix))


def _ends_with(value: Any, suffix: Any) -> bool:
    return _stringify(value).endswith(_stringify(suffix))


_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "==": _strict_equal,
    "!=": _not_equal,
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
    "contains": _contains,
    "startsWith": _starts_with,
    "endsWith": _ends_with,
}

_DOCUMENT_OPERATORS: dict[str, str] = {
    "$eq": "==",
    "$ne": "!=",
    "$gt": ">",
    "$gte": ">=",
    "$lt": "<",
    "$lte": "<=",
    "$contains": "contains",
}


def compare(actual: Any, operator_name: str, expected: Any) -> bool:
    """Apply a named comparison operator.

    A :data:`~litestar_automations.core.context.MISSING` value only satisfies
    ``!=``. Unknown operators and incompatible operand types give ``False``.
    Equality never matches a boolean against a number. ``contains`` checks
    membership in lists and mapping keys; for any other value it, like
    ``startsWith`` and ``endsWith``, compares the string forms, so
    ``compare(12345, "contains", "23")`` holds.

    Example:
        >>> compare(7, ">", 0)
        True
        >>> compare("7", ">", 0)
        False
    """
    op = _OPERATORS.get(operator_name)
    if op is None:
        logger.debug("Unknown comparison operator %r", operator_name)
        return False
    if actual is MISSING:
        return operator_name == "!="
    try:
        return bool(op(actual, expected))
    except TypeError:
        return False


def _is_operator_document(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value) and all(str(key).startswith("$") for key in value)


def _match_operator_document(actual: Any, document: Mapping[str, Any]) -> bool:
    for key, expected in document.items():
        if key == "$exists":
            if (actual is not MISSING) is not bool(expected):
                return False
        elif key in ("$in", "$nin"):
            if actual is MISSING or not isinstance(expected, (list, tuple, set, frozenset)):
                found = False
            else:
                found = any(_strict_equal(actual, member) for member in expected)
            if found is (key == "$nin"):
                return False
        elif key in _DOCUMENT_OPERATORS:
            if not compare(actual, _DOCUMENT_OPERATORS[key], expected):
                return False
        else:
            logger.debug("Unknown guard operator %r", key)
            return False
    return True


class ConditionEvaluator:
    """Evaluate parsed guard conditions against an instance context.

    Attributes:
        limits: Limits passed to the expression interpreter.
    """

    def __init__(self, limits: ExpressionLimits | None = None) -> None:
        self.limits = limits

    def evaluate(self, condition: Condition, context: Mapping[str, Any]) -> bool:
        """Return whether ``condition`` holds for ``context``.

        Args:
            condition: A parsed guard.
            context: The instance context.

        Returns:
            ``True`` if the guard holds. Never raises.
        """
        if isinstance(condition, EmptyCondition):
            return True
        if isinstance(condition, ComparisonCondition):
            return compare(resolve_context_path(context, condition.field), condition.operator, condition.value)
        if isinstance(condition, ExpressionCondition):
            return self._evaluate_expression(condition.expression, context)
        if isinstance(condition, AllCondition):
            return all(self.evaluate(sub, context) for sub in condition.conditions)
        if isinstance(condition, AnyCondition):
            return any(self.evaluate(sub, context) for sub in condition.conditions)
        if isinstance(condition, FieldMatchCondition):
            return self._match_fields(condition.fields, context)
        if isinstance(condition, UnknownCondition):
            logger.warning("Unknown condition type %r evaluates to false", condition.type)
            return False
        return False

    def select_transition(
        self,
        transitions: Iterable[WorkflowTransition],
        context: Mapping[str, Any],
    ) -> WorkflowTransition | None:
        """Pick the first transition whose guard holds.

        ``transitions`` must already be ordered by descending priority, ties in
        creation order, as returned by ``WorkflowStore.get_transitions_from``.
        """
        for transition in transitions:
            guard = transition_condition(transition.condition, transition.condition_expression)
            if self.evaluate(guard, context):
                return transition
        return None

    def _evaluate_expression(self, expression: str, context: Mapping[str, Any]) -> bool:
        names = {
            "ctx": context,
            "context": context,
            "variables": context.get("variables", {}),
            "outputs": context.get("outputs", {}),
        }
        try:
            return bool(evaluate(expression, names, self.limits))
        except ExpressionError as exc:
            logger.debug("Guard expression evaluates to false: %s", exc)
            return False

    @staticmethod
    def _match_fields(fields: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
        for path, expected in fields.items():
            actual = resolve_context_path(context, path)
            if _is_operator_document(expected):
                if not _match_operator_document(actual, expected):
                    return False
            elif actual is MISSING or not _equal(actual, expected):
                return False
        return True


def _equal(actual: Any, expected: Any) -> bool:
    try:
        return _strict_equal(actual, expected)
    except TypeError:
        return False
