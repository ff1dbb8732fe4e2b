"""Transition guard conditions.

Guards are stored as open JSON documents. :func:`parse_condition` turns them
into one of the condition dataclasses below, which the evaluator matches
exhaustively.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, TypeAlias, Union

__all__ = [
    "AllCondition",
    "AnyCondition",
    "ComparisonCondition",
    "Condition",
    "EmptyCondition",
    "ExpressionCondition",
    "FieldMatchCondition",
    "UnknownCondition",
    "parse_condition",
    "transition_condition",
]


@dataclass(frozen=True)
class EmptyCondition:
    """No guard; always matches."""


@dataclass(frozen=True)
class ComparisonCondition:
    """Compare the value at ``field`` with ``value`` using ``operator``."""

    field: str
    operator: str
    value: Any = None


@dataclass(frozen=True)
class ExpressionCondition:
    """A boolean expression authored by the workflow owner."""

    expression: str


@dataclass(frozen=True)
class AllCondition:
    """True when every sub-condition is true. Vacuously true when empty."""

    conditions: tuple[Condition, ...] = ()


@dataclass(frozen=True)
class AnyCondition:
    """True when at least one sub-condition is true. False when empty."""

    conditions: tuple[Condition, ...] = ()


@dataclass(frozen=True)
class FieldMatchCondition:
    """Legacy guard: every ``path -> expected`` entry must match.

    ``expected`` is either a literal compared for equality or an operator
    document such as ``{"$gt": 0}``.
    """

    fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UnknownCondition:
    """A typed condition whose ``type`` is not recognised. Never matches."""

    type: str


Condition: TypeAlias = Union[
    EmptyCondition,
    ComparisonCondition,
    ExpressionCondition,
    AllCondition,
    AnyCondition,
    FieldMatchCondition,
    UnknownCondition,
]


def parse_condition(raw: Mapping[str, Any] | None) -> Condition:
    """Parse a stored guard document into a condition.

    Args:
        raw: The stored document, possibly ``None`` or empty.

    Returns:
        The matching condition variant.

    Example:
        >>> parse_condition({"type": "comparison", "field": "variables.n", "operator": ">", "value": 1})
        ComparisonCondition(field='variables.n', operator='>', value=1)
        >>> parse_condition({"status": "approved"})
        FieldMatchCondition(fields={'status': 'approved'})
    """
    if not raw:
        return EmptyCondition()

    if "type" not in raw:
        return FieldMatchCondition(fields=dict(raw))

    kind = raw["type"]
    if kind == "comparison":
        return ComparisonCondition(
            field=str(raw.get("field") or ""),
            operator=str(raw.get("operator") or ""),
            value=raw.get("value"),
        )
    if kind == "expression":
        return ExpressionCondition(expression=str(raw.get("expression") or ""))
    if kind in ("all", "any"):
        children = tuple(parse_condition(sub) for sub in raw.get("conditions") or ())
        return AllCondition(children) if kind == "all" else AnyCondition(children)
    return UnknownCondition(type=str(kind))


def transition_condition(condition: Mapping[str, Any] | None, condition_expression: str | None) -> Condition:
    """Build the guard of a transition from its two stored columns.

    The structured ``condition`` wins; a raw ``condition_expression`` is used
    only when the structured guard is empty.
    """
    parsed = parse_condition(condition)
    if isinstance(parsed, EmptyCondition) and condition_expression and condition_expression.strip():
        return ExpressionCondition(expression=condition_expression)
    return parsed
