"""Instance context helpers.

An instance context is a JSON-like document with two sections::

    {"variables": {...}, "outputs": {"<state id>": <action result>, ...}}

Conditions and the ``transform`` action read it through dotted paths, so the
``variables``/``outputs`` split must be preserved by every store.
"""

from __future__ import annotations

import copy
import json
import re
from collections.abc import Mapping, Sequence
from datetime import date, time
from typing import Any, Final
from uuid import UUID

from litestar_automations.core.types import Context

__all__ = [
    "MISSING",
    "new_context",
    "render_template",
    "resolve_context_path",
    "resolve_path",
    "to_json_safe",
    "with_output",
]


class _Missing:
    """Sentinel for a dotted path that does not resolve."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Final = _Missing()

_TEMPLATE_PATTERN = re.compile(r"\{\{\s*([\w.\-]+)\s*\}\}")


def new_context(input_data: Mapping[str, Any] | None = None) -> Context:
    """Build the initial context for an instance.

    The input is copied into ``variables`` so guards can refer to it directly.

    Args:
        input_data: The instance input.

    Returns:
        A fresh context document.
    """
    return {"variables": copy.deepcopy(dict(input_data or {})), "outputs": {}}


def with_output(context: Context, state_id: Any, result: Any) -> Context:
    """Return a copy of ``context`` with ``result`` stored under ``outputs[state_id]``.

    Re-entering a state overwrites its previous output.
    """
    updated = copy.deepcopy(context)
    outputs = updated.get("outputs")
    if not isinstance(outputs, dict):
        outputs = {}
    outputs[str(state_id)] = copy.deepcopy(result)
    updated["outputs"] = outputs
    updated.setdefault("variables", {})
    return updated


def resolve_path(document: Any, path: str) -> Any:
    """Resolve a dotted path against nested mappings and sequences.

    Numeric segments index into sequences. Any missing segment yields
    :data:`MISSING` instead of raising.

    Example:
        >>> resolve_path({"a": {"b": [10, 20]}}, "a.b.1")
        20
        >>> resolve_path({"a": {}}, "a.x.y")
        MISSING
    """
    if not path:
        return MISSING
    current = document
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return MISSING
        else:
            return MISSING
    return current


def resolve_context_path(context: Mapping[str, Any], path: str) -> Any:
    """Resolve ``path`` against an instance context.

    A path whose first segment is absent at the root is retried under
    ``variables``, so ``task_count`` reads ``variables.task_count``.
    """
    value = resolve_path(context, path)
    if value is MISSING and path and path.split(".", 1)[0] not in context:
        variables = context.get("variables")
        if isinstance(variables, Mapping):
            return resolve_path(variables, path)
    return value


def render_template(text: str, context: Mapping[str, Any]) -> str:
    """Replace ``{{ dotted.path }}`` placeholders with values from the context.

    Unresolved placeholders render as an empty string; mappings and lists are
    rendered as JSON.
    """

    def _replace(match: re.Match[str]) -> str:
        value = resolve_context_path(context, match.group(1))
        if value is MISSING or value is None:
            return ""
        if isinstance(value, (Mapping, list)):
            return json.dumps(value, default=str)
        return str(value)

    return _TEMPLATE_PATTERN.sub(_replace, text)


def to_json_safe(value: Any) -> Any:
    """Convert an action result into a value every store can persist.

    Tuples become lists, sets become sorted lists, mapping keys become strings,
    dates and datetimes become ISO-8601 strings and UUIDs become strings.

    Raises:
        TypeError: If the value holds anything else that JSON cannot represent.
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Mapping):
        return {str(key): to_json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(item) for item in value]
    if isinstance(value, (set, frozenset)):
        items = [to_json_safe(item) for item in value]
        try:
            return sorted(items)
        except TypeError:
            return sorted(items, key=lambda item: json.dumps(item, sort_keys=True))
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)
