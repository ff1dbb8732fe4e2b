"""Restricted expression interpreter.

Workflow authors write guards such as ``variables.task_count > 0`` and small
``code`` actions such as ``len(input.items) * 2``. Those strings are parsed
with :func:`ast.parse` and interpreted node by node over a fixed whitelist:
there is no ``eval``, no attribute access on arbitrary objects and no way to
reach builtins beyond the function table below.

Example:
    >>> evaluate("len(variables.items) > 1 and variables.name.lower() == 'ok'",
    ...          {"variables": {"items": [1, 2], "name": "OK"}})
    True
"""

from __future__ import annotations

import ast
import operator
import re
from collections.abc import Mapping, Sequence
from typing import Any, Callable, ClassVar

from litestar_automations.config import ExpressionLimits
from litestar_automations.exceptions import ExpressionError

__all__ = ["ExpressionInterpreter", "evaluate"]

_ALIASES: dict[str, Any] = {"true": True, "false": False, "null": None}

_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "len": len,
    "abs": abs,
    "min": min,
    "max": max,
    "sum": sum,
    "round": round,
    "int": int,
    "float": float,
    "str": str,
    "bool": bool,
    "sorted": sorted,
    "any": any,
    "all": all,
}

_STR_METHODS = frozenset({"lower", "upper", "strip", "startswith", "endswith", "split", "replace"})
_MAPPING_METHODS = frozenset({"get"})

# printf-style conversion: optional mapping key, flags, width, precision
_FORMAT_SPEC = re.compile(r"%(?:\([^)]*\))?[-#0 +]*(\*|\d+)?(?:\.(\*|\d+))?")

_BIN_OPS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_COMPARE_OPS: dict[type[ast.cmpop], Callable[[Any, Any], Any]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}


class ExpressionInterpreter(ast.NodeVisitor):
    """Evaluate a parsed expression against a mapping of names.

    Any node type without a ``visit_*`` method is rejected.
    """

    sized_types: ClassVar[tuple[type, ...]] = (str, bytes, list, tuple, dict, set, frozenset)

    def __init__(self, source: str, names: Mapping[str, Any], limits: ExpressionLimits) -> None:
        self.source = source
        self.names = names
        self.limits = limits

    def fail(self, reason: str) -> ExpressionError:
        return ExpressionError(self.source, reason)

    def check_size(self, value: Any) -> Any:
        if isinstance(value, self.sized_types) and len(value) > self.limits.max_result_size:
            raise self.fail(f"result larger than {self.limits.max_result_size} items")
        if isinstance(value, int) and value.bit_length() > self.limits.max_int_bits:
            raise self.fail(f"integer larger than {self.limits.max_int_bits} bits")
        return value

    def generic_visit(self, node: ast.AST) -> Any:
        raise self.fail(f"unsupported syntax: {type(node).__name__}")

    def visit_Expression(self, node: ast.Expression) -> Any:
        return self.visit(node.body)

    def visit_Constant(self, node: ast.Constant) -> Any:
        return self.check_size(node.value)

    def visit_Name(self, node: ast.Name) -> Any:
        if node.id in self.names:
            return self.names[node.id]
        if node.id in _ALIASES:
            return _ALIASES[node.id]
        raise self.fail(f"name '{node.id}' is not defined")

    def visit_Attribute(self, node: ast.Attribute) -> Any:
        if node.attr.startswith("_"):
            raise self.fail(f"access to '{node.attr}' is not allowed")
        value = self.visit(node.value)
        if isinstance(value, Mapping) and node.attr in value:
            return value[node.attr]
        raise self.fail(f"no field '{node.attr}'")

    def visit_Subscript(self, node: ast.Subscript) -> Any:
        value = self.visit(node.value)
        if not isinstance(value, (Mapping, Sequence)):
            raise self.fail(f"cannot index {type(value).__name__}")
        index = self.visit(node.slice)
        try:
            return value[index]
        except (KeyError, IndexError, TypeError) as exc:
            raise self.fail(f"bad index {index!r}") from exc

    def visit_Slice(self, node: ast.Slice) -> slice:
        parts = [None if part is None else self.visit(part) for part in (node.lower, node.upper, node.step)]
        if not all(part is None or isinstance(part, int) for part in parts):
            raise self.fail("slice bounds must be integers")
        return slice(*parts)

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        op = _BIN_OPS.get(type(node.op))
        if op is None:
            raise self.fail(f"unsupported operator: {type(node.op).__name__}")
        left = self.visit(node.left)
        right = self.visit(node.right)
        if isinstance(node.op, ast.Pow):
            self.check_power(left, right)
        elif isinstance(node.op, ast.Mult):
            self.check_product(left, right)
        elif isinstance(node.op, ast.Mod) and isinstance(left, str):
            self.check_format(left)
        try:
            return self.check_size(op(left, right))
        except (ArithmeticError, TypeError, ValueError) as exc:
            raise self.fail(str(exc)) from exc

    def check_power(self, base: Any, exponent: Any) -> None:
        if isinstance(exponent, (int, float)) and abs(exponent) > self.limits.max_power:
            raise self.fail(f"exponent larger than {self.limits.max_power}")
        if isinstance(base, int) and isinstance(exponent, int) and exponent > 0:
            if abs(base).bit_length() * exponent > self.limits.max_int_bits:
                raise self.fail(f"integer larger than {self.limits.max_int_bits} bits")

    def check_product(self, left: Any, right: Any) -> None:
        for seq, count in ((left, right), (right, left)):
            if isinstance(seq, self.sized_types) and isinstance(count, int):
                if len(seq) * count > self.limits.max_result_size:
                    raise self.fail(f"result larger than {self.limits.max_result_size} items")
        if isinstance(left, int) and isinstance(right, int):
            if abs(left).bit_length() + abs(right).bit_length() > self.limits.max_int_bits:
                raise self.fail(f"integer larger than {self.limits.max_int_bits} bits")

    def check_format(self, template: str) -> None:
        limit = self.limits.max_result_size
        for match in _FORMAT_SPEC.finditer(template):
            for size in match.groups():
                if size == "*":
                    raise self.fail("'*' width in format strings is not allowed")
                if size is not None and (len(size) > len(str(limit)) or int(size) > limit):
                    raise self.fail(f"format width larger than {limit}")

    def check_replace(self, text: str, args: list[Any], kwargs: dict[str, Any]) -> None:
        old = args[0] if len(args) > 0 else kwargs.get("old")
        new = args[1] if len(args) > 1 else kwargs.get("new")
        count = args[2] if len(args) > 2 else kwargs.get("count", -1)
        if not (isinstance(old, str) and isinstance(new, str) and isinstance(count, int)):
            # str.replace rejects these itself
            return
        occurrences = text.count(old) if old else len(text) + 1
        if count >= 0:
            occurrences = min(occurrences, count)
        if len(text) + occurrences * (len(new) - len(old)) > self.limits.max_result_size:
            raise self.fail(f"result larger than {self.limits.max_result_size} items")

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        operand = self.visit(node.operand)
        if isinstance(node.op, ast.Not):
            return not operand
        try:
            if isinstance(node.op, ast.USub):
                return -operand
            if isinstance(node.op, ast.UAdd):
                return +operand
        except TypeError as exc:
            raise self.fail(str(exc)) from exc
        raise self.fail(f"unsupported operator: {type(node.op).__name__}")

    def visit_BoolOp(self, node: ast.BoolOp) -> Any:
        is_and = isinstance(node.op, ast.And)
        value: Any = None
        for child in node.values:
            value = self.visit(child)
            if is_and and not value:
                return value
            if not is_and and value:
                return value
        return value

    def visit_Compare(self, node: ast.Compare) -> bool:
        left = self.visit(node.left)
        for op_node, comparator in zip(node.ops, node.comparators):
            right = self.visit(comparator)
            try:
                if not _COMPARE_OPS[type(op_node)](left, right):
                    return False
            except TypeError as exc:
                raise self.fail(str(exc)) from exc
            left = right
        return True

    def visit_IfExp(self, node: ast.IfExp) -> Any:
        return self.visit(node.body) if self.visit(node.test) else self.visit(node.orelse)

    def visit_List(self, node: ast.List) -> list[Any]:
        return self.check_size([self.visit(elt) for elt in node.elts])

    def visit_Tuple(self, node: ast.Tuple) -> tuple[Any, ...]:
        return self.check_size(tuple(self.visit(elt) for elt in node.elts))

    def visit_Set(self, node: ast.Set) -> set[Any]:
        try:
            return self.check_size({self.visit(elt) for elt in node.elts})
        except TypeError as exc:
            raise self.fail(str(exc)) from exc

    def visit_Dict(self, node: ast.Dict) -> dict[Any, Any]:
        result = {}
        for key, value in zip(node.keys, node.values):
            if key is None:
                raise self.fail("dict unpacking is not allowed")
            try:
                result[self.visit(key)] = self.visit(value)
            except TypeError as exc:
                raise self.fail(str(exc)) from exc
        return self.check_size(result)

    def visit_Call(self, node: ast.Call) -> Any:
        if any(isinstance(arg, ast.Starred) for arg in node.args) or any(kw.arg is None for kw in node.keywords):
            raise self.fail("argument unpacking is not allowed")
        func = self._resolve_callable(node.func)
        args = [self.visit(arg) for arg in node.args]
        kwargs = {kw.arg: self.visit(kw.value) for kw in node.keywords if kw.arg is not None}
        target = getattr(func, "__self__", None)
        if isinstance(target, str) and getattr(func, "__name__", None) == "replace":
            self.check_replace(target, args, kwargs)
        try:
            return self.check_size(func(*args, **kwargs))
        except (ArithmeticError, TypeError, ValueError) as exc:
            raise self.fail(str(exc)) from exc

    def _resolve_callable(self, func: ast.expr) -> Callable[..., Any]:
        if isinstance(func, ast.Name):
            if func.id in _FUNCTIONS:
                return _FUNCTIONS[func.id]
            raise self.fail(f"function '{func.id}' is not allowed")
        if isinstance(func, ast.Attribute):
            target = self.visit(func.value)
            if isinstance(target, str) and func.attr in _STR_METHODS:
                return getattr(target, func.attr)
            if isinstance(target, Mapping) and func.attr in _MAPPING_METHODS:
                return getattr(target, func.attr)
            raise self.fail(f"method '{func.attr}' is not allowed on {type(target).__name__}")
        raise self.fail("only named functions can be called")


def evaluate(source: str, names: Mapping[str, Any] | None = None, limits: ExpressionLimits | None = None) -> Any:
    """Evaluate ``source`` as a restricted expression.

    Args:
        source: Python expression syntax.
        names: Values the expression may refer to by name.
        limits: Resource limits; defaults to :class:`ExpressionLimits`.

    Returns:
        The value of the expression.

    Raises:
        ExpressionError: If the source is too large, fails to parse, uses
            syntax outside the whitelist or fails while evaluating.
    """
    limits = limits or ExpressionLimits()
    if not isinstance(source, str) or not source.strip():
        raise ExpressionError(str(source), "expression is empty")
    if len(source) > limits.max_length:
        raise ExpressionError(source[:50], f"longer than {limits.max_length} characters")

    try:
        tree = ast.parse(source.strip(), mode="eval")
    except SyntaxError as exc:
        raise ExpressionError(source, f"syntax error: {exc.msg}") from exc

    node_count = sum(1 for _ in ast.walk(tree))
    if node_count > limits.max_nodes:
        raise ExpressionError(source, f"more than {limits.max_nodes} syntax nodes")

    return ExpressionInterpreter(source, names or {}, limits).visit(tree)
