"""Tests for transition guards: parsing, comparison and evaluation."""

from __future__ import annotations

from typing import Any
from uuid import uuid4

import pytest


@pytest.mark.unit
class TestParseCondition:
    """Tests for parse_condition and transition_condition."""

    @pytest.mark.parametrize("raw", [None, {}])
    def test_empty_guard(self, raw: dict[str, Any] | None) -> None:
        """Test empty documents parse to EmptyCondition."""
        from litestar_automations.core.conditions import EmptyCondition, parse_condition

        assert parse_condition(raw) == EmptyCondition()

    def test_comparison(self) -> None:
        """Test a typed comparison document."""
        from litestar_automations.core.conditions import ComparisonCondition, parse_condition

        parsed = parse_condition({"type": "comparison", "field": "variables.n", "operator": ">=", "value": 3})

        assert parsed == ComparisonCondition(field="variables.n", operator=">=", value=3)

    def test_nested_groups(self) -> None:
        """Test all/any documents parse recursively."""
        from litestar_automations.core.conditions import (
            AllCondition,
            AnyCondition,
            ExpressionCondition,
            FieldMatchCondition,
            parse_condition,
        )

        parsed = parse_condition(
            {
                "type": "all",
                "conditions": [
                    {"type": "expression", "expression": "variables.n > 1"},
                    {"type": "any", "conditions": [{"status": "open"}]},
                ],
            }
        )

        assert parsed == AllCondition(
            (
                ExpressionCondition("variables.n > 1"),
                AnyCondition((FieldMatchCondition({"status": "open"}),)),
            )
        )

    def test_untyped_document_is_field_match(self) -> None:
        """Test a document without type is a legacy field match."""
        from litestar_automations.core.conditions import FieldMatchCondition, parse_condition

        assert parse_condition({"task_count": {"$gt": 0}}) == FieldMatchCondition({"task_count": {"$gt": 0}})

    def test_unknown_type(self) -> None:
        """Test an unrecognised type is preserved as UnknownCondition."""
        from litestar_automations.core.conditions import UnknownCondition, parse_condition

        assert parse_condition({"type": "regex", "pattern": ".*"}) == UnknownCondition("regex")

    def test_expression_column_used_when_condition_empty(self) -> None:
        """Test the raw expression applies only without a structured guard."""
        from litestar_automations.core.conditions import (
            EmptyCondition,
            ExpressionCondition,
            FieldMatchCondition,
            transition_condition,
        )

        assert transition_condition({}, "variables.ok") == ExpressionCondition("variables.ok")
        assert transition_condition({"ok": True}, "variables.ok") == FieldMatchCondition({"ok": True})
        assert transition_condition(None, "   ") == EmptyCondition()


@pytest.mark.unit
class TestCompare:
    """Tests for the named comparison operators."""

    @pytest.mark.parametrize(
        ("actual", "operator_name", "expected", "result"),
        [
            (7, "==", 7, True),
            (7, "!=", 7, False),
            (7, ">", 0, True),
            (7, "<", 0, False),
            (7, ">=", 7, True),
            (7, "<=", 6, False),
            ("hello world", "contains", "world", True),
            (["a", "b"], "contains", "b", True),
            ({"k": 1}, "contains", "k", True),
            (42, "contains", 4, True),
            (12345, "contains", "23", True),
            (12345, "contains", "9", False),
            ([1, 2], "contains", True, False),
            ("report.pdf", "startsWith", "report", True),
            ("report.pdf", "endsWith", ".pdf", True),
            (2024, "startsWith", "20", True),
            (2.0, "endsWith", "2", True),
            (True, "startsWith", "tr", True),
            (True, "==", 1, False),
            (0, "!=", False, True),
            (1, "==", 1.0, True),
        ],
    )
    def test_operators(self, actual: Any, operator_name: str, expected: Any, result: bool) -> None:
        """Test each operator on compatible operands."""
        from litestar_automations.engine.conditions import compare

        assert compare(actual, operator_name, expected) is result

    def test_field_match_keeps_booleans_apart(self) -> None:
        """Test flat field matches and $in never treat booleans as numbers."""
        from litestar_automations.core.conditions import FieldMatchCondition
        from litestar_automations.engine.conditions import ConditionEvaluator

        evaluator = ConditionEvaluator()
        context = {"variables": {"enabled": True, "retries": 1}, "outputs": {}}

        assert evaluator.evaluate(FieldMatchCondition({"enabled": True}), context) is True
        assert evaluator.evaluate(FieldMatchCondition({"enabled": 1}), context) is False
        assert evaluator.evaluate(FieldMatchCondition({"retries": True}), context) is False
        assert evaluator.evaluate(FieldMatchCondition({"retries": {"$in": [True, 2]}}), context) is False
        assert evaluator.evaluate(FieldMatchCondition({"retries": {"$in": [1.0]}}), context) is True

    def test_incompatible_ordering_is_false(self) -> None:
        """Test ordering a string against a number is false, not an error."""
        from litestar_automations.engine.conditions import compare

        assert compare("7", ">", 0) is False
        assert compare(None, "<", 1) is False

    def test_missing_only_satisfies_not_equal(self) -> None:
        """Test a missing field only matches the != operator."""
        from litestar_automations.core.context import MISSING
        from litestar_automations.engine.conditions import compare

        assert compare(MISSING, "!=", "x") is True
        assert compare(MISSING, "==", None) is False
        assert compare(MISSING, ">", 0) is False

    def test_unknown_operator_is_false(self) -> None:
        """Test an unknown operator never matches."""
        from litestar_automations.engine.conditions import compare

        assert compare(1, "~=", 1) is False


@pytest.mark.unit
class TestConditionEvaluator:
    """Tests for ConditionEvaluator."""

    @pytest.fixture
    def evaluator(self):
        from litestar_automations.engine.conditions import ConditionEvaluator

        return ConditionEvaluator()

    def test_empty_guard_matches(self, evaluator, sample_context: dict[str, Any]) -> None:
        """Test an empty guard always holds."""
        from litestar_automations.core.conditions import EmptyCondition

        assert evaluator.evaluate(EmptyCondition(), sample_context) is True

    def test_comparison_reads_bare_variables(self, evaluator, sample_context: dict[str, Any]) -> None:
        """Test a comparison field without a section resolves under variables."""
        from litestar_automations.core.conditions import ComparisonCondition

        assert evaluator.evaluate(ComparisonCondition("task_count", ">", 0), sample_context) is True
        assert evaluator.evaluate(ComparisonCondition("variables.name", "startsWith", "Weekly"), sample_context)

    def test_field_match_literals(self, evaluator, sample_context: dict[str, Any]) -> None:
        """Test legacy field match with literal values."""
        from litestar_automations.core.conditions import FieldMatchCondition

        assert evaluator.evaluate(FieldMatchCondition({"task_count": 7, "name": "Weekly Review"}), sample_context)
        assert not evaluator.evaluate(FieldMatchCondition({"task_count": 0}), sample_context)

    def test_field_match_missing_key(self, evaluator) -> None:
        """Test a field match against a key that does not exist is false."""
        from litestar_automations.core.conditions import FieldMatchCondition

        guard = FieldMatchCondition({"impossible_key": "nomatch"})

        assert evaluator.evaluate(guard, {"variables": {}, "outputs": {}}) is False

    @pytest.mark.parametrize(
        ("document", "result"),
        [
            ({"$gt": 0}, True),
            ({"$gte": 7, "$lt": 8}, True),
            ({"$lte": 6}, False),
            ({"$ne": 7}, False),
            ({"$eq": 7}, True),
            ({"$in": [1, 7]}, True),
            ({"$nin": [1, 7]}, False),
            ({"$exists": True}, True),
            ({"$regex": ".*"}, False),
        ],
    )
    def test_field_match_operator_documents(
        self, evaluator, sample_context: dict[str, Any], document: dict[str, Any], result: bool
    ) -> None:
        """Test operator documents inside legacy field matches."""
        from litestar_automations.core.conditions import FieldMatchCondition

        assert evaluator.evaluate(FieldMatchCondition({"task_count": document}), sample_context) is result

    def test_field_match_exists_false(self, evaluator, sample_context: dict[str, Any]) -> None:
        """Test $exists false matches an absent field."""
        from litestar_automations.core.conditions import FieldMatchCondition

        assert evaluator.evaluate(FieldMatchCondition({"archived": {"$exists": False}}), sample_context) is True
        assert evaluator.evaluate(FieldMatchCondition({"archived": {"$nin": ["x"]}}), sample_context) is True

    def test_mapping_with_plain_keys_is_a_literal(self, evaluator) -> None:
        """Test an expected mapping without $ keys is compared for equality."""
        from litestar_automations.core.conditions import FieldMatchCondition

        context = {"variables": {"owner": {"id": 1}}, "outputs": {}}

        assert evaluator.evaluate(FieldMatchCondition({"owner": {"id": 1}}), context) is True

    def test_expression_guard(self, evaluator, sample_context: dict[str, Any]) -> None:
        """Test expression guards see variables, outputs and ctx."""
        from litestar_automations.core.conditions import ExpressionCondition

        guards = [
            "variables.task_count > 5 and 'ops' in variables.tags",
            "len(outputs.fetch['items']) == 3",
            "ctx.variables.owner.email.endswith('@example.com')",
        ]

        for guard in guards:
            assert evaluator.evaluate(ExpressionCondition(guard), sample_context) is True

    @pytest.mark.parametrize(
        "expression",
        [
            "variables.missing > 1",
            "__import__('os')",
            "variables.task_count >",
            "open('/etc/passwd')",
        ],
    )
    def test_bad_expression_is_false(self, evaluator, sample_context: dict[str, Any], expression: str) -> None:
        """Test failing expressions evaluate to false instead of raising."""
        from litestar_automations.core.conditions import ExpressionCondition

        assert evaluator.evaluate(ExpressionCondition(expression), sample_context) is False

    def test_all_and_any(self, evaluator, sample_context: dict[str, Any]) -> None:
        """Test combinators, including their empty cases."""
        from litestar_automations.core.conditions import (
            AllCondition,
            AnyCondition,
            ComparisonCondition,
            FieldMatchCondition,
        )

        positive = ComparisonCondition("task_count", ">", 0)
        negative = FieldMatchCondition({"task_count": 0})

        assert evaluator.evaluate(AllCondition((positive, positive)), sample_context) is True
        assert evaluator.evaluate(AllCondition((positive, negative)), sample_context) is False
        assert evaluator.evaluate(AnyCondition((negative, positive)), sample_context) is True
        assert evaluator.evaluate(AllCondition(()), sample_context) is True
        assert evaluator.evaluate(AnyCondition(()), sample_context) is False

    def test_unknown_condition_fails_closed(self, evaluator, sample_context: dict[str, Any]) -> None:
        """Test unknown condition types never match."""
        from litestar_automations.core.conditions import UnknownCondition

        assert evaluator.evaluate(UnknownCondition("regex"), sample_context) is False


@pytest.mark.unit
class TestSelectTransition:
    """Tests for picking an outgoing transition."""

    def _transition(self, priority: int = 0, **kwargs: Any):
        from litestar_automations.core.models import WorkflowTransition

        return WorkflowTransition(
            workflow_id=uuid4(), from_state_id=uuid4(), to_state_id=uuid4(), priority=priority, **kwargs
        )

    def test_first_match_in_order_wins(self, sample_context: dict[str, Any]) -> None:
        """Test the first transition whose guard holds is selected."""
        from litestar_automations.engine.conditions import ConditionEvaluator

        blocked = self._transition(10, condition={"task_count": 0})
        first = self._transition(5)
        second = self._transition(5)

        selected = ConditionEvaluator().select_transition([blocked, first, second], sample_context)

        assert selected is first

    def test_uses_condition_expression(self, sample_context: dict[str, Any]) -> None:
        """Test a transition guarded only by its expression column."""
        from litestar_automations.engine.conditions import ConditionEvaluator

        guarded = self._transition(condition_expression="variables.task_count > 100")
        fallback = self._transition()

        assert ConditionEvaluator().select_transition([guarded, fallback], sample_context) is fallback

    def test_no_match(self) -> None:
        """Test None is returned when nothing matches."""
        from litestar_automations.engine.conditions import ConditionEvaluator

        guarded = self._transition(condition={"impossible_key": "nomatch"})

        assert ConditionEvaluator().select_transition([guarded], {"variables": {}, "outputs": {}}) is None
        assert ConditionEvaluator().select_transition([], {}) is None
