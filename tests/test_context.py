"""Tests for instance context helpers."""

from __future__ import annotations

from typing import Any
from uuid import uuid4

import pytest


@pytest.mark.unit
class TestNewContext:
    """Tests for new_context."""

    def test_input_is_copied_into_variables(self) -> None:
        """Test the input lands under variables with empty outputs."""
        from litestar_automations.core.context import new_context

        input_data = {"task_count": 7, "nested": {"a": 1}}
        context = new_context(input_data)

        assert context == {"variables": {"task_count": 7, "nested": {"a": 1}}, "outputs": {}}

        context["variables"]["nested"]["a"] = 2
        assert input_data["nested"]["a"] == 1

    def test_none_input(self) -> None:
        """Test a missing input gives an empty context."""
        from litestar_automations.core.context import new_context

        assert new_context(None) == {"variables": {}, "outputs": {}}


@pytest.mark.unit
class TestWithOutput:
    """Tests for with_output."""

    def test_stores_result_under_state_id(self) -> None:
        """Test the result is stored by stringified state id."""
        from litestar_automations.core.context import with_output

        state_id = uuid4()
        original = {"variables": {"x": 1}, "outputs": {}}

        updated = with_output(original, state_id, {"ok": True})

        assert updated["outputs"] == {str(state_id): {"ok": True}}
        assert updated["variables"] == {"x": 1}
        assert original["outputs"] == {}

    def test_reentry_overwrites_previous_output(self) -> None:
        """Test executing the same state again replaces its output."""
        from litestar_automations.core.context import with_output

        context = with_output({"variables": {}, "outputs": {}}, "s1", {"n": 1})
        context = with_output(context, "s1", {"n": 2})

        assert context["outputs"] == {"s1": {"n": 2}}

    def test_repairs_malformed_outputs(self) -> None:
        """Test a context whose outputs is not a mapping is repaired."""
        from litestar_automations.core.context import with_output

        context = with_output({"outputs": None}, "s1", 5)

        assert context == {"outputs": {"s1": 5}, "variables": {}}


@pytest.mark.unit
class TestResolvePath:
    """Tests for dotted path resolution."""

    def test_nested_mapping(self, sample_context: dict[str, Any]) -> None:
        """Test resolving nested mapping keys."""
        from litestar_automations.core.context import resolve_path

        assert resolve_path(sample_context, "variables.owner.email") == "ada@example.com"

    def test_sequence_index(self, sample_context: dict[str, Any]) -> None:
        """Test numeric segments index into lists."""
        from litestar_automations.core.context import resolve_path

        assert resolve_path(sample_context, "variables.tags.1") == "urgent"
        assert resolve_path(sample_context, "variables.owner.teams.0.name") == "core"

    @pytest.mark.parametrize(
        "path",
        [
            "variables.missing",
            "variables.tags.5",
            "variables.tags.first",
            "variables.name.length",
            "",
        ],
    )
    def test_unresolvable_paths_are_missing(self, sample_context: dict[str, Any], path: str) -> None:
        """Test unresolvable paths yield MISSING instead of raising."""
        from litestar_automations.core.context import MISSING, resolve_path

        assert resolve_path(sample_context, path) is MISSING

    def test_none_is_a_value(self) -> None:
        """Test an explicit None is distinguished from a missing key."""
        from litestar_automations.core.context import MISSING, resolve_path

        assert resolve_path({"a": None}, "a") is None
        assert resolve_path({"a": None}, "a.b") is MISSING

    def test_missing_is_falsy_singleton(self) -> None:
        """Test MISSING is a falsy singleton."""
        from litestar_automations.core.context import MISSING, _Missing

        assert _Missing() is MISSING
        assert not MISSING
        assert repr(MISSING) == "MISSING"


@pytest.mark.unit
class TestResolveContextPath:
    """Tests for context-aware path resolution."""

    def test_bare_path_falls_back_to_variables(self, sample_context: dict[str, Any]) -> None:
        """Test a path unknown at the root is read from variables."""
        from litestar_automations.core.context import resolve_context_path

        assert resolve_context_path(sample_context, "task_count") == 7
        assert resolve_context_path(sample_context, "owner.email") == "ada@example.com"

    def test_rooted_path_wins(self, sample_context: dict[str, Any]) -> None:
        """Test a path that names a root section is not retried."""
        from litestar_automations.core.context import MISSING, resolve_context_path

        assert resolve_context_path(sample_context, "outputs.fetch.status") == 200
        assert resolve_context_path(sample_context, "outputs.nope") is MISSING

    def test_variable_shadowed_by_root_key(self) -> None:
        """Test a root key with the same name as a variable takes precedence."""
        from litestar_automations.core.context import resolve_context_path

        context = {"flag": "root", "variables": {"flag": "variable"}, "outputs": {}}

        assert resolve_context_path(context, "flag") == "root"


@pytest.mark.unit
class TestRenderTemplate:
    """Tests for placeholder rendering."""

    def test_renders_scalars(self, sample_context: dict[str, Any]) -> None:
        """Test scalar placeholders are substituted."""
        from litestar_automations.core.context import render_template

        text = render_template("Review {{ name }} with {{variables.task_count}} tasks", sample_context)

        assert text == "Review Weekly Review with 7 tasks"

    def test_renders_collections_as_json(self, sample_context: dict[str, Any]) -> None:
        """Test list and mapping placeholders render as JSON."""
        from litestar_automations.core.context import render_template

        assert render_template("{{ tags }}", sample_context) == '["ops", "urgent"]'

    def test_unresolved_placeholder_is_empty(self, sample_context: dict[str, Any]) -> None:
        """Test unknown placeholders render as an empty string."""
        from litestar_automations.core.context import render_template

        assert render_template("a{{ nothing.here }}b", sample_context) == "ab"

    def test_text_without_placeholders(self) -> None:
        """Test plain text is returned unchanged."""
        from litestar_automations.core.context import render_template

        assert render_template("plain {text}", {}) == "plain {text}"


@pytest.mark.unit
class TestToJsonSafe:
    """Tests for converting action results to storable values."""

    def test_converts_python_types(self) -> None:
        """Test tuples, sets, keys, dates and UUIDs are converted."""
        from datetime import date, datetime, timezone
        from uuid import UUID

        from litestar_automations.core.context import to_json_safe

        ident = UUID("12345678-1234-5678-1234-567812345678")
        value = {
            1: ("a", "b"),
            "tags": {"urgent", "ops"},
            "mixed": {1, "x"},
            "when": datetime(2024, 1, 2, 3, 4, tzinfo=timezone.utc),
            "day": date(2024, 1, 2),
            "id": ident,
        }

        result = to_json_safe(value)

        assert result["1"] == ["a", "b"]
        assert result["tags"] == ["ops", "urgent"]
        assert sorted(map(str, result["mixed"])) == ["1", "x"]
        assert result["when"] == "2024-01-02T03:04:00+00:00"
        assert result["day"] == "2024-01-02"
        assert result["id"] == str(ident)

    def test_plain_values_unchanged(self) -> None:
        """Test JSON values pass through."""
        from litestar_automations.core.context import to_json_safe

        value = {"a": [1, 2.5, None, True, "s"], "b": {"c": {}}}

        assert to_json_safe(value) == value

    def test_rejects_unknown_objects(self) -> None:
        """Test arbitrary objects raise TypeError."""
        from litestar_automations.core.context import to_json_safe

        with pytest.raises(TypeError, match="not JSON serializable"):
            to_json_safe([object()])
