"""Tests for type definitions and enums."""

from __future__ import annotations

import pytest


@pytest.mark.unit
class TestStateType:
    """Tests for StateType enum."""

    def test_state_type_values(self) -> None:
        """Test StateType enum has expected values."""
        from litestar_automations.core.types import StateType

        assert [member.value for member in StateType] == ["start", "action", "decision", "parallel", "wait", "end"]

    def test_state_type_string_conversion(self) -> None:
        """Test StateType can be converted to string."""
        from litestar_automations.core.types import StateType

        assert str(StateType.DECISION) == "decision"
        assert StateType("end") is StateType.END


@pytest.mark.unit
class TestWorkflowStatus:
    """Tests for WorkflowStatus and TriggerType enums."""

    def test_workflow_status_values(self) -> None:
        """Test WorkflowStatus enum has expected values."""
        from litestar_automations.core.types import WorkflowStatus

        assert {member.value for member in WorkflowStatus} == {"draft", "active", "paused", "completed", "archived"}

    def test_trigger_type_values(self) -> None:
        """Test TriggerType enum has expected values."""
        from litestar_automations.core.types import TriggerType

        assert {member.value for member in TriggerType} == {"manual", "scheduled", "event", "ai_suggested", "webhook"}


@pytest.mark.unit
class TestInstanceStatus:
    """Tests for InstanceStatus enum."""

    @pytest.mark.parametrize(
        ("status", "terminal"),
        [
            ("running", False),
            ("paused", False),
            ("completed", True),
            ("failed", True),
            ("cancelled", True),
        ],
    )
    def test_is_terminal(self, status: str, terminal: bool) -> None:
        """Test only completed, failed and cancelled are terminal."""
        from litestar_automations.core.types import InstanceStatus

        assert InstanceStatus(status).is_terminal is terminal


@pytest.mark.unit
class TestLogEnums:
    """Tests for log enums."""

    def test_log_actions(self) -> None:
        """Test every lifecycle event has a log action."""
        from litestar_automations.core.types import LogAction

        assert LogAction.STATE_TRANSITION == "state_transition"
        assert len(LogAction) == 8

    def test_log_status_values(self) -> None:
        """Test LogStatus enum has expected values."""
        from litestar_automations.core.types import LogStatus

        assert {member.value for member in LogStatus} == {"success", "failed", "skipped", "pending"}

    def test_action_types(self) -> None:
        """Test the built-in action types."""
        from litestar_automations.core.types import ActionType

        assert {member.value for member in ActionType} == {"ai_task", "http_request", "delay", "transform", "code"}
