"""Exception hierarchy for litestar-automations."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

__all__ = (
    "ActionExecutionError",
    "ActionTimeoutError",
    "AutomationsError",
    "ExpressionError",
    "InvalidStateError",
    "MissingStartStateError",
    "NoMatchingTransitionError",
    "NotFoundError",
    "StateNotFoundError",
    "StoreError",
    "WorkflowInstanceNotFoundError",
    "WorkflowNotFoundError",
    "WorkflowValidationError",
)


class AutomationsError(Exception):
    """Base exception for all litestar-automations errors.

    All exceptions raised by the engine inherit from this class, so callers can
    catch every engine failure with a single except clause.
    """


class NotFoundError(AutomationsError):
    """Base class for lookups of records that do not exist."""


class WorkflowNotFoundError(NotFoundError):
    """Raised when a workflow is not found in the store.

    Attributes:
        workflow_id: The ID of the workflow that was not found.
    """

    def __init__(self, workflow_id: str | UUID) -> None:
        """Initialize the exception with workflow details.

        Args:
            workflow_id: The ID of the workflow that was not found.
        """
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' not found")


class WorkflowInstanceNotFoundError(NotFoundError):
    """Raised when a workflow instance is not found.

    Attributes:
        instance_id: The ID of the workflow instance that was not found.
    """

    def __init__(self, instance_id: str | UUID) -> None:
        """Initialize the exception with instance details.

        Args:
            instance_id: The ID of the workflow instance that was not found.
        """
        self.instance_id = instance_id
        super().__init__(f"Workflow instance '{instance_id}' not found")


class StateNotFoundError(NotFoundError):
    """Raised when a workflow state referenced by an instance or transition is missing.

    Attributes:
        state_id: The ID of the missing state.
    """

    def __init__(self, state_id: str | UUID) -> None:
        self.state_id = state_id
        super().__init__(f"Workflow state '{state_id}' not found")


class InvalidStateError(AutomationsError):
    """Raised when an operation is not valid for the current workflow or instance status.

    Examples are starting an archived workflow or resuming an instance that is
    not paused.

    Attributes:
        subject: Identifier of the workflow or instance.
        status: The status that made the operation invalid.
        operation: The operation that was attempted.
    """

    def __init__(self, subject: str | UUID, status: str, operation: str) -> None:
        """Initialize the exception with status details.

        Args:
            subject: Identifier of the workflow or instance.
            status: The status that made the operation invalid.
            operation: The operation that was attempted.
        """
        self.subject = subject
        self.status = status
        self.operation = operation
        super().__init__(f"Cannot {operation} '{subject}': status is {status}")


class MissingStartStateError(AutomationsError):
    """Raised when starting a workflow that has no state of type ``start``.

    Attributes:
        workflow_id: The ID of the workflow.
    """

    def __init__(self, workflow_id: str | UUID) -> None:
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' has no start state")


class WorkflowValidationError(AutomationsError):
    """Raised when a workflow graph violates its structural rules.

    Attributes:
        errors: List of validation error messages.
    """

    def __init__(self, errors: list[str]) -> None:
        """Initialize the exception with validation errors.

        Args:
            errors: List of validation error messages.
        """
        self.errors = errors
        super().__init__(f"Workflow validation failed: {'; '.join(errors)}")


class ActionExecutionError(AutomationsError):
    """Raised when a state's action fails.

    This wraps the underlying exception that caused the action to fail,
    providing context about which state and action failed.

    Attributes:
        state_name: The name of the state whose action failed.
        action_type: The action type that was dispatched.
        cause: The underlying exception, if any.
    """

    def __init__(self, state_name: str, action_type: str | None, cause: BaseException | None = None) -> None:
        """Initialize the exception with action execution details.

        Args:
            state_name: The name of the state whose action failed.
            action_type: The action type that was dispatched.
            cause: The underlying exception, if any.
        """
        self.state_name = state_name
        self.action_type = action_type
        self.cause = cause
        msg = f"Action '{action_type or 'noop'}' in state '{state_name}' failed"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)


class ActionTimeoutError(ActionExecutionError):
    """Raised when an action does not finish within the state's ``timeout_seconds``.

    Attributes:
        timeout_seconds: The deadline that expired.
    """

    def __init__(self, state_name: str, action_type: str | None, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(state_name, action_type, TimeoutError(f"timed out after {timeout_seconds}s"))


class NoMatchingTransitionError(AutomationsError):
    """Raised when no outgoing transition of a state matches the context.

    Attributes:
        state_id: The state the instance is stuck in.
    """

    def __init__(self, state_id: str | UUID | None = None) -> None:
        self.state_id = state_id
        super().__init__("No valid transition found")


class StoreError(AutomationsError):
    """Raised when the workflow store fails to read or write.

    A runner invocation that raises this leaves the instance in an unknown
    state; re-inspect it before resuming.

    Attributes:
        operation: The store operation that failed.
        cause: The underlying exception, if any.
    """

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        self.cause = cause
        msg = f"Store operation '{operation}' failed"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)


class ExpressionError(AutomationsError):
    """Raised when a workflow expression cannot be parsed or evaluated.

    Attributes:
        expression: The offending source text.
        reason: Why evaluation failed.
    """

    def __init__(self, expression: str, reason: str) -> None:
        self.expression = expression
        self.reason = reason
        super().__init__(f"Invalid expression {expression!r}: {reason}")
