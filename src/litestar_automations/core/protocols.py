"""Core protocols for litestar-automations.

This module defines the Protocol-based interfaces the engine depends on: the
workflow store that owns all persisted records and the completion client used
by ``ai_task`` actions. Any object with matching methods can be plugged in.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from uuid import UUID

    from litestar_automations.core.models import (
        Workflow,
        WorkflowInstance,
        WorkflowLog,
        WorkflowSchedule,
        WorkflowState,
        WorkflowTransition,
    )
    from litestar_automations.core.types import InstanceStatus, WorkflowStatus


__all__ = ["CompletionClient", "WorkflowStore"]


@runtime_checkable
class WorkflowStore(Protocol):
    """Persistence interface for workflows, instances and logs.

    Reads of unknown ids return ``None``. Writes that fail, including updates
    of unknown ids, raise :class:`~litestar_automations.exceptions.StoreError`.
    Records are returned as copies; mutating a returned record never changes
    what is stored until it is passed back to an ``update_*`` method.

    Example:
        >>> store = InMemoryWorkflowStore()
        >>> workflow = await store.create_workflow(Workflow(name="daily digest"))
        >>> await store.get_workflow(workflow.id)
        Workflow(name='daily digest', ...)
    """

    async def create_workflow(self, workflow: Workflow) -> Workflow:
        """Persist a new workflow and return the stored copy."""
        ...

    async def get_workflow(self, workflow_id: UUID) -> Workflow | None:
        """Return the workflow with ``workflow_id`` or ``None``."""
        ...

    async def update_workflow(self, workflow: Workflow) -> Workflow:
        """Replace a stored workflow and return the stored copy."""
        ...

    async def list_workflows(
        self,
        *,
        user_id: str | None = None,
        status: WorkflowStatus | None = None,
        is_template: bool | None = None,
    ) -> list[Workflow]:
        """List workflows, newest first, optionally filtered."""
        ...

    async def add_state(self, state: WorkflowState) -> WorkflowState:
        """Persist a new state."""
        ...

    async def get_state(self, state_id: UUID) -> WorkflowState | None:
        """Return the state with ``state_id`` or ``None``."""
        ...

    async def list_states(self, workflow_id: UUID) -> list[WorkflowState]:
        """List the states of a workflow in creation order."""
        ...

    async def update_state(self, state: WorkflowState) -> WorkflowState:
        """Replace a stored state."""
        ...

    async def add_transition(self, transition: WorkflowTransition) -> WorkflowTransition:
        """Persist a new transition."""
        ...

    async def list_transitions(self, workflow_id: UUID) -> list[WorkflowTransition]:
        """List the transitions of a workflow in creation order."""
        ...

    async def get_transitions_from(self, state_id: UUID) -> list[WorkflowTransition]:
        """List transitions leaving ``state_id``.

        Ordered by descending priority, ties broken by creation order.
        """
        ...

    async def add_schedule(self, schedule: WorkflowSchedule) -> WorkflowSchedule:
        """Persist a new schedule."""
        ...

    async def list_schedules(self, workflow_id: UUID) -> list[WorkflowSchedule]:
        """List the schedules of a workflow."""
        ...

    async def create_instance(self, instance: WorkflowInstance) -> WorkflowInstance:
        """Persist a new instance."""
        ...

    async def get_instance(self, instance_id: UUID) -> WorkflowInstance | None:
        """Return the instance with ``instance_id`` or ``None``."""
        ...

    async def update_instance(self, instance: WorkflowInstance) -> WorkflowInstance:
        """Replace a stored instance."""
        ...

    async def list_instances(
        self,
        *,
        workflow_id: UUID | None = None,
        status: InstanceStatus | None = None,
    ) -> list[WorkflowInstance]:
        """List instances, oldest first, optionally filtered."""
        ...

    async def add_log(self, log: WorkflowLog) -> WorkflowLog:
        """Append a log row, assigning its per-instance ``sequence``."""
        ...

    async def list_logs(
        self,
        instance_id: UUID,
        *,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[WorkflowLog]:
        """List the log rows of an instance by ``sequence``."""
        ...


@runtime_checkable
class CompletionClient(Protocol):
    """Text completion backend used by ``ai_task`` actions.

    Example:
        >>> class EchoClient:
        ...     async def complete(self, prompt, *, model=None, temperature=None):
        ...         return prompt.upper()
    """

    async def complete(
        self,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
    ) -> Any:
        """Return the completion for ``prompt``."""
        ...
