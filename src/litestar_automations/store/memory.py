"""Dictionary-backed workflow store.

Suitable for tests, development and single-process deployments that do not
need durability. Records are deep-copied on the way in and out so callers
never share mutable state with the store.
"""

from __future__ import annotations

import copy
from collections import defaultdict
from typing import TYPE_CHECKING, TypeVar

from litestar_automations.exceptions import StoreError

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

__all__ = ["InMemoryWorkflowStore"]

T = TypeVar("T")


def _copy(record: T) -> T:
    return copy.deepcopy(record)


class InMemoryWorkflowStore:
    """In-memory implementation of :class:`~litestar_automations.core.protocols.WorkflowStore`.

    Attributes:
        workflows: Stored workflows by id.
        states: Stored states by id.
        transitions: Stored transitions by id.
        schedules: Stored schedules by id.
        instances: Stored instances by id.
        logs: Log rows per instance id, in insertion order.
    """

    def __init__(self) -> None:
        self.workflows: dict[UUID, Workflow] = {}
        self.states: dict[UUID, WorkflowState] = {}
        self.transitions: dict[UUID, WorkflowTransition] = {}
        self.schedules: dict[UUID, WorkflowSchedule] = {}
        self.instances: dict[UUID, WorkflowInstance] = {}
        self.logs: defaultdict[UUID, list[WorkflowLog]] = defaultdict(list)

    @staticmethod
    def _insert(table: dict[UUID, T], key: UUID, record: T, operation: str) -> T:
        if key in table:
            raise StoreError(operation, KeyError(f"duplicate id {key}"))
        table[key] = _copy(record)
        return _copy(record)

    @staticmethod
    def _replace(table: dict[UUID, T], key: UUID, record: T, operation: str) -> T:
        if key not in table:
            raise StoreError(operation, KeyError(f"unknown id {key}"))
        table[key] = _copy(record)
        return _copy(record)

    # Workflows

    async def create_workflow(self, workflow: Workflow) -> Workflow:
        return self._insert(self.workflows, workflow.id, workflow, "create_workflow")

    async def get_workflow(self, workflow_id: UUID) -> Workflow | None:
        workflow = self.workflows.get(workflow_id)
        return _copy(workflow) if workflow is not None else None

    async def update_workflow(self, workflow: Workflow) -> Workflow:
        return self._replace(self.workflows, workflow.id, workflow, "update_workflow")

    async def list_workflows(
        self,
        *,
        user_id: str | None = None,
        status: WorkflowStatus | None = None,
        is_template: bool | None = None,
    ) -> list[Workflow]:
        workflows = [
            w
            for w in self.workflows.values()
            if (user_id is None or w.user_id == user_id)
            and (status is None or w.status == status)
            and (is_template is None or w.is_template == is_template)
        ]
        workflows.sort(key=lambda w: w.updated_at, reverse=True)
        return [_copy(w) for w in workflows]

    # States

    async def add_state(self, state: WorkflowState) -> WorkflowState:
        if state.workflow_id not in self.workflows:
            raise StoreError("add_state", KeyError(f"unknown workflow {state.workflow_id}"))
        return self._insert(self.states, state.id, state, "add_state")

    async def get_state(self, state_id: UUID) -> WorkflowState | None:
        state = self.states.get(state_id)
        return _copy(state) if state is not None else None

    async def list_states(self, workflow_id: UUID) -> list[WorkflowState]:
        return [_copy(s) for s in self.states.values() if s.workflow_id == workflow_id]

    async def update_state(self, state: WorkflowState) -> WorkflowState:
        return self._replace(self.states, state.id, state, "update_state")

    # Transitions

    async def add_transition(self, transition: WorkflowTransition) -> WorkflowTransition:
        if transition.workflow_id not in self.workflows:
            raise StoreError("add_transition", KeyError(f"unknown workflow {transition.workflow_id}"))
        return self._insert(self.transitions, transition.id, transition, "add_transition")

    async def list_transitions(self, workflow_id: UUID) -> list[WorkflowTransition]:
        return [_copy(t) for t in self.transitions.values() if t.workflow_id == workflow_id]

    async def get_transitions_from(self, state_id: UUID) -> list[WorkflowTransition]:
        # sorted() is stable, so equal priorities keep insertion order.
        outgoing = sorted(
            (t for t in self.transitions.values() if t.from_state_id == state_id),
            key=lambda t: t.priority,
            reverse=True,
        )
        return [_copy(t) for t in outgoing]

    # Schedules

    async def add_schedule(self, schedule: WorkflowSchedule) -> WorkflowSchedule:
        if schedule.workflow_id not in self.workflows:
            raise StoreError("add_schedule", KeyError(f"unknown workflow {schedule.workflow_id}"))
        return self._insert(self.schedules, schedule.id, schedule, "add_schedule")

    async def list_schedules(self, workflow_id: UUID) -> list[WorkflowSchedule]:
        return [_copy(s) for s in self.schedules.values() if s.workflow_id == workflow_id]

    # Instances

    async def create_instance(self, instance: WorkflowInstance) -> WorkflowInstance:
        return self._insert(self.instances, instance.id, instance, "create_instance")

    async def get_instance(self, instance_id: UUID) -> WorkflowInstance | None:
        instance = self.instances.get(instance_id)
        return _copy(instance) if instance is not None else None

    async def update_instance(self, instance: WorkflowInstance) -> WorkflowInstance:
        return self._replace(self.instances, instance.id, instance, "update_instance")

    async def list_instances(
        self,
        *,
        workflow_id: UUID | None = None,
        status: InstanceStatus | None = None,
    ) -> list[WorkflowInstance]:
        instances = [
            i
            for i in self.instances.values()
            if (workflow_id is None or i.workflow_id == workflow_id) and (status is None or i.status == status)
        ]
        instances.sort(key=lambda i: i.started_at)
        return [_copy(i) for i in instances]

    # Logs

    async def add_log(self, log: WorkflowLog) -> WorkflowLog:
        rows = self.logs[log.instance_id]
        stored = _copy(log)
        stored.sequence = len(rows) + 1
        rows.append(stored)
        return _copy(stored)

    async def list_logs(
        self,
        instance_id: UUID,
        *,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[WorkflowLog]:
        rows = list(self.logs.get(instance_id, ()))
        if newest_first:
            rows.reverse()
        if limit is not None:
            rows = rows[: max(limit, 0)]
        return [_copy(r) for r in rows]
