"""Instance runner: the state machine loop.

A run starts from the persisted state of an instance and advances it one
state at a time until it completes, fails, or is paused or cancelled by
someone else. Every step starts by reloading the instance, so pausing and
cancelling take effect at state boundaries.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
import weakref
from typing import TYPE_CHECKING, Any, Callable

from litestar_automations.core.context import with_output
from litestar_automations.core.models import utcnow
from litestar_automations.core.types import InstanceStatus, LogAction, LogStatus, StateType
from litestar_automations.engine.retry import NoRetryPolicy
from litestar_automations.exceptions import (
    ActionExecutionError,
    NoMatchingTransitionError,
    StateNotFoundError,
    WorkflowInstanceNotFoundError,
)

if TYPE_CHECKING:
    from uuid import UUID

    from litestar_automations.core.models import WorkflowInstance
    from litestar_automations.core.protocols import WorkflowStore
    from litestar_automations.engine.actions import ActionDispatcher
    from litestar_automations.engine.audit import ExecutionLogger
    from litestar_automations.engine.conditions import ConditionEvaluator
    from litestar_automations.engine.retry import RetryPolicy

__all__ = ["InstanceRunner"]

logger = logging.getLogger(__name__)


class InstanceRunner:
    """Advance workflow instances through their graphs.

    Only one run per instance executes at a time. A second run for the same
    instance waits for the first to finish, then reloads the instance and
    exits at once unless it is still running.

    Writes to an instance go through :meth:`update`, which re-reads the
    record under a short per-instance lock. Lifecycle operations take the same
    lock, so a pause or cancel is never overwritten by a step in flight.

    Attributes:
        store: Source of states, transitions and instances.
        dispatcher: Executes state actions.
        evaluator: Selects outgoing transitions.
        audit: Writes the execution log.
        retry_policy: Wraps every action dispatch.
        max_steps: States one run may execute before the instance is failed.
    """

    def __init__(
        self,
        store: WorkflowStore,
        dispatcher: ActionDispatcher,
        evaluator: ConditionEvaluator,
        audit: ExecutionLogger,
        *,
        retry_policy: RetryPolicy | None = None,
        max_steps: int = 10_000,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.evaluator = evaluator
        self.audit = audit
        self.retry_policy = retry_policy or NoRetryPolicy()
        self.max_steps = max_steps
        self._run_locks: weakref.WeakValueDictionary[UUID, asyncio.Lock] = weakref.WeakValueDictionary()
        self._record_locks: weakref.WeakValueDictionary[UUID, asyncio.Lock] = weakref.WeakValueDictionary()

    @staticmethod
    def _lock(locks: weakref.WeakValueDictionary[UUID, asyncio.Lock], instance_id: UUID) -> asyncio.Lock:
        lock = locks.get(instance_id)
        if lock is None:
            lock = asyncio.Lock()
            locks[instance_id] = lock
        return lock

    def run_lock(self, instance_id: UUID) -> asyncio.Lock:
        """Lock held for the whole duration of a run."""
        return self._lock(self._run_locks, instance_id)

    def record_lock(self, instance_id: UUID) -> asyncio.Lock:
        """Lock held around each read-modify-write of the instance record."""
        return self._lock(self._record_locks, instance_id)

    async def load(self, instance_id: UUID) -> WorkflowInstance:
        instance = await self.store.get_instance(instance_id)
        if instance is None:
            raise WorkflowInstanceNotFoundError(instance_id)
        return instance

    async def update(
        self,
        instance_id: UUID,
        apply: Callable[[WorkflowInstance], bool],
    ) -> tuple[WorkflowInstance, bool]:
        """Re-read an instance, let ``apply`` change it and persist the result.

        Args:
            instance_id: The instance to update.
            apply: Mutates the fresh record in place and returns whether it
                changed anything. Nothing is written when it returns ``False``.

        Returns:
            The instance as now stored and whether it was written.
        """
        async with self.record_lock(instance_id):
            instance = await self.load(instance_id)
            if not apply(instance):
                return instance, False
            return await self.store.update_instance(instance), True

    async def run(self, instance_id: UUID) -> WorkflowInstance:
        """Run ``instance_id`` until it stops being ``running``.

        Args:
            instance_id: The instance to advance.

        Returns:
            The instance as persisted when the run stopped.

        Raises:
            WorkflowInstanceNotFoundError: If the instance disappeared.
            StoreError: If the store fails. The instance is left as it was
                last persisted.
        """
        async with self.run_lock(instance_id):
            steps = 0
            while True:
                instance = await self.load(instance_id)
                if instance.status != InstanceStatus.RUNNING:
                    return instance
                if steps >= self.max_steps:
                    return await self.fail(instance_id, f"Step limit of {self.max_steps} exceeded")
                steps += 1
                await self.step(instance)

    async def step(self, instance: WorkflowInstance) -> WorkflowInstance:
        """Execute the current state of a running instance and follow one transition."""
        if instance.current_state_id is None:
            return await self.fail(instance.id, "Instance has no current state")
        state = await self.store.get_state(instance.current_state_id)
        if state is None:
            return await self.fail(instance.id, str(StateNotFoundError(instance.current_state_id)))

        if state.state_type == StateType.END:
            return await self.complete(instance.id, state.id, state.name)

        started = time.perf_counter()
        try:
            result = await self.retry_policy.run(state, lambda: self.dispatcher.dispatch(state, instance))
        except ActionExecutionError as exc:
            logger.warning("State %r of instance %s failed: %s", state.name, instance.id, exc)
            await self.audit.record(
                instance.id,
                LogAction.STATE_EXECUTED,
                LogStatus.FAILED,
                state_id=state.id,
                input_data={"action_config": state.action_config},
                error=str(exc),
                duration_ms=_elapsed_ms(started),
            )
            return await self.fail(instance.id, str(exc), state_id=state.id)

        await self.audit.record(
            instance.id,
            LogAction.STATE_EXECUTED,
            state_id=state.id,
            input_data={"action_config": state.action_config},
            output_data=_as_log_payload(result),
            duration_ms=_elapsed_ms(started),
        )

        def store_output(current: WorkflowInstance) -> bool:
            if current.status.is_terminal:
                return False
            current.context = with_output(current.context, state.id, result)
            return True

        current, _ = await self.update(instance.id, store_output)
        if current.status != InstanceStatus.RUNNING:
            return current

        transitions = await self.store.get_transitions_from(state.id)
        transition = self.evaluator.select_transition(transitions, current.context)
        if transition is None:
            return await self.fail(instance.id, str(NoMatchingTransitionError(state.id)), state_id=state.id)

        def advance(current: WorkflowInstance) -> bool:
            if current.status != InstanceStatus.RUNNING or current.current_state_id != state.id:
                return False
            current.current_state_id = transition.to_state_id
            return True

        current, advanced = await self.update(instance.id, advance)
        if advanced:
            await self.audit.record(
                instance.id,
                LogAction.STATE_TRANSITION,
                state_id=transition.to_state_id,
                transition_id=transition.id,
                input_data={"from": str(state.id), "to": str(transition.to_state_id)},
            )
        return current

    async def complete(self, instance_id: UUID, state_id: UUID, state_name: str) -> WorkflowInstance:
        def apply(current: WorkflowInstance) -> bool:
            if current.status != InstanceStatus.RUNNING:
                return False
            current.status = InstanceStatus.COMPLETED
            current.completed_at = utcnow()
            current.output_data = copy.deepcopy(current.context.get("outputs") or {})
            return True

        instance, changed = await self.update(instance_id, apply)
        if changed:
            await self.audit.record(
                instance_id,
                LogAction.WORKFLOW_COMPLETED,
                state_id=state_id,
                output_data=instance.output_data,
            )
            logger.info("Instance %s completed at state %r", instance_id, state_name)
        return instance

    async def fail(self, instance_id: UUID, error: str, *, state_id: UUID | None = None) -> WorkflowInstance:
        def apply(current: WorkflowInstance) -> bool:
            if current.status.is_terminal:
                return False
            current.status = InstanceStatus.FAILED
            current.error_message = error
            current.completed_at = utcnow()
            return True

        instance, changed = await self.update(instance_id, apply)
        if changed:
            await self.audit.record(
                instance_id,
                LogAction.WORKFLOW_FAILED,
                LogStatus.FAILED,
                state_id=state_id or instance.current_state_id,
                error=error,
            )
            logger.error("Instance %s failed: %s", instance_id, error)
        return instance


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _as_log_payload(result: Any) -> dict[str, Any]:
    if isinstance(result, dict):
        return copy.deepcopy(result)
    return {"result": copy.deepcopy(result)}
