"""Workflow engine: lifecycle control and authoring.

:class:`WorkflowEngine` is the entry point applications use. It creates and
controls instances, runs them in background asyncio tasks through the
:class:`~litestar_automations.engine.runner.InstanceRunner`, and offers the
authoring operations used to build workflow graphs.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import deque
from typing import TYPE_CHECKING, Any

from litestar_automations.config import EngineConfig
from litestar_automations.core.context import new_context
from litestar_automations.core.models import (
    Workflow,
    WorkflowDetails,
    WorkflowInstance,
    WorkflowSchedule,
    WorkflowState,
    WorkflowTransition,
    utcnow,
)
from litestar_automations.core.types import InstanceStatus, LogAction, StateType, TriggerType, WorkflowStatus
from litestar_automations.engine.actions import ActionDispatcher
from litestar_automations.engine.audit import ExecutionLogger
from litestar_automations.engine.conditions import ConditionEvaluator
from litestar_automations.engine.runner import InstanceRunner
from litestar_automations.exceptions import (
    InvalidStateError,
    MissingStartStateError,
    StateNotFoundError,
    WorkflowInstanceNotFoundError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)

if TYPE_CHECKING:
    from uuid import UUID

    import httpx

    from litestar_automations.core.models import WorkflowLog
    from litestar_automations.core.protocols import CompletionClient, WorkflowStore

__all__ = ["WorkflowEngine"]

logger = logging.getLogger(__name__)

_STARTABLE = frozenset({WorkflowStatus.ACTIVE, WorkflowStatus.DRAFT})


class WorkflowEngine:
    """Run and manage persisted workflows.

    Instances execute in-process as asyncio tasks. The store is the only
    source of truth, so a run can always be picked up again from the
    persisted state of its instance, for example by :meth:`recover` after a
    restart.

    Attributes:
        store: The workflow store.
        config: Engine configuration.
        dispatcher: Runs state actions; register custom action types on it.
        evaluator: Evaluates transition guards.
        audit: Writes the execution log.
        runner: Advances instances.

    Example:
        >>> engine = WorkflowEngine(InMemoryWorkflowStore())
        >>> workflow = await engine.create_workflow("triage", user_id="u1")
        >>> start = await engine.add_state(workflow.id, "start", state_type=StateType.START)
        >>> end = await engine.add_state(workflow.id, "end", state_type=StateType.END)
        >>> await engine.add_transition(workflow.id, start.id, end.id)
        >>> instance = await engine.start_workflow(workflow.id, "u1", {"task_count": 3})
        >>> (await engine.wait_for(instance.id)).status
        <InstanceStatus.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        store: WorkflowStore,
        *,
        config: EngineConfig | None = None,
        dispatcher: ActionDispatcher | None = None,
        completion_client: CompletionClient | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            store: The workflow store.
            config: Engine configuration; defaults to :class:`EngineConfig`.
            dispatcher: Pre-built action dispatcher. When given,
                ``completion_client`` and ``http_client`` are ignored.
            completion_client: Backend for ``ai_task`` actions.
            http_client: Client for ``http_request`` actions. When omitted the
                engine creates one and closes it on :meth:`shutdown`.
        """
        self.store = store
        self.config = config or EngineConfig()
        self.dispatcher = dispatcher or ActionDispatcher(
            http_client=http_client,
            completion_client=completion_client,
            expression_limits=self.config.expression_limits,
            http_timeout=self.config.http_timeout,
        )
        self.evaluator = ConditionEvaluator(self.config.expression_limits)
        self.audit = ExecutionLogger(store)
        self.runner = InstanceRunner(
            store,
            self.dispatcher,
            self.evaluator,
            self.audit,
            retry_policy=self.config.retry_policy,
            max_steps=self.config.max_steps_per_run,
        )
        # latest run per instance; _tasks also keeps older runs that have not exited yet
        self._running: dict[UUID, asyncio.Task[None]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    # Execution

    async def start_workflow(
        self,
        workflow_id: UUID,
        user_id: str | None,
        input_data: dict[str, Any] | None = None,
        trigger_source: str | None = None,
    ) -> WorkflowInstance:
        """Start a new instance of a workflow.

        The instance is created at the start state and then executed in a
        background task; the returned record is the freshly created instance.

        Args:
            workflow_id: The workflow to start.
            user_id: The user the instance runs for.
            input_data: Input, copied into ``context.variables``.
            trigger_source: What triggered the start. Defaults to
                ``EngineConfig.default_trigger_source``.

        Returns:
            The created instance.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
            InvalidStateError: If the workflow is neither active nor draft.
            MissingStartStateError: If the workflow has no start state.
        """
        details = await self.get_workflow(workflow_id)
        if details.workflow.status not in _STARTABLE:
            raise InvalidStateError(workflow_id, details.workflow.status, "start")
        start_state = details.start_state
        if start_state is None:
            raise MissingStartStateError(workflow_id)

        input_data = copy.deepcopy(input_data or {})
        instance = await self.store.create_instance(
            WorkflowInstance(
                workflow_id=workflow_id,
                user_id=user_id,
                status=InstanceStatus.RUNNING,
                current_state_id=start_state.id,
                context=new_context(input_data),
                input_data=input_data,
                trigger_source=trigger_source or self.config.default_trigger_source,
            )
        )
        await self.audit.record(
            instance.id,
            LogAction.WORKFLOW_STARTED,
            state_id=start_state.id,
            input_data=input_data,
        )
        logger.info("Started instance %s of workflow %s", instance.id, workflow_id)
        self._schedule(instance.id)
        return instance

    async def pause_workflow(self, instance_id: UUID) -> WorkflowInstance:
        """Pause a running instance at its next state boundary.

        Raises:
            WorkflowInstanceNotFoundError: If the instance does not exist.
            InvalidStateError: If the instance is not running.
        """
        instance = await self._transition_instance(
            instance_id,
            "pause",
            allowed=(InstanceStatus.RUNNING,),
            status=InstanceStatus.PAUSED,
            action=LogAction.WORKFLOW_PAUSED,
        )
        logger.info("Paused instance %s", instance_id)
        return instance

    async def resume_workflow(self, instance_id: UUID) -> WorkflowInstance:
        """Resume a paused instance from its persisted current state.

        Raises:
            WorkflowInstanceNotFoundError: If the instance does not exist.
            InvalidStateError: If the instance is not paused.
        """
        instance = await self._transition_instance(
            instance_id,
            "resume",
            allowed=(InstanceStatus.PAUSED,),
            status=InstanceStatus.RUNNING,
            action=LogAction.WORKFLOW_RESUMED,
        )
        logger.info("Resumed instance %s", instance_id)
        self._schedule(instance_id)
        return instance

    async def cancel_workflow(self, instance_id: UUID, reason: str | None = None) -> WorkflowInstance:
        """Cancel a running or paused instance.

        An action already in flight finishes, but its instance does not move on.

        Args:
            instance_id: The instance to cancel.
            reason: Optional explanation, stored on the log row.

        Raises:
            WorkflowInstanceNotFoundError: If the instance does not exist.
            InvalidStateError: If the instance already finished.
        """
        instance = await self._transition_instance(
            instance_id,
            "cancel",
            allowed=(InstanceStatus.RUNNING, InstanceStatus.PAUSED),
            status=InstanceStatus.CANCELLED,
            action=LogAction.WORKFLOW_CANCELLED,
            log_input={"reason": reason} if reason else None,
        )
        logger.info("Cancelled instance %s%s", instance_id, f": {reason}" if reason else "")
        return instance

    async def _transition_instance(
        self,
        instance_id: UUID,
        operation: str,
        *,
        allowed: tuple[InstanceStatus, ...],
        status: InstanceStatus,
        action: LogAction,
        log_input: dict[str, Any] | None = None,
    ) -> WorkflowInstance:
        def apply(current: WorkflowInstance) -> bool:
            if current.status not in allowed:
                return False
            current.status = status
            if status.is_terminal:
                current.completed_at = utcnow()
            return True

        instance, changed = await self.runner.update(instance_id, apply)
        if not changed:
            raise InvalidStateError(instance_id, instance.status, operation)
        await self.audit.record(instance_id, action, state_id=instance.current_state_id, input_data=log_input)
        return instance

    async def recover(self) -> list[UUID]:
        """Schedule a run for every persisted ``running`` instance.

        Call once at startup to pick up instances interrupted by a restart.

        Returns:
            The ids of the instances that were scheduled.
        """
        instances = await self.store.list_instances(status=InstanceStatus.RUNNING)
        scheduled = [instance.id for instance in instances if instance.id not in self._running]
        for instance_id in scheduled:
            self._schedule(instance_id)
        if scheduled:
            logger.info("Recovered %d running instance(s)", len(scheduled))
        return scheduled

    async def wait_for(self, instance_id: UUID, timeout: float | None = None) -> WorkflowInstance:
        """Wait until the background run of an instance stops, then return it.

        Returns at once when nothing runs for the instance.
        """
        task = self._running.get(instance_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        return await self.get_instance(instance_id)

    def is_running(self, instance_id: UUID) -> bool:
        task = self._running.get(instance_id)
        return task is not None and not task.done()

    async def shutdown(self) -> None:
        """Cancel background runs and release the HTTP client."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._running.clear()
        self._tasks.clear()
        await self.dispatcher.aclose()

    def _schedule(self, instance_id: UUID) -> None:
        task = asyncio.create_task(self._run_in_background(instance_id))
        self._running[instance_id] = task
        self._tasks.add(task)

        def _forget(finished: asyncio.Task[None]) -> None:
            self._tasks.discard(finished)
            if self._running.get(instance_id) is finished:
                del self._running[instance_id]

        task.add_done_callback(_forget)

    async def _run_in_background(self, instance_id: UUID) -> None:
        try:
            await self.runner.run(instance_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Run of instance %s stopped with an error", instance_id)

    # Read accessors

    async def get_workflow(self, workflow_id: UUID) -> WorkflowDetails:
        """Return a workflow with its states, transitions and schedules.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
        """
        workflow = await self.store.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return WorkflowDetails(
            workflow=workflow,
            states=await self.store.list_states(workflow_id),
            transitions=await self.store.list_transitions(workflow_id),
            schedules=await self.store.list_schedules(workflow_id),
        )

    async def get_instance(self, instance_id: UUID) -> WorkflowInstance:
        """Return an instance.

        Raises:
            WorkflowInstanceNotFoundError: If the instance does not exist.
        """
        instance = await self.store.get_instance(instance_id)
        if instance is None:
            raise WorkflowInstanceNotFoundError(instance_id)
        return instance

    async def get_instance_logs(
        self,
        instance_id: UUID,
        limit: int = 100,
        *,
        newest_first: bool = False,
    ) -> list[WorkflowLog]:
        """Return the execution log of an instance in insertion order.

        Args:
            instance_id: The instance.
            limit: Maximum number of rows. With ``newest_first`` the most
                recent rows are returned, otherwise the earliest.
            newest_first: Reverse the order.
        """
        await self.get_instance(instance_id)
        return await self.store.list_logs(instance_id, limit=limit, newest_first=newest_first)

    async def list_instances(
        self,
        workflow_id: UUID | None = None,
        status: InstanceStatus | None = None,
    ) -> list[WorkflowInstance]:
        return await self.store.list_instances(workflow_id=workflow_id, status=status)

    # Authoring

    async def create_workflow(
        self,
        name: str,
        *,
        user_id: str | None = None,
        description: str | None = None,
        trigger_type: TriggerType = TriggerType.MANUAL,
        trigger_config: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Workflow:
        """Create a draft workflow without states."""
        workflow = await self.store.create_workflow(
            Workflow(
                name=name,
                user_id=user_id,
                description=description,
                trigger_type=TriggerType(trigger_type),
                trigger_config=dict(trigger_config or {}),
                metadata=dict(metadata or {}),
            )
        )
        logger.info("Created workflow %s (%s)", workflow.id, name)
        return workflow

    async def list_workflows(
        self,
        user_id: str | None = None,
        *,
        status: WorkflowStatus | None = None,
        include_templates: bool = False,
    ) -> list[Workflow]:
        """List workflows visible to a user, most recently updated first.

        A user sees their own workflows and shared ones (without owner).
        """
        workflows = await self.store.list_workflows(
            status=status,
            is_template=None if include_templates else False,
        )
        return [w for w in workflows if user_id is None or w.user_id in (user_id, None)]

    async def activate_workflow(self, workflow_id: UUID) -> Workflow:
        """Validate a workflow and mark it active.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
            InvalidStateError: If the workflow is archived.
            WorkflowValidationError: If the graph is not valid.
        """
        workflow = await self._get_workflow_record(workflow_id)
        if workflow.status == WorkflowStatus.ARCHIVED:
            raise InvalidStateError(workflow_id, workflow.status, "activate")
        errors = await self.validate_workflow(workflow_id)
        if errors:
            raise WorkflowValidationError(errors)
        return await self._set_workflow_status(workflow, WorkflowStatus.ACTIVE)

    async def archive_workflow(self, workflow_id: UUID) -> Workflow:
        """Archive a workflow. Archived workflows cannot be started."""
        workflow = await self._get_workflow_record(workflow_id)
        return await self._set_workflow_status(workflow, WorkflowStatus.ARCHIVED)

    async def _set_workflow_status(self, workflow: Workflow, status: WorkflowStatus) -> Workflow:
        workflow.status = status
        workflow.updated_at = utcnow()
        return await self.store.update_workflow(workflow)

    async def _get_workflow_record(self, workflow_id: UUID) -> Workflow:
        workflow = await self.store.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    async def add_state(
        self,
        workflow_id: UUID,
        name: str,
        *,
        state_type: StateType = StateType.ACTION,
        action_type: str | None = None,
        action_config: dict[str, Any] | None = None,
        **options: Any,
    ) -> WorkflowState:
        """Add a state to a workflow.

        Args:
            workflow_id: The owning workflow.
            name: Display name.
            state_type: Node classification.
            action_type: Action to run in this state.
            action_config: Payload for the action.
            **options: Further :class:`WorkflowState` fields such as
                ``timeout_seconds``, ``retry_count`` or ``position_x``.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
            WorkflowValidationError: If a second start state is added.
        """
        await self._get_workflow_record(workflow_id)
        state_type = StateType(state_type)
        if state_type == StateType.START:
            states = await self.store.list_states(workflow_id)
            if any(s.state_type == StateType.START for s in states):
                raise WorkflowValidationError([f"Workflow '{workflow_id}' already has a start state"])
        return await self.store.add_state(
            WorkflowState(
                workflow_id=workflow_id,
                name=name,
                state_type=state_type,
                action_type=str(action_type) if action_type else None,
                action_config=dict(action_config or {}),
                **options,
            )
        )

    async def update_state_position(self, state_id: UUID, x: int, y: int) -> WorkflowState:
        state = await self.store.get_state(state_id)
        if state is None:
            raise StateNotFoundError(state_id)
        state.position_x = x
        state.position_y = y
        return await self.store.update_state(state)

    async def add_transition(
        self,
        workflow_id: UUID,
        from_state_id: UUID,
        to_state_id: UUID,
        *,
        name: str | None = None,
        condition: dict[str, Any] | None = None,
        condition_expression: str | None = None,
        priority: int = 0,
        routing_points: list[dict[str, Any]] | None = None,
    ) -> WorkflowTransition:
        """Connect two states of the same workflow.

        Raises:
            StateNotFoundError: If either state does not exist.
            WorkflowValidationError: If a state belongs to another workflow.
        """
        for state_id in (from_state_id, to_state_id):
            state = await self.store.get_state(state_id)
            if state is None:
                raise StateNotFoundError(state_id)
            if state.workflow_id != workflow_id:
                raise WorkflowValidationError([f"State '{state_id}' does not belong to workflow '{workflow_id}'"])
        return await self.store.add_transition(
            WorkflowTransition(
                workflow_id=workflow_id,
                from_state_id=from_state_id,
                to_state_id=to_state_id,
                name=name,
                condition=dict(condition or {}),
                condition_expression=condition_expression,
                priority=priority,
                routing_points=list(routing_points or []),
            )
        )

    async def add_schedule(
        self,
        workflow_id: UUID,
        cron_expression: str,
        *,
        timezone: str = "UTC",
        enabled: bool = True,
        input_data: dict[str, Any] | None = None,
    ) -> WorkflowSchedule:
        """Store a cron schedule for a workflow.

        Schedules are stored and returned with the workflow; firing them is
        left to the application.
        """
        await self._get_workflow_record(workflow_id)
        if len(cron_expression.split()) not in (5, 6):
            raise WorkflowValidationError([f"Invalid cron expression '{cron_expression}'"])
        return await self.store.add_schedule(
            WorkflowSchedule(
                workflow_id=workflow_id,
                cron_expression=cron_expression,
                timezone=timezone,
                enabled=enabled,
                input_data=dict(input_data or {}),
            )
        )

    async def validate_workflow(self, workflow_id: UUID) -> list[str]:
        """Check the structure of a workflow graph.

        Returns:
            Human-readable problems; empty when the graph is valid.
        """
        details = await self.get_workflow(workflow_id)
        errors: list[str] = []
        state_ids = {s.id for s in details.states}

        starts = [s for s in details.states if s.state_type == StateType.START]
        if not starts:
            errors.append("Workflow has no start state")
        elif len(starts) > 1:
            errors.append(f"Workflow has {len(starts)} start states")
        if not any(s.state_type == StateType.END for s in details.states):
            errors.append("Workflow has no end state")

        outgoing: dict[UUID, list[UUID]] = {s.id: [] for s in details.states}
        for transition in details.transitions:
            if transition.from_state_id not in state_ids or transition.to_state_id not in state_ids:
                errors.append(f"Transition '{transition.id}' references a state outside the workflow")
                continue
            outgoing[transition.from_state_id].append(transition.to_state_id)

        for state in details.states:
            if state.state_type != StateType.END and not outgoing[state.id]:
                errors.append(f"State '{state.name}' has no outgoing transition")

        if len(starts) == 1:
            reachable = {starts[0].id}
            queue = deque([starts[0].id])
            while queue:
                for target in outgoing[queue.popleft()]:
                    if target not in reachable:
                        reachable.add(target)
                        queue.append(target)
            errors.extend(
                f"State '{s.name}' is unreachable from the start state" for s in details.states if s.id not in reachable
            )
        return errors

    # Templates

    async def clone_as_template(self, workflow_id: UUID, name: str, category: str | None = None) -> Workflow:
        """Copy a workflow into a shared template.

        The source workflow is left untouched.
        """
        return await self._clone(
            workflow_id,
            name=name,
            user_id=None,
            is_template=True,
            template_category=category,
        )

    async def create_from_template(self, template_id: UUID, user_id: str | None, name: str) -> Workflow:
        """Create a draft workflow for ``user_id`` from a template.

        Raises:
            WorkflowNotFoundError: If the template does not exist.
            InvalidStateError: If the source workflow is not a template.
        """
        template = await self._get_workflow_record(template_id)
        if not template.is_template:
            raise InvalidStateError(template_id, "not a template", "create from template")
        return await self._clone(template_id, name=name, user_id=user_id, is_template=False, template_category=None)

    async def _clone(
        self,
        workflow_id: UUID,
        *,
        name: str,
        user_id: str | None,
        is_template: bool,
        template_category: str | None,
    ) -> Workflow:
        details = await self.get_workflow(workflow_id)
        source = details.workflow
        clone = await self.store.create_workflow(
            Workflow(
                name=name,
                user_id=user_id,
                description=source.description,
                trigger_type=source.trigger_type,
                trigger_config=copy.deepcopy(source.trigger_config),
                is_template=is_template,
                template_category=template_category,
                metadata={**copy.deepcopy(source.metadata), "cloned_from": str(source.id)},
            )
        )
        id_map: dict[UUID, UUID] = {}
        for state in details.states:
            copied = await self.store.add_state(
                WorkflowState(
                    workflow_id=clone.id,
                    name=state.name,
                    description=state.description,
                    state_type=state.state_type,
                    action_type=state.action_type,
                    action_config=copy.deepcopy(state.action_config),
                    position_x=state.position_x,
                    position_y=state.position_y,
                    color=state.color,
                    icon=state.icon,
                    timeout_seconds=state.timeout_seconds,
                    retry_count=state.retry_count,
                    retry_delay_seconds=state.retry_delay_seconds,
                )
            )
            id_map[state.id] = copied.id
        for transition in details.transitions:
            if transition.from_state_id not in id_map or transition.to_state_id not in id_map:
                continue
            await self.store.add_transition(
                WorkflowTransition(
                    workflow_id=clone.id,
                    from_state_id=id_map[transition.from_state_id],
                    to_state_id=id_map[transition.to_state_id],
                    name=transition.name,
                    condition=copy.deepcopy(transition.condition),
                    condition_expression=transition.condition_expression,
                    priority=transition.priority,
                    routing_points=copy.deepcopy(transition.routing_points),
                )
            )
        logger.info("Cloned workflow %s into %s", workflow_id, clone.id)
        return clone
