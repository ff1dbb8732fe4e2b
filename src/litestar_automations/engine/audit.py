"""Execution audit trail."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from litestar_automations.core.models import WorkflowLog
from litestar_automations.core.types import LogStatus

if TYPE_CHECKING:
    from uuid import UUID

    from litestar_automations.core.protocols import WorkflowStore
    from litestar_automations.core.types import LogAction

__all__ = ["ExecutionLogger"]

logger = logging.getLogger(__name__)


class ExecutionLogger:
    """Append :class:`~litestar_automations.core.models.WorkflowLog` rows for instances.

    Writing the audit trail must never change the outcome of a run, so
    :meth:`record` reports store failures instead of raising them.

    Attributes:
        store: The store receiving the rows.
        failed_writes: Number of rows that could not be written.
    """

    def __init__(self, store: WorkflowStore) -> None:
        self.store = store
        self.failed_writes = 0

    async def record(
        self,
        instance_id: UUID,
        action: LogAction,
        status: LogStatus = LogStatus.SUCCESS,
        *,
        state_id: UUID | None = None,
        transition_id: UUID | None = None,
        input_data: dict[str, Any] | None = None,
        output_data: dict[str, Any] | None = None,
        error: str | None = None,
        duration_ms: int | None = None,
    ) -> WorkflowLog | None:
        """Append one log row.

        Args:
            instance_id: Instance the row belongs to.
            action: Event name.
            status: Outcome of the event.
            state_id: State involved, if any.
            transition_id: Transition taken, if any.
            input_data: Snapshot of inputs.
            output_data: Snapshot of outputs.
            error: Error text for failed events.
            duration_ms: Duration of the action, if timed.

        Returns:
            The stored row, or ``None`` if it could not be written.
        """
        entry = WorkflowLog(
            instance_id=instance_id,
            action=action,
            status=status,
            state_id=state_id,
            transition_id=transition_id,
            input_data=input_data,
            output_data=output_data,
            error=error,
            duration_ms=duration_ms,
        )
        level = logging.WARNING if status == LogStatus.FAILED else logging.INFO
        logger.log(level, "Instance %s: %s (%s)%s", instance_id, action, status, f": {error}" if error else "")
        try:
            return await self.store.add_log(entry)
        except Exception:
            self.failed_writes += 1
            logger.exception("Failed to write %s log for instance %s", action, instance_id)
            return None
