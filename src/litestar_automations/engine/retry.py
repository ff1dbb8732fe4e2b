"""Retry policies for state actions."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Protocol, runtime_checkable

from litestar_automations.exceptions import ActionExecutionError

if TYPE_CHECKING:
    from litestar_automations.core.models import WorkflowState

__all__ = ["NoRetryPolicy", "RetryPolicy", "StateRetryPolicy", "compute_backoff"]

logger = logging.getLogger(__name__)


def compute_backoff(attempt: int, base_delay: float, multiplier: float = 1.0, jitter: float = 0.0) -> float:
    """Compute the delay before retry number ``attempt`` (1-based).

    With the default ``multiplier`` of 1 the delay is constant.
    """
    delay = base_delay * multiplier ** (attempt - 1)
    return delay + random.uniform(0, jitter) if jitter else delay


@runtime_checkable
class RetryPolicy(Protocol):
    """Decide how often a state's action is attempted."""

    async def run(self, state: WorkflowState, attempt: Callable[[], Awaitable[Any]]) -> Any:
        """Call ``attempt`` until it succeeds or the policy gives up.

        Raises:
            ActionExecutionError: The error of the last attempt.
        """
        ...


class NoRetryPolicy:
    """Attempt every action exactly once."""

    async def run(self, state: WorkflowState, attempt: Callable[[], Awaitable[Any]]) -> Any:
        return await attempt()


class StateRetryPolicy:
    """Retry failed actions using the state's ``retry_count`` and ``retry_delay_seconds``.

    Attributes:
        multiplier: Growth factor of the delay between attempts.
        jitter: Upper bound of random seconds added to each delay.
        max_delay: Cap on a single delay in seconds.

    Example:
        >>> engine = WorkflowEngine(store, config=EngineConfig(retry_policy=StateRetryPolicy(multiplier=2)))
    """

    def __init__(self, multiplier: float = 1.0, jitter: float = 0.0, max_delay: float | None = None) -> None:
        self.multiplier = multiplier
        self.jitter = jitter
        self.max_delay = max_delay

    async def run(self, state: WorkflowState, attempt: Callable[[], Awaitable[Any]]) -> Any:
        retries = max(state.retry_count, 0)
        number = 0
        while True:
            try:
                return await attempt()
            except ActionExecutionError as exc:
                number += 1
                if number > retries:
                    raise
                delay = compute_backoff(number, state.retry_delay_seconds, self.multiplier, self.jitter)
                if self.max_delay is not None:
                    delay = min(delay, self.max_delay)
                logger.warning(
                    "Retrying state %r in %.1fs (attempt %d of %d): %s",
                    state.name,
                    delay,
                    number,
                    retries,
                    exc,
                )
                await asyncio.sleep(max(delay, 0))
