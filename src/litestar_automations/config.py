"""Configuration for the workflow engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from litestar_automations.engine.retry import RetryPolicy

__all__ = ["EngineConfig", "ExpressionLimits"]


@dataclass(frozen=True)
class ExpressionLimits:
    """Resource limits applied to every interpreted expression.

    Attributes:
        max_length: Maximum length of the source text.
        max_nodes: Maximum number of AST nodes after parsing.
        max_power: Largest exponent accepted by ``**``.
        max_int_bits: Largest integer, in bits, any operation may produce. The
            size of ``**`` and ``*`` results is checked before computing them.
        max_result_size: Largest string or collection any operation may produce.
    """

    max_length: int = 2000
    max_nodes: int = 500
    max_power: int = 100
    max_int_bits: int = 4096
    max_result_size: int = 100_000


@dataclass
class EngineConfig:
    """Configuration for :class:`~litestar_automations.engine.lifecycle.WorkflowEngine`.

    Attributes:
        http_timeout: Timeout in seconds of the HTTP client the engine creates
            for ``http_request`` actions when none is supplied.
        max_steps_per_run: Number of states one run may execute before the
            instance is failed as a runaway loop.
        retry_policy: Retry policy applied to actions. ``None`` disables retries.
        expression_limits: Limits for ``expression`` guards and ``code`` actions.
        default_trigger_source: Trigger source recorded when a caller gives none.
    """

    http_timeout: float = 30.0
    max_steps_per_run: int = 10_000
    retry_policy: RetryPolicy | None = None
    expression_limits: ExpressionLimits = field(default_factory=ExpressionLimits)
    default_trigger_source: str = "manual"
