"""Action dispatch for workflow states.

Each state names an ``action_type`` and carries an ``action_config`` document.
The :class:`ActionDispatcher` parses the config into the dataclass for that
kind and runs the matching handler under the state's deadline.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import httpx

from litestar_automations.core.context import MISSING, render_template, resolve_context_path, to_json_safe
from litestar_automations.core.types import ActionType
from litestar_automations.engine.expressions import evaluate
from litestar_automations.exceptions import ActionExecutionError, ActionTimeoutError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from litestar_automations.config import ExpressionLimits
    from litestar_automations.core.models import WorkflowInstance, WorkflowState
    from litestar_automations.core.protocols import CompletionClient

__all__ = [
    "AITaskConfig",
    "ActionDispatcher",
    "ActionHandler",
    "CodeConfig",
    "DelayConfig",
    "HttpRequestConfig",
    "TransformConfig",
]

logger = logging.getLogger(__name__)

ActionHandler = Callable[["WorkflowState", "WorkflowInstance"], Awaitable[Any]]
"""Signature of an action handler: ``await handler(state, instance) -> result``."""

_HTTP_METHODS = frozenset({"GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"})


@dataclass
class AITaskConfig:
    """Config of an ``ai_task`` action."""

    prompt: str = ""
    model: str | None = None
    temperature: float | None = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> AITaskConfig:
        temperature = raw.get("temperature")
        return cls(
            prompt=str(raw.get("prompt") or ""),
            model=raw.get("model"),
            temperature=None if temperature is None else float(temperature),
        )


@dataclass
class HttpRequestConfig:
    """Config of an ``http_request`` action.

    Attributes:
        url: Target URL. ``{{ path }}`` placeholders are rendered from the context.
        method: HTTP method, ``GET`` by default.
        headers: Request headers.
        body: JSON body, sent when not ``None``.
    """

    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> HttpRequestConfig:
        url = raw.get("url")
        if not url:
            msg = "http_request requires a 'url'"
            raise ValueError(msg)
        method = str(raw.get("method") or "GET").upper()
        if method not in _HTTP_METHODS:
            msg = f"Unsupported HTTP method '{method}'"
            raise ValueError(msg)
        headers = {str(key): str(value) for key, value in dict(raw.get("headers") or {}).items()}
        return cls(url=str(url), method=method, headers=headers, body=raw.get("body"))


@dataclass
class DelayConfig:
    """Config of a ``delay`` action.

    ``delay_until`` (ISO-8601) takes precedence over ``delay_seconds``. Naive
    timestamps are read as UTC.
    """

    delay_seconds: float = 0
    delay_until: datetime | None = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> DelayConfig:
        until = raw.get("delay_until")
        parsed: datetime | None = None
        if until:
            parsed = datetime.fromisoformat(str(until).replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
        return cls(delay_seconds=float(raw.get("delay_seconds") or 0), delay_until=parsed)

    def seconds_to_wait(self, now: datetime | None = None) -> float:
        if self.delay_until is not None:
            now = now or datetime.now(timezone.utc)
            return max((self.delay_until - now).total_seconds(), 0.0)
        return max(self.delay_seconds, 0.0)


@dataclass
class TransformConfig:
    """Config of a ``transform`` action: ``{output_key: dotted.source.path}``."""

    mappings: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> TransformConfig:
        mappings = raw.get("mappings") or {}
        if not isinstance(mappings, dict):
            msg = "transform 'mappings' must be an object"
            raise TypeError(msg)
        return cls(mappings={str(key): str(path) for key, path in mappings.items()})


@dataclass
class CodeConfig:
    """Config of a ``code`` action: one restricted expression."""

    code: str

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> CodeConfig:
        code = raw.get("code")
        if not code:
            msg = "code action requires 'code'"
            raise ValueError(msg)
        return cls(code=str(code))


class ActionDispatcher:
    """Run the action of a state.

    Built-in action types are ``ai_task``, ``http_request``, ``delay``,
    ``transform`` and ``code``. A state without an action type, or with one
    nothing is registered for, succeeds with ``{"executed": True, "action_type": ...}``.

    Attributes:
        completion_client: Backend for ``ai_task`` actions, optional.
        expression_limits: Limits for ``code`` actions.

    Example:
        >>> dispatcher = ActionDispatcher()
        >>> async def send_email(state, instance):
        ...     return {"sent": True}
        >>> dispatcher.register("send_email", send_email)
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        completion_client: CompletionClient | None = None,
        expression_limits: ExpressionLimits | None = None,
        http_timeout: float = 30.0,
    ) -> None:
        self.completion_client = completion_client
        self.expression_limits = expression_limits
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._http_timeout = http_timeout
        self._handlers: dict[str, ActionHandler] = {
            ActionType.AI_TASK.value: self.run_ai_task,
            ActionType.HTTP_REQUEST.value: self.run_http_request,
            ActionType.DELAY.value: self.run_delay,
            ActionType.TRANSFORM.value: self.run_transform,
            ActionType.CODE.value: self.run_code,
        }

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._http_timeout)
        return self._http_client

    def register(self, action_type: str, handler: ActionHandler) -> None:
        """Register ``handler`` for ``action_type``, replacing any existing one."""
        self._handlers[str(action_type)] = handler

    def handler_for(self, action_type: str | None) -> ActionHandler | None:
        return self._handlers.get(action_type) if action_type else None

    async def dispatch(self, state: WorkflowState, instance: WorkflowInstance) -> Any:
        """Execute the action of ``state`` for ``instance``.

        Args:
            state: The state being executed.
            instance: The instance, whose context the action may read.

        Returns:
            The action result converted to JSON-safe values, stored by the
            runner under ``context.outputs[state.id]``.

        Raises:
            ActionTimeoutError: If the action outlives ``state.timeout_seconds``.
            ActionExecutionError: If the action fails for any other reason,
                including a result that cannot be stored as JSON.
        """
        handler = self.handler_for(state.action_type)
        if handler is None:
            return {"executed": True, "action_type": state.action_type}

        timeout = state.timeout_seconds if state.timeout_seconds and state.timeout_seconds > 0 else None
        try:
            result = await asyncio.wait_for(handler(state, instance), timeout=timeout)
            return to_json_safe(result)
        except asyncio.TimeoutError as exc:
            raise ActionTimeoutError(state.name, state.action_type, state.timeout_seconds) from exc
        except ActionExecutionError:
            raise
        except Exception as exc:
            raise ActionExecutionError(state.name, state.action_type, exc) from exc

    async def aclose(self) -> None:
        """Close the HTTP client if this dispatcher created it."""
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def run_ai_task(self, state: WorkflowState, instance: WorkflowInstance) -> dict[str, Any]:
        config = AITaskConfig.from_dict(state.action_config)
        prompt = render_template(config.prompt, instance.context)
        response = None
        if self.completion_client is None:
            logger.warning("No completion client configured; ai_task in state %r returns no response", state.name)
        else:
            response = await self.completion_client.complete(
                prompt,
                model=config.model,
                temperature=config.temperature,
            )
        return {"type": ActionType.AI_TASK.value, "prompt": prompt, "response": response}

    async def run_http_request(self, state: WorkflowState, instance: WorkflowInstance) -> dict[str, Any]:
        config = HttpRequestConfig.from_dict(state.action_config)
        url = render_template(config.url, instance.context)
        logger.debug("HTTP %s %s for state %r", config.method, url, state.name)
        response = await self.http_client.request(
            config.method,
            url,
            headers=config.headers,
            json=config.body,
        )
        try:
            data: Any = response.json()
        except ValueError:
            data = response.text
        return {"status": response.status_code, "data": data}

    async def run_delay(self, state: WorkflowState, instance: WorkflowInstance) -> dict[str, Any]:
        config = DelayConfig.from_dict(state.action_config)
        seconds = config.seconds_to_wait()
        await asyncio.sleep(seconds)
        return {"delayed_seconds": seconds}

    async def run_transform(self, state: WorkflowState, instance: WorkflowInstance) -> dict[str, Any]:
        config = TransformConfig.from_dict(state.action_config)
        result: dict[str, Any] = {}
        for key, path in config.mappings.items():
            value = resolve_context_path(instance.context, path)
            if value is not MISSING:
                result[key] = value
        return result

    async def run_code(self, state: WorkflowState, instance: WorkflowInstance) -> dict[str, Any]:
        config = CodeConfig.from_dict(state.action_config)
        names = {"context": instance.context, "input": instance.input_data}
        return {"result": evaluate(config.code, names, self.expression_limits)}
