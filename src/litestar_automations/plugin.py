"""Litestar plugin for workflow automation.

This module provides the AutomationPlugin, which makes a
:class:`~litestar_automations.engine.lifecycle.WorkflowEngine` and its store
available to a Litestar application through dependency injection and ties the
engine's background runs to the application lifespan.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from litestar.di import Provide
from litestar.plugins import InitPluginProtocol

from litestar_automations.core.protocols import WorkflowStore
from litestar_automations.engine.lifecycle import WorkflowEngine
from litestar_automations.store.memory import InMemoryWorkflowStore

if TYPE_CHECKING:
    import httpx
    from litestar.config.app import AppConfig

    from litestar_automations.config import EngineConfig
    from litestar_automations.core.protocols import CompletionClient

__all__ = ["AutomationPlugin", "AutomationPluginConfig"]

logger = logging.getLogger(__name__)


@dataclass
class AutomationPluginConfig:
    """Configuration for the AutomationPlugin.

    Attributes:
        store: Workflow store. Defaults to an :class:`InMemoryWorkflowStore`.
        engine: Pre-configured engine. When given, ``store``,
            ``engine_config``, ``completion_client`` and ``http_client`` are
            ignored and the engine's own store is provided.
        engine_config: Configuration for the engine the plugin creates.
        completion_client: Backend for ``ai_task`` actions.
        http_client: Client for ``http_request`` actions.
        dependency_key_engine: The key used for dependency injection of the
            WorkflowEngine. Defaults to "workflow_engine".
        dependency_key_store: The key used for dependency injection of the
            store. Defaults to "workflow_store".
        recover_on_startup: Resume persisted running instances on app startup.
        shutdown_engine: Cancel background runs and close clients on app shutdown.
    """

    store: WorkflowStore | None = None
    engine: WorkflowEngine | None = None
    engine_config: EngineConfig | None = None
    completion_client: CompletionClient | None = None
    http_client: httpx.AsyncClient | None = None
    dependency_key_engine: str = "workflow_engine"
    dependency_key_store: str = "workflow_store"
    recover_on_startup: bool = True
    shutdown_engine: bool = True


class AutomationPlugin(InitPluginProtocol):
    """Litestar plugin for workflow automation.

    Example:
        Basic usage::

            from litestar import Litestar, post
            from litestar_automations import AutomationPlugin, AutomationPluginConfig, WorkflowEngine
            from litestar_automations.db import SQLAlchemyWorkflowStore


            @post("/workflows/{workflow_id:uuid}/start")
            async def start(workflow_id: UUID, workflow_engine: WorkflowEngine) -> dict:
                instance = await workflow_engine.start_workflow(workflow_id, user_id="u1")
                return {"instance_id": str(instance.id), "status": instance.status}


            app = Litestar(
                route_handlers=[start],
                plugins=[AutomationPlugin(AutomationPluginConfig(store=SQLAlchemyWorkflowStore(db_engine)))],
            )
    """

    __slots__ = ("_config", "_engine")

    def __init__(self, config: AutomationPluginConfig | None = None) -> None:
        """Initialize the plugin.

        Args:
            config: Optional configuration for the plugin.
        """
        self._config = config or AutomationPluginConfig()
        self._engine: WorkflowEngine | None = None

    @property
    def engine(self) -> WorkflowEngine:
        """Get the workflow engine.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._engine is None:
            msg = "AutomationPlugin has not been initialized. Access engine after app startup."
            raise RuntimeError(msg)
        return self._engine

    @property
    def store(self) -> WorkflowStore:
        return self.engine.store

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        """Register the engine with the Litestar application.

        This method:
        1. Creates or uses the provided WorkflowEngine
        2. Adds dependency providers for the engine and its store
        3. Hooks recovery and shutdown into the app lifespan

        Args:
            app_config: The Litestar application configuration.

        Returns:
            The modified application configuration.
        """
        config = self._config
        self._engine = config.engine or WorkflowEngine(
            config.store or InMemoryWorkflowStore(),
            config=config.engine_config,
            completion_client=config.completion_client,
            http_client=config.http_client,
        )

        def provide_engine() -> WorkflowEngine:
            return self.engine

        def provide_store() -> WorkflowStore:
            return self.store

        app_config.dependencies[config.dependency_key_engine] = Provide(provide_engine, sync_to_thread=False)
        app_config.dependencies[config.dependency_key_store] = Provide(provide_store, sync_to_thread=False)

        if config.recover_on_startup:
            app_config.on_startup.append(self._recover)
        if config.shutdown_engine:
            app_config.on_shutdown.append(self._shutdown)

        return app_config

    async def _recover(self) -> None:
        recovered = await self.engine.recover()
        logger.debug("Recovered %d workflow instance(s) on startup", len(recovered))

    async def _shutdown(self) -> None:
        await self.engine.shutdown()
