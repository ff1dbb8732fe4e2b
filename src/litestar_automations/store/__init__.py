"""Workflow store implementations.

The in-memory store is always available. The SQLAlchemy store lives in
:mod:`litestar_automations.db`.
"""

from __future__ import annotations

from litestar_automations.store.memory import InMemoryWorkflowStore

__all__ = ["InMemoryWorkflowStore"]
