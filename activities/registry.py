"""
Task registry — maps every TaskName to the callable that does its work.

The table is built once at startup and checked for completeness, so a task
without an implementation is caught before any workflow runs.
"""

from __future__ import annotations

import logging
from typing import Mapping

from activities.agents import run_agent
from activities.execute import TaskCallable
from models.schemas import TaskName
from utils.errors import RegistryError

log = logging.getLogger(__name__)

_registry: dict[TaskName, TaskCallable] | None = None


def validate_registry(registry: Mapping[TaskName, TaskCallable]) -> None:
    missing = [name.value for name in TaskName if name not in registry]
    if missing:
        raise RegistryError(f"No implementation registered for: {', '.join(missing)}")
    not_callable = [name.value for name, fn in registry.items() if not callable(fn)]
    if not_callable:
        raise RegistryError(f"Registered implementation is not callable for: {', '.join(not_callable)}")


def build_registry(overrides: Mapping[TaskName, TaskCallable] | None = None) -> dict[TaskName, TaskCallable]:
    registry: dict[TaskName, TaskCallable] = {name: run_agent for name in TaskName}
    if overrides:
        registry.update({TaskName(k): v for k, v in overrides.items()})
    validate_registry(registry)
    return registry


def install_registry(registry: Mapping[TaskName, TaskCallable]) -> None:
    """Replace the process-wide registry used by the Temporal activities."""
    global _registry
    validate_registry(registry)
    _registry = dict(registry)
    log.info("Task registry installed (%d tasks)", len(_registry))


def get_task_callable(name: TaskName) -> TaskCallable:
    global _registry
    if _registry is None:
        _registry = build_registry()
    return _registry[TaskName(name)]
