"""
Shared pipeline state — the one PipelineState of a run, mutated by the
orchestrator and every domain pipeline it launches.

All list mutations go through PipelineStateGate, which holds a SessionMutex
only around the bookkeeping, never across a task's execution.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from models.schemas import (
    PipelineProgress,
    PipelineState,
    PipelineStatus,
    TaskEvent,
    TaskName,
    TaskOutcome,
)
from utils.concurrency import SessionMutex
from utils.errors import fault_message, truncate_error

log = logging.getLogger(__name__)


class PipelineStateGate:
    def __init__(self, state: PipelineState, clock: Callable[[], datetime]):
        self.state = state
        self._clock = clock
        self._mutex = SessionMutex()
        self._started = clock()
        if not state.started_at:
            state.started_at = self._started.isoformat()

    def _event(self, task: TaskName, event: str, duration_sec: float | None = None,
               cost: float | None = None) -> None:
        self.state.events.append(TaskEvent(
            task=task,
            event=event,
            timestamp=self._clock().isoformat(),
            duration_sec=duration_sec,
            cost=cost,
        ))

    def _deactivate(self, task: TaskName) -> None:
        if task in self.state.active_tasks:
            self.state.active_tasks.remove(task)
        if self.state.current_task == task:
            self.state.current_task = self.state.active_tasks[-1] if self.state.active_tasks else None

    async def mark_started(self, task: TaskName) -> None:
        async with self._mutex:
            if task in self.state.active_tasks:
                raise ValueError(f"Task {task.value} is already active")
            self.state.active_tasks.append(task)
            self.state.current_task = task
            self._event(task, "started")

    async def record_outcome(self, outcome: TaskOutcome) -> None:
        async with self._mutex:
            task = outcome.task
            self._deactivate(task)
            self.state.metrics.append(outcome.metrics)
            self.state.total_cost = sum(m.cost for m in self.state.metrics)
            if outcome.success:
                self.state.completed_tasks.append(task)
                self._event(task, "completed", outcome.metrics.duration_sec, outcome.metrics.cost)
            else:
                self.state.failed_tasks.append(task)
                self.state.errors.append(f"[{task.value}] {outcome.error or 'failed'}")
                self._event(task, "failed", outcome.metrics.duration_sec, outcome.metrics.cost)

    async def record_fault(self, task: TaskName, fault: BaseException) -> str:
        """A task whose attempts were exhausted (or that raised past the wrapper)."""
        message = truncate_error(fault_message(fault))
        async with self._mutex:
            self._deactivate(task)
            self.state.failed_tasks.append(task)
            self.state.errors.append(f"[{task.value}] {message}")
            self._event(task, "failed")
        return message

    async def mark_skipped(self, task: TaskName, reason: str) -> None:
        async with self._mutex:
            self._deactivate(task)
            self.state.skipped_tasks.append(task)
            self._event(task, "skipped")
        log.info("[%s] skipped: %s", task.value, reason)

    async def set_phase(self, phase: str) -> None:
        async with self._mutex:
            self.state.current_phase = phase

    async def add_error(self, message: str) -> None:
        async with self._mutex:
            self.state.errors.append(message)

    async def finish(self, status: PipelineStatus) -> None:
        async with self._mutex:
            self.state.status = status
            self.state.current_task = None
            self.state.ended_at = self._clock().isoformat()

    def snapshot(self, now: datetime | None = None) -> PipelineProgress:
        now = now or self._clock()
        s = self.state
        return PipelineProgress(
            session_id=s.session_id,
            target=s.target,
            status=s.status,
            current_phase=s.current_phase,
            current_task=s.current_task,
            active_tasks=list(s.active_tasks),
            completed_tasks=list(s.completed_tasks),
            failed_tasks=list(s.failed_tasks),
            skipped_tasks=list(s.skipped_tasks),
            events=list(s.events),
            metrics=list(s.metrics),
            total_cost=s.total_cost,
            elapsed_sec=round((now - self._started).total_seconds(), 1),
            errors=list(s.errors),
        )
