"""
Task execution wrapper — runs one task attempt with heartbeats, a checkpoint,
deliverable validation, metrics and error classification.

The boundary contract: a retryable fault leaves as RetryableTaskError so the
host retries the attempt; a non-retryable fault comes back as a failed
TaskOutcome and is final. Every attempt ends in exactly one of checkpoint
commit or rollback.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

import config
from activities.deliverables import validate_deliverables
from features.audit import AuditSession
from features.checkpoints import CheckpointManager
from models.schemas import ErrorKind, Metrics, TaskExecutionResult, TaskInput, TaskName, TaskOutcome
from utils.concurrency import heartbeating
from utils.errors import RetryableTaskError, classify, truncate_error

log = logging.getLogger(__name__)

TaskCallable = Callable[[TaskInput], TaskExecutionResult]


async def execute_task(
    task_input: TaskInput,
    task_fn: TaskCallable,
    *,
    heartbeat: Callable[..., Any],
    attempt: int = 1,
    audit: AuditSession | None = None,
    checkpoints: CheckpointManager | None = None,
    validator: Callable[[TaskName, str], list[str]] = validate_deliverables,
    interval: float | None = None,
) -> TaskOutcome:
    task = TaskName(task_input.task)
    name = task.value
    start = time.monotonic()
    audit = audit or AuditSession(task_input.session_id, task_input.output_dir)
    checkpoints = checkpoints or CheckpointManager(task_input.output_dir)
    loop = asyncio.get_running_loop()

    def _details() -> dict:
        return {"task": name, "attempt": attempt, "elapsed_sec": round(time.monotonic() - start, 1)}

    async with heartbeating(heartbeat, interval or config.HEARTBEAT_INTERVAL_SEC, _details):
        committed = False
        try:
            await audit.log_task_start(name, attempt)
            await loop.run_in_executor(None, checkpoints.create_checkpoint, name)

            result: TaskExecutionResult = await loop.run_in_executor(None, task_fn, task_input)

            deliverables = validator(task, task_input.output_dir)
            await loop.run_in_executor(None, checkpoints.commit, name)
            committed = True

            metrics = Metrics(
                task=task,
                duration_sec=round(time.monotonic() - start, 2),
                cost=result.cost,
                input_tokens=result.input_tokens,
                output_tokens=result.output_tokens,
                turns=result.turns,
                attempts=attempt,
                success=True,
            )
            await audit.log_task_complete(name, metrics)
            return TaskOutcome(task=task, success=True, metrics=metrics, deliverables=deliverables)

        except asyncio.CancelledError:
            # Cancelled by the host (timeout or workflow cancel): undo, record, propagate.
            if not committed:
                await asyncio.shield(loop.run_in_executor(None, checkpoints.rollback, name))
            metrics = _failure_metrics(task, start, attempt, "Task attempt cancelled")
            await asyncio.shield(audit.log_task_error(name, metrics, ErrorKind.TIMEOUT_ERROR.value))
            raise

        except Exception as err:
            record = classify(err)
            if not committed:
                await loop.run_in_executor(None, checkpoints.rollback, name)
            message = truncate_error(str(err) or type(err).__name__)
            metrics = _failure_metrics(task, start, attempt, message)
            await audit.log_task_error(name, metrics, record.kind.value)

            if record.retryable:
                log.warning("[%s] attempt %d failed (%s, retryable): %s",
                            name, attempt, record.kind.value, message[:200])
                raise RetryableTaskError(message, record.kind, cause=err) from err

            log.error("[%s] failed (%s, not retryable): %s", name, record.kind.value, message[:200])
            return TaskOutcome(task=task, success=False, metrics=metrics, deliverables=[], error=message)


def _failure_metrics(task: TaskName, start: float, attempt: int, message: str) -> Metrics:
    return Metrics(
        task=task,
        duration_sec=round(time.monotonic() - start, 2),
        attempts=attempt,
        success=False,
        error=message,
    )
