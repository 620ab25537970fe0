"""
Domain pipeline — vulnerability analysis (producer) then exploitation
(consumer) for one domain.

The consumer runs only when its producer succeeded with at least one
deliverable; otherwise it is skipped, which is not a failure. Faults are
folded into the shared state and never leave the runner.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Awaitable, Callable

from models.schemas import TaskInput, TaskOutcome, consumer_for, producer_for
from workflows.state import PipelineStateGate

log = logging.getLogger(__name__)

ExecuteFn = Callable[[TaskInput], Awaitable[TaskOutcome]]


async def run_domain_pipeline(
    domain: str,
    gate: PipelineStateGate,
    base_input: TaskInput,
    execute: ExecuteFn,
) -> None:
    producer = producer_for(domain)
    consumer = consumer_for(domain)

    outcome = await _run_contained(gate, replace(base_input, task=producer), execute)

    if outcome is None or not outcome.success:
        await gate.mark_skipped(consumer, f"{producer.value} failed")
        return
    if not outcome.deliverables:
        await gate.mark_skipped(consumer, f"{producer.value} reported no findings")
        return

    await _run_contained(gate, replace(base_input, task=consumer), execute)


async def _run_contained(
    gate: PipelineStateGate,
    task_input: TaskInput,
    execute: ExecuteFn,
) -> TaskOutcome | None:
    """Run one task; returns None when it raised."""
    task = task_input.task
    try:
        await gate.mark_started(task)
    except ValueError as e:
        await gate.add_error(f"[{task.value}] {e}")
        return None

    try:
        outcome = await execute(task_input)
    except Exception as e:
        message = await gate.record_fault(task, e)
        log.error("[%s] failed after retries: %s", task.value, message[:200])
        return None

    await gate.record_outcome(outcome)
    return outcome
