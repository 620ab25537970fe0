"""
In-process pipeline — the same orchestrator without a Temporal server.

Used by the API when Temporal is unreachable. Retries follow the workflow's
retry policy via utils.retry; heartbeats go to the debug log.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Mapping

from activities.execute import TaskCallable, execute_task
from activities.registry import build_registry, validate_registry
from activities.tasks import assemble_report
from activities.tool_scan import run_tool_scan
from features.runs import save_run
from models.schemas import PipelineInput, PipelineState, TaskInput, TaskName, TaskOutcome, ToolScanRequest
from utils.errors import PipelineFatalError
from utils.retry import RetrySettings, retry_async
from workflows.orchestrator import PipelineOrchestrator, make_session_id, session_output_dir

log = logging.getLogger(__name__)


def _log_heartbeat(details: dict) -> None:
    log.debug("heartbeat %s", details)


async def run_pipeline_inprocess(
    pipeline_input: PipelineInput,
    *,
    registry: Mapping[TaskName, TaskCallable] | None = None,
    retry: RetrySettings | None = None,
) -> PipelineState:
    """Run a full pipeline in this process. Raises PipelineFatalError if a fault escapes a sequential phase."""
    if registry is None:
        registry = build_registry()
    else:
        validate_registry(registry)

    session_id = pipeline_input.workflow_id or make_session_id(pipeline_input.target)
    output_dir = pipeline_input.output_dir or session_output_dir(pipeline_input.target, session_id)
    loop = asyncio.get_running_loop()

    async def execute(task_input: TaskInput) -> TaskOutcome:
        task_fn = registry[task_input.task]
        return await retry_async(
            lambda attempt: execute_task(task_input, task_fn, heartbeat=_log_heartbeat, attempt=attempt),
            retry,
        )

    async def scan(req: ToolScanRequest) -> dict[str, str]:
        return await loop.run_in_executor(None, run_tool_scan, req)

    orchestrator = PipelineOrchestrator(
        pipeline_input,
        session_id=session_id,
        output_dir=output_dir,
        execute=execute,
        scan_tools=scan,
        assemble=assemble_report,
        clock=lambda: datetime.now(timezone.utc),
    )

    try:
        state = await orchestrator.run()
    except PipelineFatalError:
        await _save(orchestrator.state)
        raise

    await _save(state)
    return state


async def _save(state: PipelineState) -> None:
    try:
        await asyncio.get_running_loop().run_in_executor(None, save_run, state)
    except Exception as e:
        log.warning("Could not save run record for %s: %s", state.session_id, e)
