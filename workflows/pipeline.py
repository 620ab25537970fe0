"""
Temporal Workflow: Pentest Pipeline

Runs the phase state machine of workflows/orchestrator.py with every task
scheduled as a `run_task` activity:
  1. Pre-reconnaissance — external tool scan, then the pre-recon agent
  2. Reconnaissance
  3. Vulnerability analysis → exploitation, one pipeline per domain, concurrently
  4. Reporting, then metrics aggregation
  5. Run record saved (on success and on failure)

Temporal owns retries (bounded, exponential backoff, non-retryable kinds),
per-attempt timeouts and heartbeat liveness. `get_progress` answers at any
point of the run.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ApplicationError

with workflow.unsafe.imports_passed_through():
    from activities.tasks import assemble_report, run_task, save_run_record, scan_tools
    from models.schemas import (
        PipelineInput,
        PipelineProgress,
        PipelineState,
        PipelineStatus,
        ReportRequest,
        TaskInput,
        TaskOutcome,
        ToolScanRequest,
    )
    from utils.errors import NON_RETRYABLE_KINDS, PipelineFatalError
    from workflows.orchestrator import PipelineOrchestrator, session_output_dir
    import config

log = logging.getLogger(__name__)

TASK_RETRY_POLICY = RetryPolicy(
    initial_interval=timedelta(seconds=config.RETRY_INITIAL_INTERVAL_SEC),
    backoff_coefficient=config.RETRY_BACKOFF,
    maximum_interval=timedelta(seconds=config.RETRY_MAX_INTERVAL_SEC),
    maximum_attempts=config.RETRY_MAX_ATTEMPTS,
    non_retryable_error_types=[kind.value for kind in NON_RETRYABLE_KINDS],
)

# Aggregation and run-record writes.
BOOKKEEPING_RETRY_POLICY = RetryPolicy(maximum_attempts=3)


@workflow.defn
class PentestPipeline:
    def __init__(self) -> None:
        self._orchestrator: PipelineOrchestrator | None = None
        self._target = ""

    @workflow.run
    async def run(self, pipeline_input: PipelineInput) -> PipelineState:
        session_id = pipeline_input.workflow_id or workflow.info().workflow_id
        output_dir = pipeline_input.output_dir or session_output_dir(pipeline_input.target, session_id)
        self._target = pipeline_input.target

        orchestrator = PipelineOrchestrator(
            pipeline_input,
            session_id=session_id,
            output_dir=output_dir,
            execute=self._run_task,
            scan_tools=self._scan_tools,
            assemble=self._assemble,
            clock=workflow.now,
        )
        self._orchestrator = orchestrator

        try:
            state = await orchestrator.run()
        except PipelineFatalError as e:
            await self._save(orchestrator.state)
            raise ApplicationError(str(e), type="pipeline_failed", non_retryable=True) from None

        await self._save(state)
        return state

    @workflow.query
    def get_progress(self) -> PipelineProgress:
        if self._orchestrator is None:
            return PipelineProgress(
                session_id=workflow.info().workflow_id,
                target=self._target,
                status=PipelineStatus.RUNNING,
                current_phase="Initializing",
                current_task=None,
                active_tasks=[],
                completed_tasks=[],
                failed_tasks=[],
                skipped_tasks=[],
                events=[],
                metrics=[],
                total_cost=0.0,
                elapsed_sec=0.0,
                errors=[],
            )
        return self._orchestrator.progress()

    # ── Activity bindings ─────────────────────────────────────────────

    async def _run_task(self, task_input: TaskInput) -> TaskOutcome:
        return await workflow.execute_activity(
            run_task,
            task_input,
            start_to_close_timeout=timedelta(minutes=config.TASK_TIMEOUT_MIN),
            heartbeat_timeout=timedelta(seconds=config.HEARTBEAT_TIMEOUT_SEC),
            retry_policy=TASK_RETRY_POLICY,
        )

    async def _scan_tools(self, req: ToolScanRequest) -> dict:
        return await workflow.execute_activity(
            scan_tools,
            req,
            start_to_close_timeout=timedelta(minutes=config.TASK_TIMEOUT_MIN),
            heartbeat_timeout=timedelta(seconds=config.HEARTBEAT_TIMEOUT_SEC),
            retry_policy=TASK_RETRY_POLICY,
        )

    async def _assemble(self, req: ReportRequest) -> str:
        return await workflow.execute_activity(
            assemble_report,
            req,
            start_to_close_timeout=timedelta(minutes=2),
            retry_policy=BOOKKEEPING_RETRY_POLICY,
        )

    async def _save(self, state: PipelineState) -> None:
        try:
            path = await workflow.execute_activity(
                save_run_record,
                state,
                start_to_close_timeout=timedelta(minutes=1),
                retry_policy=BOOKKEEPING_RETRY_POLICY,
            )
            log.info("Run record for %s saved: %s", state.session_id, path)
        except Exception as e:
            # Run history is best-effort.
            log.warning("Could not save run record for %s: %s", state.session_id, e)
