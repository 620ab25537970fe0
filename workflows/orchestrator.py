"""
Pipeline orchestrator — the phase state machine shared by the Temporal
workflow and the in-process runner.

  Initializing
  → Pre-Reconnaissance   (tool scan + pre-recon task)
  → Reconnaissance       (recon task)
  → Vulnerability Analysis & Exploitation   (all domain pipelines, concurrent)
  → Reporting            (report task + metrics aggregation)
  → Complete

A fault raised out of a sequential phase (tool scan included) ends the run with
status `failed` and a PipelineFatalError. A task that returns a failed outcome,
sequential or domain, only shows up in failed_tasks and errors; the run still
completes.

How tasks are executed (Temporal activity or local call) is injected, so the
state machine itself does no I/O and is safe to run inside a workflow.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import config
from models.schemas import (
    PipelineInput,
    PipelineProgress,
    PipelineState,
    PipelineStatus,
    ReportRequest,
    TaskInput,
    TaskName,
    ToolScanRequest,
    resolve_domains,
)
from utils.errors import PipelineFatalError, fault_message, truncate_error
from workflows.domain import ExecuteFn, run_domain_pipeline
from workflows.state import PipelineStateGate

log = logging.getLogger(__name__)

PHASE_PRE_RECON = "Pre-Reconnaissance"
PHASE_RECON = "Reconnaissance"
PHASE_DOMAINS = "Vulnerability Analysis & Exploitation"
PHASE_REPORTING = "Reporting"
PHASE_COMPLETE = "Complete"


def _slug(target: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "_", target).strip("_") or "target"


def make_session_id(target: str) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"pentest-{_slug(target)}-{stamp}-{uuid.uuid4().hex[:6]}"


def session_output_dir(target: str, session_id: str) -> str:
    return f"{config.AUDIT_LOGS_DIR}/{_slug(target)}_{session_id}"


class PipelineOrchestrator:
    def __init__(
        self,
        pipeline_input: PipelineInput,
        *,
        session_id: str,
        output_dir: str,
        execute: ExecuteFn,
        scan_tools: Callable[[ToolScanRequest], Awaitable[Any]],
        assemble: Callable[[ReportRequest], Awaitable[Any]],
        clock: Callable[[], datetime],
    ):
        self.pipeline_input = pipeline_input
        self.session_id = session_id
        self.output_dir = output_dir
        self._execute = execute
        self._scan_tools = scan_tools
        self._assemble = assemble

        self.base_input = TaskInput(
            task=TaskName.PRE_RECON,
            target=pipeline_input.target,
            session_id=session_id,
            output_dir=output_dir,
            ssh_user=pipeline_input.ssh_user,
            ssh_key_path=pipeline_input.ssh_key_path,
            ssh_password=pipeline_input.ssh_password,
            ssh_port=pipeline_input.ssh_port,
            scope=pipeline_input.scope,
            config_path=pipeline_input.config_path,
            pipeline_testing=pipeline_input.pipeline_testing,
        )
        self.gate = PipelineStateGate(
            PipelineState(session_id=session_id, target=pipeline_input.target, output_dir=output_dir),
            clock,
        )

    @property
    def state(self) -> PipelineState:
        return self.gate.state

    def progress(self) -> PipelineProgress:
        return self.gate.snapshot()

    async def run(self) -> PipelineState:
        gate = self.gate
        log.info("Pipeline %s starting for %s", self.session_id, self.pipeline_input.target)
        try:
            domains = resolve_domains(self.pipeline_input.domains)

            # ━━ Pre-Reconnaissance ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
            await gate.set_phase(PHASE_PRE_RECON)
            await self._run_tool_scan()
            await self._run_sequential(TaskName.PRE_RECON)

            # ━━ Reconnaissance ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
            await gate.set_phase(PHASE_RECON)
            await self._run_sequential(TaskName.RECON)

            # ━━ Vulnerability Analysis & Exploitation ━━━━━━━━━━━━━━━━━
            await gate.set_phase(PHASE_DOMAINS)
            results = await asyncio.gather(
                *(run_domain_pipeline(d, gate, self.base_input, self._execute) for d in domains),
                return_exceptions=True,
            )
            for domain, result in zip(domains, results):
                if isinstance(result, BaseException):
                    await gate.add_error(f"[{domain}] domain pipeline crashed: {fault_message(result)}")

            # ━━ Reporting ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
            await gate.set_phase(PHASE_REPORTING)
            await self._run_sequential(TaskName.REPORT)
            await self._assemble(ReportRequest(
                session_id=self.session_id,
                target=self.pipeline_input.target,
                output_dir=self.output_dir,
                metrics=list(self.state.metrics),
            ))

            await gate.set_phase(PHASE_COMPLETE)
            await gate.finish(PipelineStatus.COMPLETED)

        except asyncio.CancelledError:
            log.warning("Pipeline %s cancelled in %s", self.session_id, self.state.current_phase)
            await gate.finish(PipelineStatus.CANCELLED)
            raise
        except PipelineFatalError as e:
            # The failing task is already in failed_tasks and errors.
            await self._fail(str(e))
            raise
        except Exception as e:
            message = truncate_error(fault_message(e))
            await gate.add_error(message)
            await self._fail(message)
            raise PipelineFatalError(message) from e

        log.info(
            "Pipeline %s complete: %d completed, %d failed, %d skipped, $%.2f",
            self.session_id, len(self.state.completed_tasks), len(self.state.failed_tasks),
            len(self.state.skipped_tasks), self.state.total_cost,
        )
        return self.state

    async def _fail(self, message: str) -> None:
        log.error("Pipeline %s failed in %s: %s", self.session_id, self.state.current_phase, message[:200])
        await self.gate.finish(PipelineStatus.FAILED)

    async def _run_tool_scan(self) -> None:
        """Per-tool failures are written into the tool output; a fault here is host-level."""
        request = ToolScanRequest(
            target=self.pipeline_input.target,
            output_dir=self.output_dir,
            scope=self.pipeline_input.scope,
            ssh_port=self.pipeline_input.ssh_port,
            pipeline_testing=self.pipeline_input.pipeline_testing,
        )
        try:
            await self._scan_tools(request)
        except Exception as e:
            message = truncate_error(f"tool-scan failed: {fault_message(e)}")
            await self.gate.add_error(message)
            raise PipelineFatalError(message) from e

    async def _run_sequential(self, task: TaskName) -> None:
        await self.gate.mark_started(task)
        try:
            outcome = await self._execute(replace(self.base_input, task=task))
        except Exception as e:
            message = await self.gate.record_fault(task, e)
            raise PipelineFatalError(truncate_error(f"{task.value} failed: {message}")) from e

        await self.gate.record_outcome(outcome)
