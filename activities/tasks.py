"""
Temporal activities — the units the pipeline workflow schedules.

  run_task         — one task attempt through the execution wrapper
  scan_tools       — external scanner pass of the pre-reconnaissance phase
  assemble_report  — metrics aggregation at the end of the run
  save_run_record  — run history (JSON file + Postgres)
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from temporalio import activity
from temporalio.exceptions import ApplicationError

import config
from activities.execute import execute_task
from activities.registry import get_task_callable
from activities.tool_scan import run_tool_scan
from features.audit import AuditSession
from features.runs import save_run
from models.schemas import Metrics, PipelineState, ReportRequest, TaskInput, TaskOutcome, ToolScanRequest
from utils.concurrency import heartbeating
from utils.errors import RetryableTaskError

log = logging.getLogger(__name__)


@activity.defn(name="run_task")
async def run_task(task_input: TaskInput) -> TaskOutcome:
    info = activity.info()
    try:
        return await execute_task(
            task_input,
            get_task_callable(task_input.task),
            heartbeat=activity.heartbeat,
            attempt=info.attempt,
        )
    except RetryableTaskError as e:
        # The error type carries the classification into Temporal's retry policy.
        raise ApplicationError(str(e), type=e.kind.value) from e


@activity.defn(name="scan_tools")
async def scan_tools(req: ToolScanRequest) -> dict[str, str]:
    loop = asyncio.get_running_loop()
    async with heartbeating(activity.heartbeat, config.HEARTBEAT_INTERVAL_SEC,
                            lambda: {"phase": "pre-recon-tools"}):
        return await loop.run_in_executor(None, run_tool_scan, req)


@activity.defn(name="assemble_report")
async def assemble_report(req: ReportRequest) -> str:
    audit = AuditSession(req.session_id, req.output_dir)
    await audit.write_summary(req.metrics)
    path = Path(req.output_dir) / "reports" / "metrics-summary.md"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_metrics_summary(req.session_id, req.target, req.metrics))
    log.info("Metrics summary written: %s", path)
    return str(path)


@activity.defn(name="save_run_record")
async def save_run_record(state: PipelineState) -> str:
    return await asyncio.get_running_loop().run_in_executor(None, save_run, state)


def render_metrics_summary(session_id: str, target: str, metrics: list[Metrics]) -> str:
    total_cost = sum(m.cost for m in metrics)
    total_duration = sum(m.duration_sec for m in metrics)
    lines = [
        "# Pipeline Metrics",
        "",
        f"**Session:** `{session_id}`  ",
        f"**Target:** {target}  ",
        f"**Tasks:** {len(metrics)} ({sum(1 for m in metrics if m.success)} succeeded)  ",
        f"**Total cost:** ${total_cost:.2f}  ",
        f"**Total task time:** {round(total_duration)}s",
        "",
        "| Task | Status | Attempts | Duration (s) | Cost ($) | Tokens in/out |",
        "|---|---|---|---|---|---|",
    ]
    for m in metrics:
        status = "ok" if m.success else "failed"
        lines.append(
            f"| {m.task.value} | {status} | {m.attempts} | {m.duration_sec:.1f} | "
            f"{m.cost:.2f} | {m.input_tokens}/{m.output_tokens} |"
        )
    errors = [m for m in metrics if m.error]
    if errors:
        lines += ["", "## Errors", ""]
        lines += [f"- **{m.task.value}**: {m.error[:300]}" for m in errors]
    return "\n".join(lines) + "\n"


ALL_ACTIVITIES = [run_task, scan_tools, assemble_report, save_run_record]
