"""
Audit Session — facade over the session logs and the metrics snapshot.

One AuditSession is created per task attempt. Snapshot updates go through the
SessionMutex for the snapshot file, so parallel domain pipelines writing to the
same session never interleave their read-modify-write cycles. Audit failures
are logged and swallowed; they never fail the task being audited.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable

from features.audit.logger import AuditLogger, WorkflowLogger
from features.audit.metrics import MetricsTracker
from models.schemas import Metrics
from utils.concurrency import SessionMutex

log = logging.getLogger(__name__)

SESSION_SUBDIRS = (
    "agent-logs",
    "tool-outputs",
    "vuln-queues",
    "exploit-results",
    "reports",
)


def init_session_directory(session_path: str | Path) -> bool:
    root = Path(session_path)
    try:
        for sub in ("", *SESSION_SUBDIRS):
            (root / sub).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        log.warning("Could not create session directory %s: %s", root, e)
        return False
    return True


class AuditSession:
    def __init__(self, session_id: str, output_dir: str | Path):
        self.session_id = session_id
        self.session_path = Path(output_dir)
        init_session_directory(self.session_path)

        self.logger = AuditLogger(self.session_path)
        self.workflow_logger = WorkflowLogger(self.session_path)
        self.metrics = MetricsTracker(self.session_path, session_id)
        self._mutex = SessionMutex.for_path(self.metrics.metrics_path)

    async def _update(self, fn: Callable[..., Any], *args: Any) -> Any:
        async with self._mutex:
            try:
                return await asyncio.get_running_loop().run_in_executor(None, fn, *args)
            except Exception as e:
                log.warning("Metrics snapshot update failed (%s): %s", self.metrics.metrics_path, e)
                return None

    async def log_task_start(self, task: str, attempt: int = 1) -> None:
        self.logger.info(task, f"Task started (attempt {attempt})")
        self.workflow_logger.phase_start(task)
        await self._update(self.metrics.record_start, task)

    async def log_task_complete(self, task: str, metrics: Metrics) -> None:
        self.logger.info(task, f"Task completed in {round(metrics.duration_sec)}s (${metrics.cost:.2f})")
        self.workflow_logger.phase_complete(task)
        await self._update(self.metrics.record_complete, task, metrics)

    async def log_task_error(self, task: str, metrics: Metrics, kind: str = "") -> None:
        label = f"{kind}: " if kind else ""
        self.logger.error(task, f"Task failed: {label}{metrics.error}")
        self.workflow_logger.phase_error(task, metrics.error or "")
        await self._update(self.metrics.record_error, task, metrics)

    def warn(self, task: str, message: str) -> None:
        self.logger.warn(task, message)

    async def write_summary(self, all_metrics: list[Metrics]) -> dict | None:
        snapshot = await self._update(self.metrics.write_final_summary, all_metrics)
        if snapshot is not None:
            self.workflow_logger.workflow_complete(snapshot["summary"]["metrics"])
        return snapshot
