"""
Append-only session logs.

Every write opens the file, appends one line and closes it, so a crash loses
at most the line being written. Writes never raise: a lost log line must not
fail a task.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

log = logging.getLogger(__name__)

_PY_LEVELS = {
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}


def _append(path: Path, line: str) -> None:
    try:
        with open(path, "a", encoding="utf-8") as f:
            f.write(line)
    except Exception as e:
        log.debug("Dropped audit line for %s: %s", path, e)


class AuditLogger:
    """Task-level event log: `session.log`."""

    def __init__(self, session_path: str | Path):
        self.log_path = Path(session_path) / "session.log"

    def info(self, task: str, message: str) -> None:
        self._write("INFO", task, message)

    def warn(self, task: str, message: str) -> None:
        self._write("WARN", task, message)

    def error(self, task: str, message: str) -> None:
        self._write("ERROR", task, message)

    def _write(self, level: str, task: str, message: str) -> None:
        timestamp = datetime.now(timezone.utc).isoformat()
        _append(self.log_path, f"[{timestamp}] [{level:<5}] [{task}] {message}\n")
        log.log(_PY_LEVELS[level], "[%s] %s", task, message)


class WorkflowLogger:
    """Phase-level log and the end-of-run summary: `workflow.log`."""

    def __init__(self, session_path: str | Path):
        self.log_path = Path(session_path) / "workflow.log"

    def phase_start(self, task: str) -> None:
        self._write(f"PHASE_START: {task}")

    def phase_complete(self, task: str) -> None:
        self._write(f"PHASE_COMPLETE: {task}")

    def phase_error(self, task: str, message: str) -> None:
        self._write(f"PHASE_ERROR: {task} - {message}")

    def workflow_complete(self, metrics: list[dict]) -> None:
        succeeded = sum(1 for m in metrics if m.get("success"))
        total_cost = sum(m.get("cost", 0) for m in metrics)
        total_duration = sum(m.get("duration_sec", 0) for m in metrics)
        self._write("WORKFLOW_COMPLETE")
        self._write(f"  Total tasks: {len(metrics)}")
        self._write(f"  Successful: {succeeded}")
        self._write(f"  Failed: {len(metrics) - succeeded}")
        self._write(f"  Total cost: ${total_cost:.2f}")
        self._write(f"  Total duration: {round(total_duration)}s")

    def _write(self, message: str) -> None:
        timestamp = datetime.now(timezone.utc).isoformat()
        _append(self.log_path, f"[{timestamp}] {message}\n")


class AgentLogger:
    """Per-agent log and JSONL event stream under `agent-logs/`."""

    def __init__(self, session_path: str | Path, agent: str):
        self.agent = agent
        log_dir = Path(session_path) / "agent-logs"
        self.log_path = log_dir / f"{agent}.log"
        self.events_path = log_dir / f"{agent}-audit.jsonl"
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log.debug("No agent log directory %s: %s", log_dir, e)

    def log_prompt(self, prompt: str) -> None:
        self._write("PROMPT", f"Prompt loaded ({len(prompt)} chars)")
        self._event("prompt", promptLength=len(prompt))

    def log_response(self, content: str) -> None:
        preview = content[:200]
        self._write("RESPONSE", preview)
        self._event("response", contentLength=len(content), preview=preview)

    def log_error(self, error: BaseException) -> None:
        name = type(error).__name__
        self._write("ERROR", f"{name}: {error}")
        self._event("error", errorName=name, errorMessage=str(error)[:1000])

    def _write(self, level: str, message: str) -> None:
        timestamp = datetime.now(timezone.utc).isoformat()
        _append(self.log_path, f"[{timestamp}] [{level}] [{self.agent}] {message}\n")

    def _event(self, kind: str, **fields) -> None:
        event = {"type": kind, "agent": self.agent, "timestamp": datetime.now(timezone.utc).isoformat(), **fields}
        _append(self.events_path, json.dumps(event) + "\n")
