"""
Metrics snapshot — `session.json`.

Each record call is a full read-modify-write of the snapshot: the latest file
is loaded (so concurrent writers and restarted sessions are merged), mutated,
and written back atomically. Callers serialize calls per file; see
AuditSession.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

import config
from models.schemas import Metrics
from utils.files import atomic_write_json, read_json

log = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MetricsTracker:
    def __init__(self, session_path: str | Path, session_id: str):
        self.metrics_path = Path(session_path) / "session.json"
        self.session_id = session_id

    def _skeleton(self) -> dict:
        return {
            "session_id": self.session_id,
            "started_at": _now(),
            "tasks": {},
            "total_cost": 0.0,
            "total_duration_sec": 0.0,
        }

    def load(self) -> dict:
        """Current snapshot merged over a fresh skeleton."""
        snapshot = self._skeleton()
        stored = read_json(self.metrics_path)
        if isinstance(stored, dict):
            snapshot.update(stored)
            if not isinstance(snapshot.get("tasks"), dict):
                snapshot["tasks"] = {}
        return snapshot

    def record_start(self, task: str) -> dict:
        snapshot = self.load()
        previous = snapshot["tasks"].get(task, {})
        snapshot["tasks"][task] = {
            "started_at": _now(),
            "attempts": previous.get("attempts", 0) + 1,
            "status": "running",
        }
        self._persist(snapshot)
        return snapshot["tasks"][task]

    def record_complete(self, task: str, metrics: Metrics) -> None:
        snapshot = self.load()
        entry = snapshot["tasks"].setdefault(task, {"attempts": 1})
        entry.update({
            "ended_at": _now(),
            "duration_sec": metrics.duration_sec,
            "cost": metrics.cost,
            "input_tokens": metrics.input_tokens,
            "output_tokens": metrics.output_tokens,
            "turns": metrics.turns,
            "status": "completed",
        })
        entry.pop("error", None)
        self._persist(snapshot)

    def record_error(self, task: str, metrics: Metrics) -> None:
        snapshot = self.load()
        entry = snapshot["tasks"].setdefault(task, {"attempts": 1})
        entry.update({
            "ended_at": _now(),
            "duration_sec": metrics.duration_sec,
            "cost": metrics.cost,
            "status": "failed",
            "error": (metrics.error or "")[:config.METRICS_ERROR_LENGTH],
        })
        self._persist(snapshot)

    def write_final_summary(self, all_metrics: list[Metrics]) -> dict:
        snapshot = self.load()
        snapshot["total_duration_sec"] = round(sum(m.duration_sec for m in all_metrics), 2)
        snapshot["summary"] = {
            "tasks": len(all_metrics),
            "succeeded": sum(1 for m in all_metrics if m.success),
            "failed": sum(1 for m in all_metrics if not m.success),
            "metrics": [asdict(m) for m in all_metrics],
            "written_at": _now(),
        }
        self._persist(snapshot)
        return snapshot

    def _persist(self, snapshot: dict) -> None:
        snapshot["total_cost"] = sum(
            entry.get("cost", 0) or 0 for entry in snapshot["tasks"].values()
        )
        atomic_write_json(self.metrics_path, snapshot)
