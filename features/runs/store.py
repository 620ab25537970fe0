"""
Run history — one JSON file per session under PIPELINE_RUNS_DIR, mirrored to
Postgres when it is reachable. Reads prefer Postgres and fall back to files.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path

import config
from features.runs import db as run_db
from models.schemas import PipelineState
from utils.files import atomic_write_json, read_json

log = logging.getLogger(__name__)


def serialize_state(state: PipelineState) -> dict:
    """Plain JSON types only; enums become their values."""
    return json.loads(json.dumps(asdict(state), default=str))


def save_run(state: PipelineState, runs_dir: Path | None = None) -> str:
    """Persist a run record; returns the JSON file path."""
    record = serialize_state(state)
    runs_dir = runs_dir or config.PIPELINE_RUNS_DIR
    path = Path(runs_dir) / f"{state.session_id}.json"
    atomic_write_json(path, record)
    log.info("Run log saved: %s", path)

    try:
        run_db.upsert_run(record)
    except Exception as e:
        log.warning("Could not persist run %s to Postgres: %s", state.session_id, e)
    return str(path)


def load_run(session_id: str, runs_dir: Path | None = None) -> dict | None:
    try:
        row = run_db.get_run(session_id)
        if row:
            return row.get("state") or row
    except Exception as e:
        log.debug("Postgres lookup failed for %s: %s", session_id, e)

    runs_dir = runs_dir or config.PIPELINE_RUNS_DIR
    return read_json(Path(runs_dir) / f"{session_id}.json")


def list_runs(limit: int = 50, status: str | None = None, runs_dir: Path | None = None) -> list[dict]:
    try:
        return [
            {
                "session_id": r["session_id"],
                "target": r["target"],
                "status": r["status"],
                "started_at": r.get("started_at"),
                "ended_at": r.get("ended_at"),
                "total_cost": r.get("total_cost", 0),
            }
            for r in run_db.list_runs(limit=limit, status=status)
        ]
    except Exception as e:
        log.debug("Postgres listing failed: %s", e)

    runs_dir = Path(runs_dir or config.PIPELINE_RUNS_DIR)
    if not runs_dir.is_dir():
        return []
    runs = []
    for run_file in sorted(runs_dir.glob("*.json"), reverse=True):
        data = read_json(run_file)
        if not isinstance(data, dict):
            continue
        if status and data.get("status") != status:
            continue
        runs.append({
            "session_id": data.get("session_id"),
            "target": data.get("target"),
            "status": data.get("status"),
            "started_at": data.get("started_at"),
            "ended_at": data.get("ended_at"),
            "total_cost": data.get("total_cost", 0),
        })
        if len(runs) >= limit:
            break
    return runs
