"""
Postgres backing store for pipeline run history.

Tables:
  pipeline_runs  — one row per pipeline session, with the final state as JSONB

The store is optional: callers treat every failure here as non-fatal and fall
back to the JSON files written by features.runs.store.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Any

import psycopg2
import psycopg2.extras

import config

log = logging.getLogger(__name__)

# ── Connection ────────────────────────────────────────────────────────

_pool: list[Any] = []


def _get_conn():
    """Get a Postgres connection (simple single-connection reuse)."""
    if _pool:
        conn = _pool[0]
        if not conn.closed:
            return conn
        _pool.clear()

    conn = psycopg2.connect(config.DATABASE_URL, connect_timeout=5)
    conn.autocommit = True
    _pool.append(conn)
    return conn


@contextmanager
def get_cursor():
    """Yield a dict cursor."""
    conn = _get_conn()
    cur = conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
    try:
        yield cur
    finally:
        cur.close()


# ── Schema ────────────────────────────────────────────────────────────

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS pipeline_runs (
    session_id      TEXT PRIMARY KEY,
    target          TEXT NOT NULL,
    status          TEXT NOT NULL DEFAULT 'running',
    current_phase   TEXT,
    started_at      TIMESTAMPTZ,
    ended_at        TIMESTAMPTZ,
    total_cost      DOUBLE PRECISION DEFAULT 0,
    completed_tasks JSONB DEFAULT '[]'::jsonb,
    failed_tasks    JSONB DEFAULT '[]'::jsonb,
    skipped_tasks   JSONB DEFAULT '[]'::jsonb,
    errors          JSONB DEFAULT '[]'::jsonb,
    state           JSONB DEFAULT '{}'::jsonb,
    created_at      TIMESTAMPTZ DEFAULT now(),
    updated_at      TIMESTAMPTZ DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_pipeline_runs_status ON pipeline_runs(status);
CREATE INDEX IF NOT EXISTS idx_pipeline_runs_target ON pipeline_runs(target);
"""


def init_db():
    """Create tables if they don't exist."""
    try:
        with get_cursor() as cur:
            cur.execute(SCHEMA_SQL)
        log.info("Database schema initialized")
    except Exception as e:
        log.error("Failed to initialize database: %s", e)
        raise


# ── Pipeline Run CRUD ─────────────────────────────────────────────────

def upsert_run(run: dict) -> None:
    """Insert or update a run record. `run` is a serialized PipelineState."""
    with get_cursor() as cur:
        cur.execute("""
            INSERT INTO pipeline_runs (
                session_id, target, status, current_phase,
                started_at, ended_at, total_cost,
                completed_tasks, failed_tasks, skipped_tasks, errors, state
            ) VALUES (
                %(session_id)s, %(target)s, %(status)s, %(current_phase)s,
                %(started_at)s, %(ended_at)s, %(total_cost)s,
                %(completed_tasks)s, %(failed_tasks)s, %(skipped_tasks)s, %(errors)s, %(state)s
            )
            ON CONFLICT (session_id) DO UPDATE SET
                status = EXCLUDED.status,
                current_phase = EXCLUDED.current_phase,
                ended_at = EXCLUDED.ended_at,
                total_cost = EXCLUDED.total_cost,
                completed_tasks = EXCLUDED.completed_tasks,
                failed_tasks = EXCLUDED.failed_tasks,
                skipped_tasks = EXCLUDED.skipped_tasks,
                errors = EXCLUDED.errors,
                state = EXCLUDED.state,
                updated_at = now()
        """, {
            "session_id": run.get("session_id"),
            "target": run.get("target", ""),
            "status": run.get("status", "running"),
            "current_phase": run.get("current_phase"),
            "started_at": run.get("started_at") or None,
            "ended_at": run.get("ended_at"),
            "total_cost": run.get("total_cost", 0),
            "completed_tasks": json.dumps(run.get("completed_tasks", [])),
            "failed_tasks": json.dumps(run.get("failed_tasks", [])),
            "skipped_tasks": json.dumps(run.get("skipped_tasks", [])),
            "errors": json.dumps(run.get("errors", [])),
            "state": json.dumps(run, default=str),
        })


def get_run(session_id: str) -> dict | None:
    """Fetch a run by session ID."""
    with get_cursor() as cur:
        cur.execute("SELECT * FROM pipeline_runs WHERE session_id = %s", (session_id,))
        row = cur.fetchone()
        return dict(row) if row else None


def list_runs(limit: int = 50, status: str | None = None) -> list[dict]:
    """List runs, newest first."""
    with get_cursor() as cur:
        if status:
            cur.execute(
                "SELECT * FROM pipeline_runs WHERE status = %s ORDER BY created_at DESC LIMIT %s",
                (status, limit),
            )
        else:
            cur.execute(
                "SELECT * FROM pipeline_runs ORDER BY created_at DESC LIMIT %s",
                (limit,),
            )
        return [dict(row) for row in cur.fetchall()]
