"""
FastAPI application — REST API for Pentest Pilot.

Endpoints:
  POST /pipeline/start              — Start a pentest pipeline run
  GET  /pipeline/runs               — List pipeline runs
  GET  /pipeline/{run_id}           — Get pipeline run status/results
  GET  /pipeline/{run_id}/progress  — Live progress snapshot
  GET  /health                      — Health check
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict, is_dataclass
from decimal import Decimal
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

import config
import client as pipeline_client
from temporalio.client import Client
from features.runs import db as run_db
from features.runs import list_runs, load_run
from models.schemas import PipelineInput, resolve_domains
from utils.errors import PipelineFatalError
from workflows.local import run_pipeline_inprocess

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)

temporal_client: Client | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global temporal_client
    # Initialize Postgres
    try:
        run_db.init_db()
        log.info("Postgres database initialized")
    except Exception as e:
        log.warning("Could not connect to Postgres: %s (run history will be file-only)", e)
    # Connect to Temporal
    try:
        temporal_client = await pipeline_client.connect()
        log.info("Connected to Temporal at %s", config.TEMPORAL_HOST)
    except Exception as e:
        log.warning("Could not connect to Temporal: %s (pipeline will run in-process)", e)
        temporal_client = None
    yield


app = FastAPI(
    title="Pentest Pilot",
    description="Durable multi-phase penetration test pipeline with Temporal orchestration",
    version="1.0.0",
    lifespan=lifespan,
)


class PipelineStartRequest(BaseModel):
    target: str
    ssh_user: str | None = None
    ssh_key_path: str | None = None
    ssh_password: str | None = None
    ssh_port: int | None = None
    scope: str | None = None
    config_path: str | None = None
    output_dir: str | None = None
    pipeline_testing: bool = False
    domains: list[str] | None = None


class PipelineStartResponse(BaseModel):
    run_id: str
    status: str
    message: str


# ── Health ────────────────────────────────────────────────────────────

@app.get("/health")
def health():
    return {
        "status": "ok",
        "service": "pentest-pilot",
        "temporal_connected": temporal_client is not None,
    }


# ── Pipeline ──────────────────────────────────────────────────────────

@app.post("/pipeline/start", response_model=PipelineStartResponse)
async def start_pipeline(req: PipelineStartRequest):
    """Start a pentest pipeline run against the target."""
    if not req.target.strip():
        raise HTTPException(status_code=400, detail="target is required")
    try:
        resolve_domains(req.domains)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    pipeline_input = PipelineInput(**req.model_dump())

    if temporal_client:
        handle = await pipeline_client.start_pipeline(temporal_client, pipeline_input)
        return PipelineStartResponse(
            run_id=handle.id,
            status="started",
            message=f"Pipeline started via Temporal. Workflow ID: {handle.id}",
        )

    # Run in-process (no Temporal server)
    try:
        state = await run_pipeline_inprocess(pipeline_input)
    except PipelineFatalError as e:
        raise HTTPException(status_code=500, detail=f"Pipeline failed: {e}")
    return PipelineStartResponse(
        run_id=state.session_id,
        status=state.status.value,
        message=f"Pipeline ran in-process (no Temporal). Run ID: {state.session_id}",
    )


@app.get("/pipeline/runs")
async def list_pipeline_runs(status: str | None = None, limit: int = 50):
    """List pipeline runs, newest first."""
    return {"runs": [_serialize(r) for r in list_runs(limit=limit, status=status)]}


@app.get("/pipeline/{run_id}")
async def get_pipeline_run(run_id: str):
    """Get the final state of a pipeline run, or its Temporal status while it runs."""
    record = load_run(run_id)
    if record:
        return _serialize(record)

    if temporal_client:
        try:
            handle = pipeline_client.get_pipeline(temporal_client, run_id)
            desc = await handle.describe()
            result = None
            if desc.status and desc.status.name == "COMPLETED":
                result = await handle.result()
            return {
                "run_id": run_id,
                "temporal_status": desc.status.name if desc.status else None,
                "result": _serialize(result),
            }
        except Exception:
            raise HTTPException(status_code=404, detail=f"Run not found: {run_id}")

    raise HTTPException(status_code=404, detail=f"Run not found: {run_id}")


@app.get("/pipeline/{run_id}/progress")
async def get_pipeline_progress(run_id: str):
    """Live progress from the running workflow; the saved record once it has ended."""
    if temporal_client:
        try:
            handle = pipeline_client.get_pipeline(temporal_client, run_id)
            return _serialize(await pipeline_client.query_progress(handle))
        except Exception as e:
            log.debug("Progress query failed for %s: %s", run_id, e)

    record = load_run(run_id)
    if record:
        return _serialize(record)
    raise HTTPException(status_code=404, detail=f"Run not found: {run_id}")


def _serialize(obj: Any) -> Any:
    """Make results JSON-serializable (dataclasses, datetimes, Decimals, etc)."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return _serialize(asdict(obj))
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_serialize(v) for v in obj]
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    return obj
