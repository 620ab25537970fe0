from __future__ import annotations

import asyncio

import pytest

import config
from activities.deliverables import EXPECTED_DELIVERABLES, resolve_deliverable_path
from models.schemas import PipelineInput, PipelineStatus, TaskExecutionResult, TaskName
from utils.errors import PipelineFatalError
from utils.files import read_json
from utils.retry import RetrySettings
from workflows import local

NO_WAIT = RetrySettings(max_attempts=3, initial_interval=0, backoff=1.0, max_interval=0)


def _writes_deliverables(task_input):
    for filename in EXPECTED_DELIVERABLES[task_input.task]:
        path = resolve_deliverable_path(task_input.task, task_input.output_dir, filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"# {filename}\n- finding for {task_input.target}\n")
    return TaskExecutionResult(cost=0.05, turns=1)


@pytest.fixture(autouse=True)
def no_scanners(monkeypatch):
    monkeypatch.setattr(local, "run_tool_scan", lambda req: {})


def _registry(**overrides):
    reg = {name: _writes_deliverables for name in TaskName}
    reg.update({TaskName(k.replace("_", "-")): v for k, v in overrides.items()})
    return reg


def test_inprocess_run_end_to_end(tmp_path):
    out = tmp_path / "out"
    state = asyncio.run(local.run_pipeline_inprocess(
        PipelineInput(target="10.0.0.5", domains=["ssh"], output_dir=str(out), workflow_id="run-1"),
        registry=_registry(),
        retry=NO_WAIT,
    ))

    assert state.status is PipelineStatus.COMPLETED
    assert state.session_id == "run-1"
    assert len(state.completed_tasks) == 5
    assert state.total_cost == pytest.approx(0.25)
    assert (out / "reports" / "metrics-summary.md").exists()
    assert read_json(out / "session.json")["summary"]["tasks"] == 5
    assert read_json(config.PIPELINE_RUNS_DIR / "run-1.json")["status"] == "completed"


def test_inprocess_retries_retryable_faults(tmp_path):
    calls = {"n": 0}

    def flaky_recon(task_input):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConnectionResetError("connection reset by peer")
        return _writes_deliverables(task_input)

    state = asyncio.run(local.run_pipeline_inprocess(
        PipelineInput(target="10.0.0.5", domains=["ssh"], output_dir=str(tmp_path / "out"), workflow_id="run-2"),
        registry=_registry(recon=flaky_recon),
        retry=NO_WAIT,
    ))

    recon = next(m for m in state.metrics if m.task is TaskName.RECON)
    assert recon.attempts == 2
    assert state.status is PipelineStatus.COMPLETED


def test_inprocess_fatal_run_is_still_recorded(tmp_path):
    def unreachable(task_input):
        raise ConnectionResetError("connection reset by peer")

    with pytest.raises(PipelineFatalError):
        asyncio.run(local.run_pipeline_inprocess(
            PipelineInput(target="10.0.0.5", domains=["ssh"], output_dir=str(tmp_path / "out"), workflow_id="run-3"),
            registry=_registry(pre_recon=unreachable),
            retry=NO_WAIT,
        ))

    record = read_json(config.PIPELINE_RUNS_DIR / "run-3.json")
    assert record["status"] == "failed"
    assert record["failed_tasks"] == ["pre-recon"]


def test_inprocess_failed_outcome_is_not_fatal(tmp_path):
    def no_access(task_input):
        raise PermissionError("permission denied (publickey)")

    state = asyncio.run(local.run_pipeline_inprocess(
        PipelineInput(target="10.0.0.5", domains=["ssh"], output_dir=str(tmp_path / "out"), workflow_id="run-5"),
        registry=_registry(pre_recon=no_access),
        retry=NO_WAIT,
    ))

    assert state.status is PipelineStatus.COMPLETED
    assert state.failed_tasks == [TaskName.PRE_RECON]
    assert TaskName.REPORT in state.completed_tasks
    assert read_json(config.PIPELINE_RUNS_DIR / "run-5.json")["status"] == "completed"


def test_default_output_dir_is_under_audit_logs():
    state = asyncio.run(local.run_pipeline_inprocess(
        PipelineInput(target="10.0.0.5", domains=["ssh"], workflow_id="run-4"),
        registry=_registry(),
        retry=NO_WAIT,
    ))
    assert state.output_dir.startswith(str(config.AUDIT_LOGS_DIR))
    assert state.output_dir.endswith("10.0.0.5_run-4")
