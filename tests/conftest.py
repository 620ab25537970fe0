from __future__ import annotations

import pytest

import config
from features.runs import db as run_db
from models.schemas import TaskInput, TaskName


def _no_postgres(*args, **kwargs):
    raise RuntimeError("postgres disabled in tests")


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    """Keep run history and audit output inside the test's tmp dir, with no database."""
    monkeypatch.setattr(config, "PIPELINE_RUNS_DIR", tmp_path / "pipeline_runs")
    monkeypatch.setattr(config, "AUDIT_LOGS_DIR", tmp_path / "audit-logs")
    monkeypatch.setattr(run_db, "upsert_run", _no_postgres)
    monkeypatch.setattr(run_db, "get_run", _no_postgres)
    monkeypatch.setattr(run_db, "list_runs", _no_postgres)


@pytest.fixture
def session_dir(tmp_path):
    path = tmp_path / "session"
    path.mkdir()
    return path


@pytest.fixture
def make_task_input(session_dir):
    def _make(task: TaskName = TaskName.RECON, **overrides) -> TaskInput:
        fields = dict(
            task=task,
            target="10.0.0.5",
            session_id="test-session",
            output_dir=str(session_dir),
            pipeline_testing=True,
        )
        fields.update(overrides)
        return TaskInput(**fields)

    return _make


class RecordingCheckpoints:
    """Stands in for CheckpointManager; records which checkpoint calls were made."""

    def __init__(self):
        self.calls: list[tuple[str, str]] = []

    def create_checkpoint(self, task: str) -> bool:
        self.calls.append(("create", task))
        return True

    def commit(self, task: str) -> bool:
        self.calls.append(("commit", task))
        return True

    def rollback(self, task: str) -> bool:
        self.calls.append(("rollback", task))
        return True


@pytest.fixture
def checkpoints():
    return RecordingCheckpoints()
