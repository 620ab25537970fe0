from __future__ import annotations

import shutil
import subprocess

import pytest

from features.checkpoints import CheckpointManager

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def _subjects(path) -> list[str]:
    out = subprocess.run(
        ["git", "log", "--format=%s"], cwd=path, capture_output=True, text=True, check=True,
    ).stdout
    return out.splitlines()


def test_checkpoint_then_commit_records_both_revisions(tmp_path):
    mgr = CheckpointManager(tmp_path)
    assert mgr.create_checkpoint("recon") is True
    (tmp_path / "attack-surface.md").write_text("# Attack surface\n- ssh on 22\n")
    assert mgr.commit("recon") is True

    subjects = _subjects(tmp_path)
    assert subjects[0] == "completed-recon"
    assert subjects[1] == "checkpoint-before-recon"
    assert (tmp_path / ".gitignore").exists()


def test_rollback_restores_content_from_checkpoint(tmp_path):
    notes = tmp_path / "notes.md"
    notes.write_text("before")
    mgr = CheckpointManager(tmp_path)
    mgr.create_checkpoint("ssh-vuln")

    notes.write_text("half-written by a failed attempt")
    assert mgr.rollback("ssh-vuln") is True
    assert notes.read_text() == "before"


def test_rollback_uses_newest_checkpoint_for_the_task(tmp_path):
    notes = tmp_path / "notes.md"
    mgr = CheckpointManager(tmp_path)
    notes.write_text("v1")
    mgr.create_checkpoint("recon")
    notes.write_text("v2")
    mgr.commit("recon")
    mgr.create_checkpoint("recon")

    notes.write_text("v3")
    mgr.rollback("recon")
    assert notes.read_text() == "v2"


def test_rollback_keeps_audit_files(tmp_path):
    mgr = CheckpointManager(tmp_path)
    mgr.create_checkpoint("recon")
    (tmp_path / "session.log").write_text("[ts] [INFO ] [recon] started\n")
    (tmp_path / "session.json").write_text('{"tasks": {}}')

    mgr.rollback("recon")

    assert (tmp_path / "session.log").read_text().startswith("[ts]")
    assert (tmp_path / "session.json").exists()


def test_rollback_without_checkpoint_is_a_noop(tmp_path):
    assert CheckpointManager(tmp_path).rollback("recon") is False


def test_failures_are_reported_not_raised(tmp_path):
    not_a_dir = tmp_path / "file.txt"
    not_a_dir.write_text("x")
    mgr = CheckpointManager(not_a_dir)
    assert mgr.create_checkpoint("recon") is False
    assert mgr.commit("recon") is False
