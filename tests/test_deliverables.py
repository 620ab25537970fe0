from __future__ import annotations

import logging

from activities.deliverables import (
    EXPECTED_DELIVERABLES,
    has_findings,
    resolve_deliverable_path,
    validate_deliverables,
)
from models.schemas import TaskName


def test_every_task_has_expected_deliverables():
    assert set(EXPECTED_DELIVERABLES) == set(TaskName)


def test_paths_land_in_session_subfolders(session_dir):
    assert resolve_deliverable_path(TaskName.SSH_VULN, session_dir, "vuln-queue-ssh.md") == \
        session_dir / "vuln-queues" / "vuln-queue-ssh.md"
    assert resolve_deliverable_path(TaskName.SSH_EXPLOIT, session_dir, "exploit-results-ssh.md") == \
        session_dir / "exploit-results" / "exploit-results-ssh.md"
    assert resolve_deliverable_path(TaskName.REPORT, session_dir, "pentest-report.md") == \
        session_dir / "reports" / "pentest-report.md"
    assert resolve_deliverable_path(TaskName.PRE_RECON, session_dir, "nmap-results.txt") == \
        session_dir / "tool-outputs" / "nmap-results.txt"
    assert resolve_deliverable_path(TaskName.RECON, session_dir, "attack-surface.md") == \
        session_dir / "attack-surface.md"


def test_only_existing_non_empty_files_are_returned(session_dir, caplog):
    (session_dir / "attack-surface.md").write_text("# Attack surface\n- 22/tcp ssh\n")
    (session_dir / "technology-stack.md").write_text("   \n")

    with caplog.at_level(logging.WARNING):
        found = validate_deliverables(TaskName.RECON, session_dir)

    assert found == [str(session_dir / "attack-surface.md")]
    assert "technology-stack.md" in caplog.text
    assert "entry-points.md" in caplog.text


def test_has_findings():
    assert has_findings("# SSH queue\n\n- Weak KEX algorithms on 22/tcp (medium)\n")
    assert not has_findings("# SSH queue\n\nNo vulnerabilities found.\n")
    assert not has_findings("# Heading only\n---\n")
    assert not has_findings("")
