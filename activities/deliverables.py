"""
Deliverable validation — checks the artifacts each task is expected to leave
in the session directory.
"""

from __future__ import annotations

import logging
from pathlib import Path

from models.schemas import DOMAINS, TaskName
from utils.files import file_has_content

log = logging.getLogger(__name__)


def _expected() -> dict[TaskName, list[str]]:
    expected = {
        TaskName.PRE_RECON: ["nmap-results.txt", "ssh-audit-results.txt", "service-enumeration.md"],
        TaskName.RECON: ["attack-surface.md", "technology-stack.md", "entry-points.md"],
        TaskName.REPORT: ["pentest-report.md"],
    }
    for domain in DOMAINS:
        expected[TaskName(f"{domain}-vuln")] = [f"vuln-queue-{domain}.md"]
        expected[TaskName(f"{domain}-exploit")] = [f"exploit-results-{domain}.md"]
    return expected


EXPECTED_DELIVERABLES: dict[TaskName, list[str]] = _expected()

_NO_FINDINGS = "no vulnerabilities found."


def resolve_deliverable_path(task: TaskName, output_dir: str | Path, filename: str) -> Path:
    """Map a deliverable file name to its location inside the session directory."""
    root = Path(output_dir)
    if filename.startswith("vuln-queue-"):
        return root / "vuln-queues" / filename
    if filename.startswith("exploit-results-"):
        return root / "exploit-results" / filename
    if filename in ("pentest-report.md", "executive-summary.md"):
        return root / "reports" / filename
    if filename.endswith("-results.txt") and task in (TaskName.PRE_RECON, TaskName.RECON):
        return root / "tool-outputs" / filename
    return root / filename


def validate_deliverables(task: TaskName, output_dir: str | Path) -> list[str]:
    """Return the paths of expected deliverables that exist and are non-empty.

    Missing ones are logged, never raised.
    """
    task = TaskName(task)
    found: list[str] = []
    missing: list[str] = []
    for filename in EXPECTED_DELIVERABLES.get(task, []):
        path = resolve_deliverable_path(task, output_dir, filename)
        if file_has_content(path):
            found.append(str(path))
        else:
            missing.append(filename)

    if missing:
        log.warning("[%s] Missing deliverables: %s", task.value, ", ".join(missing))
    return found


def has_findings(queue_text: str) -> bool:
    """True if a vulnerability queue holds anything besides headings and the no-findings marker."""
    for line in queue_text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or stripped.startswith("---"):
            continue
        if stripped.lower() == _NO_FINDINGS:
            continue
        return True
    return False
