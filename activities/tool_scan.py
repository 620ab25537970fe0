"""
Pre-reconnaissance tool scans — runs the external scanners that are installed
and stores their raw output under tool-outputs/.

A scanner that is missing, fails or times out is recorded in its output file;
the scan as a whole never raises.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Callable

import config
from models.schemas import ToolScanRequest

log = logging.getLogger(__name__)


def _nmap(req: ToolScanRequest) -> list[str]:
    if req.pipeline_testing:
        return ["nmap", "-Pn", "-F", req.target]
    return ["nmap", "-Pn", "-sV", "-sC", "-T4", "-p-", req.target]


def _ssh_audit(req: ToolScanRequest) -> list[str]:
    return ["ssh-audit", "-p", str(req.ssh_port or config.DEFAULT_SSH_PORT), req.target]


def _nuclei(req: ToolScanRequest) -> list[str]:
    return ["nuclei", "-silent", "-u", req.target]


TOOL_COMMANDS: dict[str, Callable[[ToolScanRequest], list[str]]] = {
    "nmap": _nmap,
    "ssh-audit": _ssh_audit,
    "nuclei": _nuclei,
}


def run_tool(tool: str, argv: list[str], cwd: Path, timeout: int) -> str:
    """Run one scanner and return its combined output, or a description of why it produced none."""
    if shutil.which(argv[0]) is None:
        log.warning("%s is not installed, skipping", tool)
        return f"{tool}: not installed\n"
    log.info("Running %s", " ".join(argv))
    try:
        proc = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            cwd=str(cwd),
            timeout=timeout,
        )
        return proc.stdout + proc.stderr
    except subprocess.TimeoutExpired:
        log.error("%s timed out after %ds", tool, timeout)
        return f"{tool}: timed out after {timeout}s\n"
    except Exception as e:
        log.error("%s failed: %s", tool, e)
        return f"{tool}: failed: {e}\n"


def run_tool_scan(
    req: ToolScanRequest,
    on_progress: Callable[[str], None] | None = None,
) -> dict[str, str]:
    """Run every known scanner. Returns {tool: output file path}."""
    out_dir = Path(req.output_dir) / "tool-outputs"
    out_dir.mkdir(parents=True, exist_ok=True)
    timeout = 120 if req.pipeline_testing else config.TOOL_TIMEOUT_SEC

    written: dict[str, str] = {}
    for tool, build in TOOL_COMMANDS.items():
        if on_progress:
            on_progress(tool)
        output = run_tool(tool, build(req), out_dir, timeout)
        path = out_dir / f"{tool}-results.txt"
        path.write_text(output)
        written[tool] = str(path)
    return written
