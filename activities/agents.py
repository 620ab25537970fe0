"""
Default agent task — asks the model for a task's deliverables and writes them
into the session directory.

Producers (vulnerability analysis) that report no findings write no queue
file, so the paired exploitation task is skipped.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path

import config
from activities.deliverables import EXPECTED_DELIVERABLES, has_findings, resolve_deliverable_path
from features.audit import AgentLogger
from models.schemas import TaskExecutionResult, TaskInput, TaskRole, get_task
from utils.errors import ConfigError
from utils.files import atomic_write, file_has_content
from utils.llm import chat_json

log = logging.getLogger(__name__)

MAX_CONTEXT_FILE_CHARS = 8_000
MAX_CONTEXT_CHARS = 40_000

_ROLE_INSTRUCTIONS = {
    TaskRole.STANDALONE: "Produce the requested documents from the evidence provided.",
    TaskRole.PRODUCER: (
        "Analyze the evidence for vulnerabilities in the {domain} domain. List each finding "
        "with affected service, evidence and severity. If there are none, answer exactly "
        "'No vulnerabilities found.'"
    ),
    TaskRole.CONSUMER: (
        "For each queued {domain} finding, describe a reproducible proof-of-concept, the "
        "commands to run and the expected result. Stay inside the authorized scope."
    ),
}


def load_config_context(config_path: str | None) -> str:
    """Resolve an engagement config file to a serializable context string."""
    if not config_path:
        return ""
    path = Path(config_path)
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {config_path}")
    raw = path.read_text(encoding="utf-8", errors="replace")
    try:
        return json.dumps(json.loads(raw), indent=2)
    except json.JSONDecodeError:
        return raw


def build_connection_notes(task_input: TaskInput) -> str:
    port = task_input.ssh_port or config.DEFAULT_SSH_PORT
    if not task_input.ssh_user:
        return (
            "No SSH credentials provided. Perform unauthenticated testing only.\n"
            f"Target: {task_input.target}"
        )
    lines = [
        "SSH Connection Details:",
        f"  Host: {task_input.target}",
        f"  User: {task_input.ssh_user}",
        f"  Port: {port}",
    ]
    if task_input.ssh_key_path:
        lines.append(f"  Key: {task_input.ssh_key_path}")
    elif task_input.ssh_password:
        lines.append("  Auth: password-based (not shown)")
    return "\n".join(lines)


def gather_evidence(output_dir: str) -> str:
    """Concatenate earlier task outputs, newest sections last, capped in size."""
    root = Path(output_dir)
    parts: list[str] = []
    total = 0
    for sub in ("tool-outputs", "", "vuln-queues", "exploit-results"):
        folder = root / sub if sub else root
        if not folder.is_dir():
            continue
        for f in sorted(folder.glob("*")):
            if not f.is_file() or f.suffix not in (".md", ".txt"):
                continue
            content = f.read_text(errors="replace")[:MAX_CONTEXT_FILE_CHARS]
            section = f"### {f.relative_to(root)}\n```\n{content}\n```"
            if total + len(section) > MAX_CONTEXT_CHARS:
                return "\n\n".join(parts)
            parts.append(section)
            total += len(section)
    return "\n\n".join(parts)


def run_agent(task_input: TaskInput) -> TaskExecutionResult:
    task = get_task(task_input.task)
    start = time.monotonic()
    files = EXPECTED_DELIVERABLES[task.name]
    config_context = load_config_context(task_input.config_path)

    instruction = _ROLE_INSTRUCTIONS[task.role].format(domain=task.domain or "")
    system = (
        f"You are the '{task.name.value}' agent of an authorized penetration test. {instruction}\n\n"
        "Respond with JSON: an object whose keys are exactly these file names and whose values "
        f"are the markdown or text contents: {json.dumps(files)}"
    )
    user_parts = [
        f"## Target\n{task_input.target}",
        f"## Scope\n{task_input.scope or 'target host only'}",
        f"## Access\n{build_connection_notes(task_input)}",
    ]
    if config_context:
        user_parts.append(f"## Engagement Configuration\n```\n{config_context}\n```")
    if not task_input.pipeline_testing:
        user_parts.append(f"## Evidence So Far\n{gather_evidence(task_input.output_dir)}")

    user = "\n\n".join(user_parts)
    agent_log = AgentLogger(task_input.output_dir, task.name.value)
    agent_log.log_prompt(system + "\n\n" + user)

    log.info("Running agent %s against %s", task.name.value, task_input.target)
    try:
        documents, result = chat_json(
            system=system,
            user=user,
            max_tokens=1024 if task_input.pipeline_testing else 8192,
        )
    except Exception as e:
        agent_log.log_error(e)
        raise
    agent_log.log_response(result.content)

    artifacts: list[str] = []
    for filename in files:
        content = documents.get(filename)
        if not isinstance(content, str) or not content.strip():
            continue
        if task.role is TaskRole.PRODUCER and not has_findings(content):
            log.info("[%s] no findings reported", task.name.value)
            continue
        path = resolve_deliverable_path(task.name, task_input.output_dir, filename)
        if filename.endswith("-results.txt") and file_has_content(path):
            continue  # raw tool output is kept as-is
        atomic_write(path, content)
        artifacts.append(str(path))

    return TaskExecutionResult(
        cost=result.cost,
        input_tokens=result.input_tokens,
        output_tokens=result.output_tokens,
        turns=1,
        duration_sec=round(time.monotonic() - start, 2),
        artifacts=artifacts,
    )
