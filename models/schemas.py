"""
Data models for the pentest pipeline.

Plain dataclasses and str enums so Temporal's default data converter can
carry them between the workflow, activities and clients.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# Vulnerability domains, in launch order.
DOMAINS: tuple[str, ...] = (
    "ssh",
    "privesc",
    "network",
    "misconfig",
    "credential",
    "rdp",
    "vnc",
)


class TaskRole(str, Enum):
    PRODUCER = "producer"
    CONSUMER = "consumer"
    STANDALONE = "standalone"


class TaskName(str, Enum):
    PRE_RECON = "pre-recon"
    RECON = "recon"
    SSH_VULN = "ssh-vuln"
    PRIVESC_VULN = "privesc-vuln"
    NETWORK_VULN = "network-vuln"
    MISCONFIG_VULN = "misconfig-vuln"
    CREDENTIAL_VULN = "credential-vuln"
    RDP_VULN = "rdp-vuln"
    VNC_VULN = "vnc-vuln"
    SSH_EXPLOIT = "ssh-exploit"
    PRIVESC_EXPLOIT = "privesc-exploit"
    NETWORK_EXPLOIT = "network-exploit"
    MISCONFIG_EXPLOIT = "misconfig-exploit"
    CREDENTIAL_EXPLOIT = "credential-exploit"
    RDP_EXPLOIT = "rdp-exploit"
    VNC_EXPLOIT = "vnc-exploit"
    REPORT = "report"


class PipelineStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ErrorKind(str, Enum):
    AUTH_ERROR = "auth_error"
    CONFIG_ERROR = "config_error"
    TARGET_UNREACHABLE = "target_unreachable"
    CONNECTION_ERROR = "connection_error"
    PERMISSION_DENIED = "permission_denied"
    TOOL_NOT_FOUND = "tool_not_found"
    TIMEOUT_ERROR = "timeout_error"
    RATE_LIMIT = "rate_limit"
    TRANSIENT_ERROR = "transient_error"
    EXECUTION_ERROR = "execution_error"
    VALIDATION_ERROR = "validation_error"
    UNKNOWN_ERROR = "unknown_error"


@dataclass(frozen=True)
class Task:
    """A schedulable unit of work in the pipeline."""
    name: TaskName
    domain: str | None
    role: TaskRole


def _build_tasks() -> dict[TaskName, Task]:
    tasks = {
        TaskName.PRE_RECON: Task(TaskName.PRE_RECON, None, TaskRole.STANDALONE),
        TaskName.RECON: Task(TaskName.RECON, None, TaskRole.STANDALONE),
        TaskName.REPORT: Task(TaskName.REPORT, None, TaskRole.STANDALONE),
    }
    for domain in DOMAINS:
        vuln = TaskName(f"{domain}-vuln")
        exploit = TaskName(f"{domain}-exploit")
        tasks[vuln] = Task(vuln, domain, TaskRole.PRODUCER)
        tasks[exploit] = Task(exploit, domain, TaskRole.CONSUMER)

    missing = set(TaskName) - set(tasks)
    if missing:
        raise RuntimeError(f"Tasks without a definition: {sorted(m.value for m in missing)}")
    return tasks


TASKS: dict[TaskName, Task] = _build_tasks()


def get_task(name: TaskName) -> Task:
    return TASKS[TaskName(name)]


def producer_for(domain: str) -> TaskName:
    return TaskName(f"{domain}-vuln")


def consumer_for(domain: str) -> TaskName:
    return TaskName(f"{domain}-exploit")


@dataclass
class ErrorRecord:
    """Classification of a raised fault."""
    kind: ErrorKind
    retryable: bool
    message: str = ""
    cause: str | None = None  # exception class name


# ── Inputs ────────────────────────────────────────────────────────────

@dataclass
class PipelineInput:
    """Input to the pentest pipeline workflow."""
    target: str
    ssh_user: str | None = None
    ssh_key_path: str | None = None
    ssh_password: str | None = None
    ssh_port: int | None = None
    scope: str | None = None  # network CIDR
    config_path: str | None = None
    output_dir: str | None = None
    pipeline_testing: bool = False  # fast iteration mode, minimal prompts and scans
    workflow_id: str | None = None
    domains: list[str] | None = None  # subset of DOMAINS, default all


@dataclass
class TaskInput:
    """Input for a single task attempt. Built once per run; per-task copies override `task`."""
    task: TaskName
    target: str
    session_id: str
    output_dir: str
    ssh_user: str | None = None
    ssh_key_path: str | None = None
    ssh_password: str | None = None
    ssh_port: int | None = None
    scope: str | None = None
    config_path: str | None = None
    pipeline_testing: bool = False


@dataclass
class ToolScanRequest:
    target: str
    output_dir: str
    scope: str | None = None
    ssh_port: int | None = None
    pipeline_testing: bool = False


@dataclass
class ReportRequest:
    session_id: str
    target: str
    output_dir: str
    metrics: list[Metrics] = field(default_factory=list)


# ── Results ───────────────────────────────────────────────────────────

@dataclass
class TaskExecutionResult:
    """What a task callable returns on success."""
    cost: float = 0.0  # USD
    input_tokens: int = 0
    output_tokens: int = 0
    turns: int = 0
    duration_sec: float = 0.0
    artifacts: list[str] = field(default_factory=list)


@dataclass
class Metrics:
    """Metrics collected per task attempt."""
    task: TaskName
    duration_sec: float = 0.0
    cost: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    turns: int = 0
    attempts: int = 1
    success: bool = False
    error: str | None = None


@dataclass
class TaskOutcome:
    """Terminal result of one task attempt."""
    task: TaskName
    success: bool
    metrics: Metrics
    deliverables: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class TaskEvent:
    task: TaskName
    event: str  # started, completed, failed, skipped
    timestamp: str
    duration_sec: float | None = None
    cost: float | None = None


# ── Pipeline state ────────────────────────────────────────────────────

@dataclass
class PipelineState:
    """Session-scoped aggregate maintained by the orchestrator."""
    session_id: str
    target: str
    output_dir: str = ""
    current_phase: str = "Initializing"
    current_task: TaskName | None = None
    active_tasks: list[TaskName] = field(default_factory=list)
    completed_tasks: list[TaskName] = field(default_factory=list)
    failed_tasks: list[TaskName] = field(default_factory=list)
    skipped_tasks: list[TaskName] = field(default_factory=list)
    events: list[TaskEvent] = field(default_factory=list)
    metrics: list[Metrics] = field(default_factory=list)
    started_at: str = ""
    ended_at: str | None = None
    total_cost: float = 0.0
    status: PipelineStatus = PipelineStatus.RUNNING
    errors: list[str] = field(default_factory=list)


@dataclass
class PipelineProgress:
    """Read-only snapshot returned by the progress query."""
    session_id: str
    target: str
    status: PipelineStatus
    current_phase: str
    current_task: TaskName | None
    active_tasks: list[TaskName]
    completed_tasks: list[TaskName]
    failed_tasks: list[TaskName]
    skipped_tasks: list[TaskName]
    events: list[TaskEvent]
    metrics: list[Metrics]
    total_cost: float
    elapsed_sec: float
    errors: list[str]


def resolve_domains(domains: list[str] | None) -> list[str]:
    """Requested domains in launch order; all of them when none are given."""
    if not domains:
        return list(DOMAINS)
    unknown = [d for d in domains if d not in DOMAINS]
    if unknown:
        raise ValueError(f"Unknown domains: {', '.join(unknown)} (expected any of {', '.join(DOMAINS)})")
    return [d for d in DOMAINS if d in domains]
