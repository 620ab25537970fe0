from __future__ import annotations

import json

import pytest

from activities import agents, tool_scan
from models.schemas import TaskName, ToolScanRequest
from utils.errors import ConfigError
from utils.llm import ChatResult, estimate_cost


class FakeChat:
    def __init__(self, documents: dict):
        self.documents = documents
        self.prompts: list[tuple[str, str]] = []

    def __call__(self, system, user, **kwargs):
        self.prompts.append((system, user))
        return self.documents, ChatResult(content="{}", input_tokens=10_000, output_tokens=2_000)


def test_agent_writes_deliverables_and_reports_cost(monkeypatch, make_task_input, session_dir):
    fake = FakeChat({
        "attack-surface.md": "# Attack surface\n- 22/tcp OpenSSH 8.2\n",
        "technology-stack.md": "# Stack\n- Ubuntu 20.04\n",
        "entry-points.md": "",
    })
    monkeypatch.setattr(agents, "chat_json", fake)

    result = agents.run_agent(make_task_input(TaskName.RECON, ssh_user="audit", ssh_password="secret"))

    assert (session_dir / "attack-surface.md").read_text().startswith("# Attack surface")
    assert not (session_dir / "entry-points.md").exists()
    assert len(result.artifacts) == 2
    assert result.cost == pytest.approx(estimate_cost(10_000, 2_000))
    system, user = fake.prompts[0]
    assert "attack-surface.md" in system
    assert "User: audit" in user
    assert "secret" not in user


def test_producer_without_findings_writes_no_queue(monkeypatch, make_task_input, session_dir):
    monkeypatch.setattr(agents, "chat_json", FakeChat({"vuln-queue-ssh.md": "# SSH\nNo vulnerabilities found.\n"}))
    result = agents.run_agent(make_task_input(TaskName.SSH_VULN))
    assert result.artifacts == []
    assert not (session_dir / "vuln-queues" / "vuln-queue-ssh.md").exists()


def test_raw_tool_output_is_not_overwritten(monkeypatch, make_task_input, session_dir):
    raw = session_dir / "tool-outputs" / "nmap-results.txt"
    raw.parent.mkdir(parents=True)
    raw.write_text("PORT   STATE SERVICE\n22/tcp open  ssh\n")
    monkeypatch.setattr(agents, "chat_json", FakeChat({"nmap-results.txt": "made up", "service-enumeration.md": "- ssh"}))

    agents.run_agent(make_task_input(TaskName.PRE_RECON))
    assert raw.read_text().startswith("PORT")
    assert (session_dir / "service-enumeration.md").exists()


def test_missing_config_file_is_a_config_error(make_task_input, tmp_path):
    with pytest.raises(ConfigError):
        agents.run_agent(make_task_input(TaskName.RECON, config_path=str(tmp_path / "missing.yaml")))


def test_config_context_is_normalized(tmp_path):
    cfg = tmp_path / "engagement.json"
    cfg.write_text('{"rules": {"avoid": ["10.0.0.1"]}}')
    assert '"avoid"' in agents.load_config_context(str(cfg))
    assert agents.load_config_context(None) == ""


def test_tool_scan_records_missing_tools(monkeypatch, session_dir):
    monkeypatch.setattr(tool_scan.shutil, "which", lambda name: None)
    written = tool_scan.run_tool_scan(ToolScanRequest(target="10.0.0.5", output_dir=str(session_dir)))

    assert set(written) == {"nmap", "ssh-audit", "nuclei"}
    assert (session_dir / "tool-outputs" / "nmap-results.txt").read_text() == "nmap: not installed\n"


def test_nmap_is_faster_in_testing_mode():
    fast = tool_scan.TOOL_COMMANDS["nmap"](ToolScanRequest("10.0.0.5", "/tmp", pipeline_testing=True))
    full = tool_scan.TOOL_COMMANDS["nmap"](ToolScanRequest("10.0.0.5", "/tmp"))
    assert "-F" in fast
    assert "-p-" in full


def test_agent_run_is_logged_under_agent_logs(monkeypatch, make_task_input, session_dir):
    monkeypatch.setattr(agents, "chat_json", FakeChat({"attack-surface.md": "- 22/tcp ssh"}))
    agents.run_agent(make_task_input(TaskName.RECON))

    logs = session_dir / "agent-logs"
    assert "[PROMPT] [recon] Prompt loaded" in (logs / "recon.log").read_text()
    events = [json.loads(line) for line in (logs / "recon-audit.jsonl").read_text().splitlines()]
    assert [e["type"] for e in events] == ["prompt", "response"]
    assert events[0]["promptLength"] > 0
    assert events[1]["preview"] == "{}"


def test_model_failure_is_logged_and_raised(monkeypatch, make_task_input, session_dir):
    def unavailable(**kwargs):
        raise RuntimeError("503 Service Unavailable")

    monkeypatch.setattr(agents, "chat_json", unavailable)
    with pytest.raises(RuntimeError):
        agents.run_agent(make_task_input(TaskName.SSH_VULN))

    events = (session_dir / "agent-logs" / "ssh-vuln-audit.jsonl").read_text().splitlines()
    last = json.loads(events[-1])
    assert last["type"] == "error"
    assert last["errorName"] == "RuntimeError"
    assert "503" in last["errorMessage"]
