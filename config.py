"""
Configuration — loads settings from environment / .env file.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
PROJECT_ROOT = Path(__file__).parent
AUDIT_LOGS_DIR = Path(os.getenv("AUDIT_LOGS_DIR", str(PROJECT_ROOT / "audit-logs")))
PIPELINE_RUNS_DIR = Path(os.getenv("PIPELINE_RUNS_DIR", str(PROJECT_ROOT / "pipeline_runs")))

# OpenAI (default agent task content)
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4.1")
INPUT_COST_PER_1M = float(os.getenv("INPUT_COST_PER_1M", "2.0"))   # USD
OUTPUT_COST_PER_1M = float(os.getenv("OUTPUT_COST_PER_1M", "8.0"))  # USD

# Postgres (run history, optional)
DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://localhost:5432/pentest_pilot")

# Temporal
TEMPORAL_HOST = os.getenv("TEMPORAL_HOST", "localhost:7233")
TEMPORAL_TASK_QUEUE = "pentest-pipeline"
TEMPORAL_NAMESPACE = "default"
MAX_CONCURRENT_ACTIVITIES = int(os.getenv("MAX_CONCURRENT_ACTIVITIES", "25"))

# Timing
HEARTBEAT_INTERVAL_SEC = float(os.getenv("HEARTBEAT_INTERVAL_SEC", "2"))
HEARTBEAT_TIMEOUT_SEC = int(os.getenv("HEARTBEAT_TIMEOUT_SEC", "30"))
TASK_TIMEOUT_MIN = int(os.getenv("TASK_TIMEOUT_MIN", "45"))
WORKFLOW_TIMEOUT_HOURS = int(os.getenv("WORKFLOW_TIMEOUT_HOURS", "4"))
TOOL_TIMEOUT_SEC = int(os.getenv("TOOL_TIMEOUT_SEC", "600"))

# Retry policy (applied by Temporal, or by the in-process runner)
RETRY_MAX_ATTEMPTS = int(os.getenv("RETRY_MAX_ATTEMPTS", "3"))
RETRY_INITIAL_INTERVAL_SEC = float(os.getenv("RETRY_INITIAL_INTERVAL_SEC", "10"))
RETRY_BACKOFF = float(os.getenv("RETRY_BACKOFF", "2.0"))
RETRY_MAX_INTERVAL_SEC = float(os.getenv("RETRY_MAX_INTERVAL_SEC", "120"))

# Error messages crossing the Temporal boundary are capped at this many characters
MAX_ERROR_LENGTH = 5_000
# Shorter cap for errors stored in the metrics snapshot
METRICS_ERROR_LENGTH = 500

DEFAULT_SSH_PORT = 22
