"""
Git checkpoints for a session's working directory.

Before each task attempt a `checkpoint-before-<task>` commit is recorded; on
success a `completed-<task>` commit follows, on failure the content captured
by the newest matching checkpoint is restored. Every commit is a new revision,
nothing is amended or overwritten.

All operations are best-effort: failures are logged and reported through the
boolean return value, never raised. Operations against one working tree are
serialized so concurrent tasks cannot interleave index updates.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from pathlib import Path

log = logging.getLogger(__name__)

# Audit files and raw agent logs must survive a rollback.
GITIGNORE = """\
session.log
workflow.log
session.json
*.tmp.*
agent-logs/
"""

_GIT_IDENTITY = ("-c", "user.name=pentest-pilot", "-c", "user.email=pentest-pilot@localhost")

_tree_locks: dict[str, threading.Lock] = {}
_tree_locks_guard = threading.Lock()


def _lock_for(work_dir: Path) -> threading.Lock:
    key = str(work_dir.resolve())
    with _tree_locks_guard:
        return _tree_locks.setdefault(key, threading.Lock())


class CheckpointManager:
    def __init__(self, work_dir: str | Path):
        self.work_dir = Path(work_dir)
        self._lock = _lock_for(self.work_dir)

    def init(self) -> None:
        """Initialize the repository with an empty baseline commit, if needed."""
        if (self.work_dir / ".git").exists():
            return
        self.work_dir.mkdir(parents=True, exist_ok=True)
        self._git("init", "-q")
        gitignore = self.work_dir / ".gitignore"
        if not gitignore.exists():
            gitignore.write_text(GITIGNORE)
        self._git("add", "-A")
        self._git("commit", "-q", "--allow-empty", "-m", "Initial checkpoint")

    def create_checkpoint(self, task: str) -> bool:
        with self._lock:
            try:
                self.init()
                self._git("add", "-A")
                self._git("commit", "-q", "--allow-empty", "-m", f"checkpoint-before-{task}")
                return True
            except Exception as e:
                log.warning("[CHECKPOINT] create failed for %s: %s", task, e)
                return False

    def commit(self, task: str) -> bool:
        with self._lock:
            try:
                self._git("add", "-A")
                self._git("commit", "-q", "--allow-empty", "-m", f"completed-{task}")
                return True
            except Exception as e:
                log.warning("[CHECKPOINT] commit failed for %s: %s", task, e)
                return False

    def rollback(self, task: str) -> bool:
        """Restore the tracked content captured by the newest checkpoint for `task`.

        Files added later by other tasks are left in place. No-op without a
        matching checkpoint.
        """
        with self._lock:
            try:
                sha = self.find_checkpoint(task)
                if not sha:
                    log.info("[CHECKPOINT] no checkpoint for %s, nothing to roll back", task)
                    return False
                self._git("checkout", sha, "--", ".")
                log.info("[CHECKPOINT] rolled back %s to %s", task, sha[:8])
                return True
            except Exception as e:
                log.warning("[CHECKPOINT] rollback failed for %s: %s", task, e)
                return False

    def find_checkpoint(self, task: str) -> str | None:
        if not (self.work_dir / ".git").exists():
            return None
        out = self._git(
            "log", "-1", "--format=%H", "--fixed-strings",
            f"--grep=checkpoint-before-{task}",
        )
        return out.strip() or None

    def _git(self, *args: str) -> str:
        """Run a git command in the working directory; raises on a non-zero exit."""
        result = subprocess.run(
            ["git", *_GIT_IDENTITY, *args],
            capture_output=True,
            text=True,
            cwd=self.work_dir,
            timeout=30,
        )
        if result.returncode != 0:
            raise RuntimeError(f"git {' '.join(args)} failed: {result.stderr.strip()}")
        return result.stdout
