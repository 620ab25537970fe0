"""
File I/O helpers — atomic writes and content checks.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)


def atomic_write(path: str | Path, content: str) -> None:
    """Write `content` to a temp file beside `path`, then rename it over `path`.

    Readers see either the previous complete file or the new complete file.
    The temp file is removed if anything fails before the rename.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(f"{target.name}.tmp.{os.getpid()}.{threading.get_ident()}")
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)
    except BaseException:
        try:
            tmp.unlink(missing_ok=True)
        except OSError:
            pass
        raise


def atomic_write_json(path: str | Path, data: Any) -> None:
    atomic_write(path, json.dumps(data, indent=2, default=str))


def read_json(path: str | Path) -> Any | None:
    """Load a JSON file, or None if it is missing or unreadable."""
    p = Path(path)
    if not p.exists():
        return None
    try:
        with open(p, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        log.warning("Could not read %s: %s", p, e)
        return None


def file_has_content(path: str | Path) -> bool:
    """True if the file exists and is not blank."""
    try:
        return bool(Path(path).read_text(encoding="utf-8", errors="replace").strip())
    except OSError:
        return False
