"""
Runs feature — history of pipeline sessions.

Public API:
    from features.runs import save_run, load_run, list_runs
    from features.runs import db as run_db
"""

from features.runs.store import list_runs, load_run, save_run

__all__ = ["list_runs", "load_run", "save_run"]
