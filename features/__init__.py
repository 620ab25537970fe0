"""
Features package — each sub-package encapsulates a self-contained feature.

Convention:
  features/<feature_name>/
    __init__.py      — public API re-exports
    models.py        — data models specific to this feature (if applicable)
    db.py            — database layer (if applicable)
    ...              — any other feature-specific modules

Features:
  audit        — crash-safe session log and atomically persisted metrics snapshot
  checkpoints  — git checkpoints of a session's working directory
  runs         — pipeline run history (JSON files, Postgres when available)
"""
