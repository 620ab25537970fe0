"""
Checkpoints feature — versioned snapshots of a task's working directory.

Public API:
    from features.checkpoints import CheckpointManager
"""

from features.checkpoints.manager import CheckpointManager

__all__ = ["CheckpointManager"]
