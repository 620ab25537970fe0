"""
Audit feature — crash-safe session and agent logs and a metrics snapshot per pipeline session.

Public API:
    from features.audit import AgentLogger, AuditSession, AuditLogger, MetricsTracker
"""

from features.audit.logger import AgentLogger, AuditLogger, WorkflowLogger
from features.audit.metrics import MetricsTracker
from features.audit.session import AuditSession, init_session_directory

__all__ = ["AgentLogger", "AuditLogger", "AuditSession", "MetricsTracker", "WorkflowLogger", "init_session_directory"]
