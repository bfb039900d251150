"""
Audit Logging Module
====================
Append-only, best-effort security audit trail.
"""

from .event_types import AuditEventType, ActorType
from .models import AuditEvent, RequestContext
from .sinks import AuditSink, SqlAuditSink, LogAuditSink, MemoryAuditSink
from .logger import AuditLogger, sanitize_metadata

__all__ = [
    # Event Types
    "AuditEventType",
    "ActorType",
    # Models
    "AuditEvent",
    "RequestContext",
    # Sinks
    "AuditSink",
    "SqlAuditSink",
    "LogAuditSink",
    "MemoryAuditSink",
    # Logger
    "AuditLogger",
    "sanitize_metadata",
]
