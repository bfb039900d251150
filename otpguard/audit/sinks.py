"""
Audit Sinks
===========
Destinations for audit events.
"""

from typing import List, Protocol

import structlog

from otpguard.database import SessionFactory, transaction
from .models import AuditEvent
from .tables import AuditLogRow

logger = structlog.get_logger(__name__)


class AuditSink(Protocol):
    """Accepts audit events; may raise on failure."""

    async def write(self, event: AuditEvent) -> None:
        ...


class SqlAuditSink:
    """Appends events to the audit_logs table."""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    async def write(self, event: AuditEvent) -> None:
        async with transaction(self.session_factory, "audit.write") as session:
            session.add(AuditLogRow(
                id=event.id,
                event_type=event.event_type,
                actor_type=event.actor_type,
                actor_id=event.actor_id,
                target_type=event.target_type,
                target_id=event.target_id,
                changes=event.changes or None,
                event_metadata=event.metadata or None,
                ip_address=event.ip,
                user_agent=event.user_agent,
                created_at=event.created_at,
            ))


class LogAuditSink:
    """Writes events to the structured application log."""

    async def write(self, event: AuditEvent) -> None:
        logger.info("audit_event", **event.to_dict())


class MemoryAuditSink:
    """
    Keeps events in a list.

    For development and testing only.
    """

    def __init__(self):
        self.events: List[AuditEvent] = []

    async def write(self, event: AuditEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type) -> List[AuditEvent]:
        value = getattr(event_type, "value", event_type)
        return [e for e in self.events if e.event_type == value]
