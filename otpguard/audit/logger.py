"""
Audit Logger
=============
Best-effort audit logging: a failure here is logged locally and never
reaches the caller or rolls back the action being audited.
"""

import re
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import structlog

from .event_types import ActorType, AuditEventType
from .models import AuditEvent, RequestContext
from .sinks import AuditSink

logger = structlog.get_logger(__name__)

GeoLookup = Callable[[str], Awaitable[Optional[Dict[str, Any]]]]

_PII_PATTERNS = [
    re.compile(r'\+?\d{10,15}'),  # Phone numbers
    re.compile(r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}'),  # Emails
]


def _looks_like_pii(value: str) -> bool:
    """Check if a string looks like PII."""
    if not isinstance(value, str) or len(value) < 5:
        return False
    return any(p.fullmatch(value) for p in _PII_PATTERNS)


def _safe_mask(value: str, keep_last: int = 4) -> str:
    """Mask a value, keeping only the last N characters."""
    if not value or len(value) <= keep_last:
        return "***"
    return "***" + value[-keep_last:]


def sanitize_metadata(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Mask any detected PII in metadata values."""
    if not metadata:
        return {}
    sanitized = {}
    for k, v in metadata.items():
        if isinstance(v, str) and _looks_like_pii(v):
            sanitized[k] = _safe_mask(v)
        elif isinstance(v, dict):
            sanitized[k] = sanitize_metadata(v)
        else:
            sanitized[k] = v
    return sanitized


class AuditLogger:
    """
    High-level audit logging interface.

    Every call is best-effort: ``record`` and ``log`` return False instead
    of raising when the sink or the optional geolocation lookup fails.
    """

    def __init__(self, sink: AuditSink, geo_lookup: Optional[GeoLookup] = None):
        self.sink = sink
        self.geo_lookup = geo_lookup

    async def record(self, event: AuditEvent) -> bool:
        """
        Write an event to the sink.

        Returns:
            True if the sink accepted the event
        """
        try:
            await self.sink.write(event)
        except Exception as e:
            logger.error(
                "Audit event dropped",
                event_id=event.id,
                event_type=event.event_type,
                error=str(e),
            )
            return False

        logger.debug(
            "Audit event logged",
            event_id=event.id,
            event_type=event.event_type,
        )
        return True

    async def _geolocate(self, ip: Optional[str]) -> Optional[Dict[str, Any]]:
        if not self.geo_lookup or not ip:
            return None
        try:
            return await self.geo_lookup(ip)
        except Exception as e:
            logger.debug("Geolocation unavailable", error=str(e))
            return None

    async def log(
        self,
        event_type: Union[AuditEventType, str],
        actor_type: Union[ActorType, str] = ActorType.ANONYMOUS,
        actor_id: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        changes: Optional[Dict[str, Dict[str, Any]]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        context: Optional[RequestContext] = None,
    ) -> bool:
        """
        Build and record an audit event.

        Args:
            event_type: Type of event
            actor_type: Type of actor
            actor_id: ID of the actor
            target_type: Type of affected resource
            target_id: ID of affected resource
            changes: Field changes as {field: {"old": ..., "new": ...}}
            metadata: Additional event data (PII is masked)
            context: Client IP and user agent

        Returns:
            True if the event was recorded
        """
        try:
            context = context or RequestContext()
            event_metadata = sanitize_metadata(metadata)

            geo = await self._geolocate(context.ip)
            if geo:
                event_metadata["geo"] = geo

            event = AuditEvent(
                event_type=getattr(event_type, "value", event_type),
                actor_type=getattr(actor_type, "value", actor_type),
                actor_id=actor_id,
                target_type=target_type,
                target_id=target_id,
                changes=changes,
                metadata=event_metadata,
                ip=context.ip,
                user_agent=context.user_agent,
            )
        except Exception as e:
            logger.error("Audit event could not be built", event_type=str(event_type), error=str(e))
            return False

        return await self.record(event)
