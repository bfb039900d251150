"""
Audit Models
=============
Data models for audit log entries.
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict, field

from .event_types import ActorType


@dataclass(frozen=True)
class RequestContext:
    """Client details captured at the HTTP edge."""
    ip: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class AuditEvent:
    """An immutable audit log entry."""
    event_type: str
    actor_type: str = ActorType.ANONYMOUS.value
    actor_id: Optional[str] = None
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    changes: Optional[Dict[str, Dict[str, Any]]] = None  # field -> {old, new}
    metadata: Dict[str, Any] = field(default_factory=dict)
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        d = asdict(self)
        d['created_at'] = self.created_at.isoformat()
        return d
