"""
Audit Sinks

One-way destinations for audit events. Emitting never changes the outcome of
the operation that produced the event: sink failures are logged and dropped.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .store import AUDIT_LOG, DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    action: str
    actor_id: str
    subject_id: str
    timestamp: datetime
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "actorId": self.actor_id,
            "subjectId": self.subject_id,
            "timestamp": self.timestamp.isoformat(),
            "details": dict(self.details),
        }


class AuditSink:
    def emit(self, event: AuditEvent) -> None:
        raise NotImplementedError


class LoggingAuditSink(AuditSink):
    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logging.getLogger("financing_engine.audit.events")

    def emit(self, event: AuditEvent) -> None:
        self._log.info(
            f"AUDIT {event.action} actor={event.actor_id} subject={event.subject_id} details={event.details}"
        )


class StoreAuditSink(AuditSink):
    """Appends each event to the audit_log collection as a create-only record."""

    def __init__(self, store: DocumentStore):
        self._store = store

    def emit(self, event: AuditEvent) -> None:
        key = f"{int(event.timestamp.timestamp() * 1000)}_{event.action}_{uuid.uuid4().hex[:8]}"
        self._store.set(AUDIT_LOG, key, event.to_dict())


def safe_emit(sink: Optional[AuditSink], event: AuditEvent) -> None:
    if sink is None:
        return
    try:
        sink.emit(event)
    except Exception as e:
        logger.error(f"Audit sink failed for {event.action} on {event.subject_id}: {e}", exc_info=True)
