"""Audit trail.

Every meaningful action is recorded as an ``ActivityLog`` row carrying a
SHA-256 checksum over the canonical event, so later tampering with a row
can be detected.
"""

import hashlib
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from medilocker.core.database import session_scope
from medilocker.core.exceptions import MedilockerError
from medilocker.models.activity_log import ActivityLog
from medilocker.utils.logging import get_logger
from medilocker.utils.time import utcnow

logger = get_logger(__name__)


class AuditAction(str, Enum):
    """Audited actions."""

    RECORD_UPLOADED = "record_uploaded"
    RECORD_VERSION_ADDED = "record_version_added"
    RECORD_ARCHIVED = "record_archived"
    RECORD_DOWNLOADED = "record_downloaded"
    ACCESS_REQUEST_CREATED = "access_request_created"
    ACCESS_REQUEST_APPROVED = "access_request_approved"
    ACCESS_REQUEST_DENIED = "access_request_denied"
    ACCESS_REVOKED = "access_revoked"
    ACCESS_EXPIRED = "access_expired"
    DOCTOR_ENDORSED = "doctor_endorsed"


@dataclass
class AuditEvent:
    """One auditable action."""

    actor_id: str
    actor_role: str
    action: AuditAction
    resource_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)


def calculate_checksum(
    occurred_at: datetime,
    actor_id: str,
    actor_role: str,
    action: str,
    resource_id: Optional[str],
    details: Dict[str, Any],
) -> str:
    """Calculate tamper-proof checksum for an audit entry."""
    data = f"{occurred_at.isoformat()}{actor_id}{actor_role}{action}{resource_id or ''}"
    data += json.dumps(details, sort_keys=True, default=str)
    return hashlib.sha256(data.encode()).hexdigest()


class AuditSink(ABC):
    """Receives audit events. Recording is best-effort."""

    def record(self, event: AuditEvent) -> bool:
        """Record an event, logging instead of raising on failure.

        Returns:
            True if the event was persisted
        """
        try:
            self._persist(event)
        except (SQLAlchemyError, MedilockerError, OSError) as e:
            logger.error(
                "audit_record_failed",
                action=event.action.value,
                resource_id=event.resource_id,
                error=str(e),
            )
            return False
        return True

    @abstractmethod
    def _persist(self, event: AuditEvent) -> None:
        """Persist one event; may raise."""


class DatabaseAuditTrail(AuditSink):
    """Audit sink writing ``activity_logs`` rows."""

    def __init__(self, session_factory: sessionmaker):
        """Initialize the audit trail."""
        self.session_factory = session_factory

    def _persist(self, event: AuditEvent) -> None:
        with session_scope(self.session_factory) as session:
            session.add(
                ActivityLog(
                    actor_id=event.actor_id,
                    actor_role=event.actor_role,
                    action=event.action.value,
                    resource_id=event.resource_id,
                    details=dict(event.details),
                    created_at=event.occurred_at,
                    checksum=calculate_checksum(
                        event.occurred_at,
                        event.actor_id,
                        event.actor_role,
                        event.action.value,
                        event.resource_id,
                        event.details,
                    ),
                )
            )

    def list_for_resource(self, resource_id: str) -> List[ActivityLog]:
        """List entries about one resource, oldest first."""
        with session_scope(self.session_factory) as session:
            return list(
                session.scalars(
                    select(ActivityLog)
                    .where(ActivityLog.resource_id == resource_id)
                    .order_by(ActivityLog.created_at, ActivityLog.id)
                )
            )

    def list_for_actor(self, actor_id: str, limit: int = 100) -> List[ActivityLog]:
        """List an actor's entries, newest first."""
        with session_scope(self.session_factory) as session:
            return list(
                session.scalars(
                    select(ActivityLog)
                    .where(ActivityLog.actor_id == actor_id)
                    .order_by(ActivityLog.created_at.desc())
                    .limit(limit)
                )
            )

    @staticmethod
    def verify_integrity(entry: ActivityLog) -> bool:
        """Check a stored entry against its checksum."""
        expected = calculate_checksum(
            entry.created_at,
            entry.actor_id,
            entry.actor_role,
            entry.action,
            entry.resource_id,
            entry.details or {},
        )
        return expected == entry.checksum


class NullAuditSink(AuditSink):
    """Sink that drops every event."""

    def _persist(self, event: AuditEvent) -> None:
        logger.debug("audit_event_dropped", action=event.action.value)
