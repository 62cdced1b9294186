"""Audit trail."""

from medilocker.audit.audit_service import (
    AuditAction,
    AuditEvent,
    AuditSink,
    DatabaseAuditTrail,
    NullAuditSink,
    calculate_checksum,
)

__all__ = [
    "AuditAction",
    "AuditEvent",
    "AuditSink",
    "DatabaseAuditTrail",
    "NullAuditSink",
    "calculate_checksum",
]
