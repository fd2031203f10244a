"""Audit trail for pipeline decisions, agent actions and validation outcomes."""

from storyloom.audit.trail import (
    AuditCategory,
    AuditEntry,
    AuditReport,
    AuditSeverity,
    AuditTrail,
)

__all__ = [
    "AuditCategory",
    "AuditEntry",
    "AuditReport",
    "AuditSeverity",
    "AuditTrail",
]
