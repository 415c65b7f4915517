"""Append-only audit log."""

from .logger import AuditLogger
from .models import AuditEntry, AuditEventType, AuditFilter

__all__ = ["AuditEntry", "AuditEventType", "AuditFilter", "AuditLogger"]
