"""Core application configuration and utilities."""

from billing_engine.core.audit import AuditAction, AuditEvent, log_audit, log_bill_change
from billing_engine.core.config import settings
from billing_engine.core.database import Base, get_db, get_session_factory

__all__ = [
    # Config
    "settings",
    # Database
    "Base",
    "get_db",
    "get_session_factory",
    # Audit
    "AuditAction",
    "AuditEvent",
    "log_audit",
    "log_bill_change",
]
