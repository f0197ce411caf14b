"""Audit logging for billing data changes.

Every write against a bill (manual creation, status transition, code edit,
deletion) is recorded through the dedicated ``audit`` logger so that billing
activity can be reconstructed for compliance review.

This audit log should be persisted to a secure, append-only store
in production.
"""

import logging
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

# Separate audit logger for billing-critical events
audit_logger = logging.getLogger("audit")


class AuditAction(str, Enum):
    """Types of auditable actions."""

    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    STATUS_CHANGE = "status_change"
    DELETE = "delete"


class AuditEvent(BaseModel):
    """Audit event record."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    action: AuditAction = Field(..., description="Type of action performed")
    resource_type: str = Field(..., description="Type of resource touched")
    resource_id: str | None = Field(None, description="ID of specific resource")
    source: str | None = Field(None, description="Bill source table (note/manual)")
    user_id: str | None = Field(None, description="User who performed action")
    details: dict | None = Field(None, description="Additional context")
    success: bool = Field(True, description="Whether action succeeded")


def log_audit(
    action: AuditAction,
    resource_type: str,
    resource_id: str | None = None,
    source: str | None = None,
    user_id: str | None = None,
    details: dict | None = None,
    success: bool = True,
) -> AuditEvent:
    """Log an audit event.

    Args:
        action: Type of action being audited
        resource_type: The type of resource being changed
        resource_id: Specific resource identifier
        source: Which bill source the resource lives in
        user_id: User performing the action
        details: Additional context
        success: Whether the action succeeded

    Returns:
        The created AuditEvent
    """
    event = AuditEvent(
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        source=source,
        user_id=user_id,
        details=details,
        success=success,
    )

    log_level = logging.INFO if success else logging.WARNING
    audit_logger.log(
        log_level,
        f"AUDIT: {action.value} {resource_type}"
        f"{f'/{resource_id}' if resource_id else ''}"
        f"{f' source={source}' if source else ''}"
        f" success={success}",
        extra={"audit_event": event.model_dump()},
    )

    return event


def log_bill_change(
    action: AuditAction,
    bill_id: str | None,
    source: str,
    success: bool = True,
    details: dict | None = None,
) -> AuditEvent:
    """Log a change to a unified bill.

    Convenience wrapper used by the billing aggregator for every write.
    """
    return log_audit(
        action=action,
        resource_type="bill",
        resource_id=bill_id,
        source=source,
        details=details,
        success=success,
    )
