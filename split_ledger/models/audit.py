"""
Audit Models for Split Ledger

Every significant ledger action is logged for audit purposes.
This provides:
1. A trail of every expense and debt write
2. Debugging information when a fan-out or cascade delete stops halfway
3. Evidence for finding orphaned debts after the fact

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from split_ledger.models.ledger import utcnow


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Split expenses
    SPLIT_EXPENSE_CREATED = "split_expense_created"
    SPLIT_EXPENSE_VALIDATION_FAILED = "split_expense_validation_failed"
    SPLIT_EXPENSE_DELETED = "split_expense_deleted"
    SPLIT_EXPENSE_SETTLED = "split_expense_settled"

    # Debts
    DEBT_CREATED = "debt_created"
    DEBT_CREATION_FAILED = "debt_creation_failed"
    DEBT_PAID = "debt_paid"
    DEBT_DELETED = "debt_deleted"
    DEBT_DELETION_FAILED = "debt_deletion_failed"

    # Multi-step operations
    ALLOCATION_COMPLETED = "allocation_completed"
    CASCADE_DELETE_COMPLETED = "cascade_delete_completed"
    CONSISTENCY_GAP = "consistency_gap"

    # Reconciliation
    ORPHANED_DEBTS_DETECTED = "orphaned_debts_detected"
    ORPHANED_DEBT_REPAIRED = "orphaned_debt_repaired"

    # Reads
    SUMMARY_DEGRADED = "summary_degraded"

    # Notifications
    NOTIFICATION_FAILED = "notification_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'split_expense', 'debt')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one expense and all its debts)"
    )

    # Who triggered it
    actor_id: Optional[str] = Field(
        default=None,
        description="User the operation was performed for"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "actor_id": self.actor_id,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, actor_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.actor_id or "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.split_expense_created(expense, actor_id, correlation_id)
        event = AuditEventBuilder.consistency_gap(expense_id, "...", counts, correlation_id)
    """

    @staticmethod
    def split_expense_created(
        expense_id: UUID,
        description: str,
        total_amount: str,
        participant_count: int,
        actor_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPLIT_EXPENSE_CREATED,
            entity_type="split_expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            actor_id=actor_id,
            description=f"Split expense created: {description} - {total_amount}",
            details={
                "total_amount": total_amount,
                "participant_count": participant_count,
            },
        )

    @staticmethod
    def validation_failed(
        issues: list[dict],
        actor_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPLIT_EXPENSE_VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="split_expense",
            correlation_id=correlation_id,
            actor_id=actor_id,
            description=f"Split expense rejected with {len(issues)} issues",
            details={
                "issues": issues,
            },
        )

    @staticmethod
    def split_expense_settled(
        expense_id: UUID,
        actor_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPLIT_EXPENSE_SETTLED,
            entity_type="split_expense",
            entity_id=expense_id,
            actor_id=actor_id,
            description="Every debt for this split expense has been paid",
        )

    @staticmethod
    def debt_created(
        debt_id: UUID,
        creditor: str,
        debtor: str,
        amount: str,
        split_expense_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_CREATED,
            entity_type="debt",
            entity_id=debt_id,
            correlation_id=correlation_id,
            actor_id=creditor,
            description=f"Debt created: {debtor} owes {creditor} {amount}",
            details={
                "debtor": debtor,
                "amount": amount,
                "split_expense_id": split_expense_id,
            },
        )

    @staticmethod
    def debt_creation_failed(
        expense_id: UUID,
        participant_key: str,
        amount: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_CREATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="split_expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Could not create debt for participant {participant_key}",
            error_message=error_message,
            details={
                "participant_key": participant_key,
                "amount": amount,
            },
        )

    @staticmethod
    def debt_paid(
        debt_id: UUID,
        actor_id: str,
        payment_method: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_PAID,
            entity_type="debt",
            entity_id=debt_id,
            actor_id=actor_id,
            description="Debt marked as paid",
            details={
                "payment_method": payment_method,
            },
        )

    @staticmethod
    def debt_deleted(
        debt_id: UUID,
        actor_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_DELETED,
            entity_type="debt",
            entity_id=debt_id,
            correlation_id=correlation_id,
            actor_id=actor_id,
            description="Debt deleted",
        )

    @staticmethod
    def debt_deletion_failed(
        debt_id: UUID,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_DELETION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="debt",
            entity_id=debt_id,
            correlation_id=correlation_id,
            description="Could not delete debt",
            error_message=error_message,
        )

    @staticmethod
    def allocation_completed(
        expense_id: UUID,
        created: int,
        failed: int,
        skipped: int,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_COMPLETED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            entity_type="split_expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Allocation finished: {created} created, {failed} failed",
            details={
                "debts_created": created,
                "debts_failed": failed,
                "participants_skipped": skipped,
            },
        )

    @staticmethod
    def cascade_delete_completed(
        expense_id: UUID,
        debts_deleted: int,
        debts_failed: int,
        actor_id: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CASCADE_DELETE_COMPLETED,
            entity_type="split_expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            actor_id=actor_id,
            description=f"Split expense deleted with {debts_deleted} debts",
            details={
                "debts_deleted": debts_deleted,
                "debts_failed": debts_failed,
            },
        )

    @staticmethod
    def consistency_gap(
        expense_id: UUID,
        reason: str,
        counts: dict[str, Any],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONSISTENCY_GAP,
            severity=AuditSeverity.ERROR,
            entity_type="split_expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense and debts out of step: {reason}",
            details=counts,
        )

    @staticmethod
    def orphaned_debts_detected(
        debt_ids: list[UUID],
        actor_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ORPHANED_DEBTS_DETECTED,
            severity=AuditSeverity.WARNING,
            entity_type="debt",
            actor_id=actor_id,
            description=f"Found {len(debt_ids)} orphaned split debts",
            details={
                "debt_ids": [str(d) for d in debt_ids],
            },
        )

    @staticmethod
    def orphaned_debt_repaired(
        debt_id: UUID,
        split_expense_id: Optional[str],
        actor_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ORPHANED_DEBT_REPAIRED,
            entity_type="debt",
            entity_id=debt_id,
            actor_id=actor_id,
            description="Orphaned split debt deleted",
            details={
                "split_expense_id": split_expense_id,
            },
        )

    @staticmethod
    def summary_degraded(
        sources: list[str],
        actor_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUMMARY_DEGRADED,
            severity=AuditSeverity.WARNING,
            actor_id=actor_id,
            description=f"Balance summary built without: {', '.join(sources)}",
            details={
                "sources": sources,
            },
        )

    @staticmethod
    def notification_failed(
        expense_id: UUID,
        recipient_count: int,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTIFICATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="split_expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Could not notify {recipient_count} participants",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
