"""
Audit Logger

DESIGN DECISION: Every significant ledger action is logged.
This provides:
1. Complete traceability of multi-step writes
2. A record of every partial failure left behind
3. Input for reconciliation when something was missed

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from split_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from split_ledger.models.ledger import Debt, SplitExpense
from split_ledger.services.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Audit persistence never breaks the ledger flow
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_split_expense_created(
        self,
        expense: SplitExpense,
        correlation_id: UUID,
    ) -> None:
        """Log split expense creation."""
        event = AuditEventBuilder.split_expense_created(
            expense_id=expense.id,
            description=expense.description,
            total_amount=str(expense.total_amount),
            participant_count=expense.participant_count,
            actor_id=expense.created_by,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        issues: list[dict],
        actor_id: str,
        correlation_id: UUID,
    ) -> None:
        """Log a rejected split expense."""
        event = AuditEventBuilder.validation_failed(
            issues=issues,
            actor_id=actor_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_debt_created(
        self,
        debt: Debt,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log debt creation."""
        event = AuditEventBuilder.debt_created(
            debt_id=debt.id,
            creditor=debt.creditor,
            debtor=debt.debtor,
            amount=str(debt.amount),
            split_expense_id=debt.split_expense_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_debt_creation_failed(
        self,
        expense_id: UUID,
        participant_key: str,
        amount: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.debt_creation_failed(
            expense_id=expense_id,
            participant_key=participant_key,
            amount=amount,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_consistency_gap(
        self,
        expense_id: UUID,
        reason: str,
        counts: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an expense and its debts left out of step."""
        event = AuditEventBuilder.consistency_gap(
            expense_id=expense_id,
            reason=reason,
            counts=counts,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., creating a split expense).
    Pass it through all subsequent operations.
    """
    return uuid4()
