"""
Data Models Package

This package contains all Pydantic models used in the Split Ledger system.
All data flowing through the system must conform to these schemas.
"""

from split_ledger.models.ledger import (
    SELF,
    Debt,
    DebtDirection,
    DebtSide,
    DebtStatus,
    DebtType,
    ExpenseStatus,
    SplitExpense,
    SplitShare,
    SplitType,
    UserContext,
    ValidationIssue,
)
from split_ledger.models.results import (
    AllocationResult,
    BalanceSummary,
    CascadeDeleteResult,
    CreateSplitExpenseResult,
    CreateSummary,
    FailureRecord,
    IntegrationHealth,
    MissingAllocation,
    NotificationReceipt,
    NotificationType,
    ReconciliationReport,
)
from split_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "SELF",
    "Debt",
    "DebtDirection",
    "DebtSide",
    "DebtStatus",
    "DebtType",
    "ExpenseStatus",
    "SplitExpense",
    "SplitShare",
    "SplitType",
    "UserContext",
    "ValidationIssue",
    # Results
    "AllocationResult",
    "BalanceSummary",
    "CascadeDeleteResult",
    "CreateSplitExpenseResult",
    "CreateSummary",
    "FailureRecord",
    "IntegrationHealth",
    "MissingAllocation",
    "NotificationReceipt",
    "NotificationType",
    "ReconciliationReport",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
