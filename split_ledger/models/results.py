"""
Result Models for Split Ledger operations

Multi-step operations against the ledger are not atomic.
These models are the contract for telling the caller exactly
how far an operation got: what was written, what failed, what was skipped.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from split_ledger.models.ledger import Debt, SplitExpense, utcnow


class FailureRecord(BaseModel):
    """
    One participant whose debt could not be written.

    Enough to show the user and let them recreate the debt by hand.
    """

    participant_key: str
    participant_name: Optional[str] = None
    participant_email: Optional[str] = None
    amount: Decimal
    error: str = Field(
        ...,
        description="Why the ledger call failed"
    )
    timestamp: datetime = Field(
        default_factory=utcnow
    )


class AllocationResult(BaseModel):
    """
    Outcome of fanning a split expense out into debts.

    A non-empty `failed_debts` is an accepted outcome, not an error.
    """

    expense_id: UUID
    successful_debts: list[Debt] = Field(default_factory=list)
    failed_debts: list[FailureRecord] = Field(default_factory=list)
    skipped_participants: list[str] = Field(
        default_factory=list,
        description="Participants that already had a debt for this expense"
    )
    notifications_sent: int = Field(default=0, ge=0)

    @property
    def attempted(self) -> int:
        return len(self.successful_debts) + len(self.failed_debts)

    @property
    def is_partial(self) -> bool:
        return len(self.failed_debts) > 0


class CreateSummary(BaseModel):
    """Counts shown to the user after creating a split expense."""

    expense_id: UUID
    total_amount: Decimal
    participant_count: int = Field(ge=0)
    debts_created: int = Field(ge=0)
    debts_failed: int = Field(ge=0)
    notifications_sent: int = Field(ge=0)
    has_errors: bool


class CreateSplitExpenseResult(BaseModel):
    """
    Result of creating a split expense together with its debts.

    `success` stays True when some debts failed; the failures are
    listed for the caller to surface or retry manually.
    """

    success: bool = True
    expense: SplitExpense
    debts: list[Debt] = Field(default_factory=list)
    failed_debts: list[FailureRecord] = Field(default_factory=list)
    summary: CreateSummary


class CascadeDeleteResult(BaseModel):
    """How far deleting a split expense and its debts got."""

    expense_id: UUID
    expense_deleted: bool = False
    debts_found: int = Field(default=0, ge=0)
    debts_deleted: int = Field(default=0, ge=0)
    debts_failed: int = Field(default=0, ge=0)

    @property
    def fully_consistent(self) -> bool:
        return self.expense_deleted and self.debts_failed == 0


class IntegrationHealth(BaseModel):
    """How well debts and split expenses line up."""

    split_expenses_with_debts: int = Field(default=0, ge=0)
    orphaned_debts: int = Field(default=0, ge=0)


class BalanceSummary(BaseModel):
    """
    Balance overview for one user.

    Amounts are rounded to cents. Only pending debts count toward
    the money figures; paid debts are settled.
    """

    generated_at: datetime = Field(default_factory=utcnow)

    total_owed_to_me: Decimal = Decimal("0.00")
    total_owed_by_me: Decimal = Decimal("0.00")
    net_balance: Decimal = Decimal("0.00")
    split_expense_amount: Decimal = Decimal("0.00")
    regular_amount: Decimal = Decimal("0.00")

    owed_to_me_count: int = 0
    owed_by_me_count: int = 0
    split_expense_debt_count: int = 0
    regular_debt_count: int = 0

    split_expense_count: int = 0
    total_split_expense_amount: Decimal = Decimal("0.00")

    integration_health: IntegrationHealth = Field(default_factory=IntegrationHealth)

    # Sources that failed to load and were treated as empty
    degraded_sources: list[str] = Field(default_factory=list)

    @property
    def total_debts(self) -> int:
        return self.owed_to_me_count + self.owed_by_me_count

    @property
    def split_expense_contribution(self) -> Decimal:
        """Percentage of what I'm owed that comes from split expenses."""
        if self.total_owed_to_me <= 0:
            return Decimal("0.0")
        share = self.split_expense_amount / self.total_owed_to_me * 100
        return share.quantize(Decimal("0.1"))

    @property
    def is_complete(self) -> bool:
        return not self.degraded_sources


class MissingAllocation(BaseModel):
    """An active split expense with participants that have no debt."""

    expense_id: UUID
    missing_participants: list[str]


class ReconciliationReport(BaseModel):
    """Result of one reconciliation pass over expenses and debts."""

    checked_at: datetime = Field(default_factory=utcnow)
    expenses_checked: int = 0
    debts_checked: int = 0
    orphaned_debt_ids: list[UUID] = Field(default_factory=list)
    missing_allocations: list[MissingAllocation] = Field(default_factory=list)
    repaired_debt_ids: list[UUID] = Field(default_factory=list)
    repair_failures: int = 0

    @property
    def is_consistent(self) -> bool:
        return not self.orphaned_debt_ids and not self.missing_allocations


class NotificationType(str, Enum):
    """Kinds of participant notifications."""
    EXPENSE_SPLIT = "expense_split"
    PAYMENT_REMINDER = "payment_reminder"
    DEBT_PAID = "debt_paid"


class NotificationReceipt(BaseModel):
    """What the dispatcher did with a notification request."""

    sent: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
