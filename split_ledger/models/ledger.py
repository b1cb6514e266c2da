"""
Core Data Models for Split Ledger

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: A split expense and its debts are separate records.
The only link between them is `metadata["split_expense_id"]` on each debt.
The store does not enforce it, so nothing here assumes the other side exists.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from split_ledger.money import qround, sum_amounts


# Placeholder clients use for "the caller" in paid_by and manual debts
SELF = "self"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class SplitType(str, Enum):
    """How a split expense divides its total."""
    EQUAL = "equal"    # total / (participants + 1), payer keeps one share
    CUSTOM = "custom"  # amounts supplied per participant


class ExpenseStatus(str, Enum):
    """Split expense lifecycle."""
    ACTIVE = "active"
    SETTLED = "settled"  # every derived debt has been paid


class DebtType(str, Enum):
    """
    Where a debt came from.

    SPLIT debts always carry metadata pointing at their split expense.
    """
    MANUAL = "manual"
    SPLIT = "split"


class DebtStatus(str, Enum):
    """
    Debt status.

    CRITICAL: PAID is terminal. A paid debt never goes back to pending.
    """
    PENDING = "pending"
    PAID = "paid"


class DebtDirection(str, Enum):
    """Which side of the ledger to read, relative to the caller."""
    OWED_TO_ME = "owed-to-me"
    OWED_BY_ME = "owed-by-me"


class DebtSide(str, Enum):
    """Which side of a new manual debt the caller is on."""
    OWE_ME = "owe-me"  # caller is the creditor
    I_OWE = "i-owe"    # caller is the debtor


# =============================================================================
# IDENTITY
# =============================================================================

class UserContext(BaseModel):
    """
    The user an operation is performed for.

    Passed explicitly into every service call. Nothing in the engine
    reads identity from anywhere else.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    user_id: str = Field(
        ...,
        min_length=1,
        description="Identifier of the acting user"
    )
    name: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Display name, copied into debt metadata"
    )
    email: Optional[str] = Field(
        default=None,
        max_length=254,
        description="Email, copied into debt metadata"
    )

    def resolve(self, identifier: str) -> str:
        """Replace the "self" placeholder with this user's id."""
        return self.user_id if identifier == SELF else identifier


# =============================================================================
# SPLIT EXPENSE
# =============================================================================

class SplitShare(BaseModel):
    """
    One participant's share of a split expense.

    A participant is identified by id, or by email when they
    don't have an account yet.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    participant_id: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Participant user/friend id"
    )
    participant_email: Optional[str] = Field(
        default=None,
        max_length=254,
        description="Participant email if no id is known"
    )
    participant_name: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Display name for notifications"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="This participant's share"
    )

    @field_validator('amount')
    @classmethod
    def round_to_cents(cls, v: Decimal) -> Decimal:
        return qround(v)

    @model_validator(mode='after')
    def require_identifier(self) -> 'SplitShare':
        if not self.participant_id and not self.participant_email:
            raise ValueError("Participant needs an id or an email")
        return self

    @property
    def participant_key(self) -> str:
        """Stable identifier used as debtor and in allocation keys."""
        return self.participant_id or self.participant_email


class SplitExpense(BaseModel):
    """
    A shared cost with a payer and a list of participant shares.

    `paid_by` is stored resolved: "self" becomes the creator's id.
    The split sum invariant is checked when the expense is created
    and never again.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique split expense ID"
    )
    created_by: str = Field(
        ...,
        min_length=1,
        description="User who recorded the expense"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        description="When the expense was recorded"
    )

    description: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="What the expense was for"
    )
    total_amount: Decimal = Field(
        ...,
        gt=0,
        description="Full amount paid"
    )
    paid_by: str = Field(
        ...,
        min_length=1,
        description="Identifier of whoever paid"
    )
    split_type: SplitType = Field(
        default=SplitType.EQUAL,
        description="How the total was divided"
    )
    splits: list[SplitShare] = Field(
        ...,
        min_length=1,
        description="Ordered participant shares"
    )
    status: ExpenseStatus = Field(
        default=ExpenseStatus.ACTIVE,
        description="Lifecycle status"
    )

    @field_validator('total_amount')
    @classmethod
    def round_total(cls, v: Decimal) -> Decimal:
        return qround(v)

    @property
    def participants(self) -> list[SplitShare]:
        """Shares that turn into debts (everyone except the payer)."""
        return [s for s in self.splits if s.participant_key != self.paid_by]

    @property
    def participant_count(self) -> int:
        """Distinct people involved, payer included."""
        keys = {s.participant_key for s in self.splits}
        keys.add(self.paid_by)
        return len(keys)

    @property
    def split_total(self) -> Decimal:
        return sum_amounts(s.amount for s in self.splits)

    def allocation_key(self, share: SplitShare) -> str:
        """Idempotency key for the debt derived from `share`."""
        return f"{self.id}:{share.participant_key}"


# =============================================================================
# DEBT
# =============================================================================

class Debt(BaseModel):
    """
    A single-creditor/single-debtor obligation.

    Debts don't care how they were created. SPLIT debts carry
    metadata linking back to their split expense:
    split_expense_id, original_amount, split_type, participant_count,
    payer_id, payer_name, payer_email, allocation_key, participant_name.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique debt ID"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
    )

    creditor: str = Field(
        ...,
        min_length=1,
        description="Who is owed"
    )
    debtor: str = Field(
        ...,
        min_length=1,
        description="Who owes"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount owed"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=300,
    )
    type: DebtType = Field(
        default=DebtType.MANUAL,
        description="Origin of the debt"
    )
    status: DebtStatus = Field(
        default=DebtStatus.PENDING,
    )
    due_date: Optional[date] = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form data; links split debts to their expense"
    )

    # Payment tracking
    paid_at: Optional[datetime] = None
    payment_method: Optional[str] = Field(
        default=None,
        max_length=50,
    )

    @field_validator('amount')
    @classmethod
    def round_amount(cls, v: Decimal) -> Decimal:
        return qround(v)

    @model_validator(mode='after')
    def validate_links(self) -> 'Debt':
        if self.creditor == self.debtor:
            raise ValueError("Creditor and debtor must be different people")
        if self.type == DebtType.SPLIT and not self.metadata.get("split_expense_id"):
            raise ValueError("Split debts must reference a split expense")
        return self

    @property
    def split_expense_id(self) -> Optional[str]:
        value = self.metadata.get("split_expense_id")
        return str(value) if value else None

    @property
    def allocation_key(self) -> Optional[str]:
        return self.metadata.get("allocation_key")

    @property
    def is_pending(self) -> bool:
        return self.status == DebtStatus.PENDING

    def involves(self, user_id: str) -> bool:
        return user_id in (self.creditor, self.debtor)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'amount_mismatch')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )
