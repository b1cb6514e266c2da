"""Validation package."""

from split_ledger.validation.validator import (
    DebtValidator,
    SplitExpenseValidator,
    ValidationError,
)

__all__ = ["DebtValidator", "SplitExpenseValidator", "ValidationError"]
