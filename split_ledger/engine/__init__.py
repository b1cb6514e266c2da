"""
Ledger Engine Package

Business logic that sits between the REST-shaped flow and the storage
interfaces: split expenses, debt allocation, reconciliation, balances
and manual debts.
"""

from split_ledger.engine.allocation import DebtAllocationEngine
from split_ledger.engine.balances import BalanceAggregator
from split_ledger.engine.debts import (
    DebtService,
    DebtServiceError,
    InvalidDebtStateError,
    PermissionDeniedError,
)
from split_ledger.engine.expenses import SplitExpenseService
from split_ledger.engine.reconciliation import ConsistencyGapError, ReconciliationService
from split_ledger.engine.throttle import RateLimiter

__all__ = [
    "BalanceAggregator",
    "ConsistencyGapError",
    "DebtAllocationEngine",
    "DebtService",
    "DebtServiceError",
    "InvalidDebtStateError",
    "PermissionDeniedError",
    "RateLimiter",
    "ReconciliationService",
    "SplitExpenseService",
]
