"""
Storage Services Package

Provides abstract interfaces and concrete implementations for the
split expense store, the debt ledger and the audit log.
Google Sheets is the remote backend; the in-memory one backs tests.
"""

from split_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DebtLedgerInterface,
    DuplicateError,
    NotFoundError,
    SplitExpenseStoreInterface,
    StorageError,
)
from split_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDebtLedger,
    GoogleSheetsSplitExpenseStore,
)
from split_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryDebtLedger,
    InMemorySplitExpenseStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "DebtLedgerInterface",
    "SplitExpenseStoreInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDebtLedger",
    "GoogleSheetsSplitExpenseStore",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryDebtLedger",
    "InMemorySplitExpenseStore",
]
