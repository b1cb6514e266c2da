"""
Abstract Storage Interface

DESIGN DECISION: We define abstract interfaces for the two remote
collections the ledger works against. This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

Neither interface offers transactions. An expense and its debts live in
separate collections and are written with separate calls; the engines
above this layer are responsible for coping with partial writes.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from split_ledger.models.audit import AuditEvent
from split_ledger.models.ledger import (
    Debt,
    DebtDirection,
    DebtType,
    ExpenseStatus,
    SplitExpense,
)


class SplitExpenseStoreInterface(ABC):
    """
    Abstract interface for split expense storage.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def create_expense(self, expense: SplitExpense) -> SplitExpense:
        """
        Persist a new split expense.

        Returns:
            The stored expense

        Raises:
            DuplicateError: If an expense with this id exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_expense(self, expense_id: UUID) -> Optional[SplitExpense]:
        """
        Retrieve an expense by its ID.

        Returns:
            The expense if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_expenses(self, user_id: str) -> list[SplitExpense]:
        """
        List expenses the user created or paid for, newest first.
        """
        pass

    @abstractmethod
    async def update_status(self, expense_id: UUID, status: ExpenseStatus) -> SplitExpense:
        """
        Change an expense's lifecycle status.

        Raises:
            NotFoundError: If the expense doesn't exist
        """
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: UUID) -> bool:
        """
        Delete an expense record. Its debts are not touched.

        Returns:
            True if deleted, False if it didn't exist

        Raises:
            StorageError: If the delete fails
        """
        pass


class DebtLedgerInterface(ABC):
    """
    Abstract interface for the debt ledger.

    The ledger knows nothing about split expenses beyond
    what sits in each debt's metadata.
    """

    @abstractmethod
    async def create_debt(self, debt: Debt) -> Debt:
        """
        Persist a new debt.

        Raises:
            DuplicateError: If a debt with this id exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_debt(self, debt_id: UUID) -> Optional[Debt]:
        """
        Retrieve a debt by its ID.

        Returns:
            The debt if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_debts(self, user_id: str, direction: DebtDirection) -> list[Debt]:
        """
        List debts where the user is creditor (OWED_TO_ME)
        or debtor (OWED_BY_ME), newest first.
        """
        pass

    @abstractmethod
    async def update_debt(self, debt: Debt) -> Debt:
        """
        Replace a stored debt with `debt`.

        Raises:
            NotFoundError: If the debt doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_debt(self, debt_id: UUID) -> bool:
        """
        Delete a debt by ID.

        Returns:
            True if deleted, False if it didn't exist

        Raises:
            StorageError: If the delete fails
        """
        pass

    async def find_debts_for_split_expense(
        self,
        user_id: str,
        expense_id: UUID,
    ) -> list[Debt]:
        """
        Find split debts derived from `expense_id`.

        The default scans everything owed to the user and filters on
        metadata. Backends with an index should override this.
        """
        debts = await self.list_debts(user_id, DebtDirection.OWED_TO_ME)
        return [
            debt for debt in debts
            if debt.type == DebtType.SPLIT
            and debt.split_expense_id == str(expense_id)
        ]


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one split expense and its debts).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
