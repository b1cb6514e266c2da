"""
In-Memory Storage Implementation

Used for tests and for running without a spreadsheet configured.
Records are copied on the way in and out so callers can't mutate
stored state behind the store's back.
"""

from typing import Optional
from uuid import UUID

from split_ledger.models.audit import AuditEvent
from split_ledger.models.ledger import (
    Debt,
    DebtDirection,
    ExpenseStatus,
    SplitExpense,
)
from split_ledger.services.storage.interface import (
    AuditStorageInterface,
    DebtLedgerInterface,
    DuplicateError,
    NotFoundError,
    SplitExpenseStoreInterface,
)


class InMemorySplitExpenseStore(SplitExpenseStoreInterface):
    """Split expenses kept in a dict keyed by id."""

    def __init__(self):
        self._expenses: dict[UUID, SplitExpense] = {}

    async def create_expense(self, expense: SplitExpense) -> SplitExpense:
        if expense.id in self._expenses:
            raise DuplicateError(f"Split expense already exists: {expense.id}")
        self._expenses[expense.id] = expense.model_copy(deep=True)
        return expense.model_copy(deep=True)

    async def get_expense(self, expense_id: UUID) -> Optional[SplitExpense]:
        expense = self._expenses.get(expense_id)
        return expense.model_copy(deep=True) if expense else None

    async def list_expenses(self, user_id: str) -> list[SplitExpense]:
        expenses = [
            e.model_copy(deep=True) for e in self._expenses.values()
            if user_id in (e.created_by, e.paid_by)
        ]
        expenses.sort(key=lambda e: e.created_at, reverse=True)
        return expenses

    async def update_status(self, expense_id: UUID, status: ExpenseStatus) -> SplitExpense:
        expense = self._expenses.get(expense_id)
        if expense is None:
            raise NotFoundError(f"Split expense not found: {expense_id}")
        expense.status = status
        return expense.model_copy(deep=True)

    async def delete_expense(self, expense_id: UUID) -> bool:
        return self._expenses.pop(expense_id, None) is not None


class InMemoryDebtLedger(DebtLedgerInterface):
    """
    Debts kept in a dict keyed by id, plus an index from
    split expense id to the debts derived from it.
    """

    def __init__(self):
        self._debts: dict[UUID, Debt] = {}
        self._by_expense: dict[str, set[UUID]] = {}

    def _index(self, debt: Debt) -> None:
        if debt.split_expense_id:
            self._by_expense.setdefault(debt.split_expense_id, set()).add(debt.id)

    def _unindex(self, debt: Debt) -> None:
        if debt.split_expense_id:
            ids = self._by_expense.get(debt.split_expense_id)
            if ids is not None:
                ids.discard(debt.id)
                if not ids:
                    del self._by_expense[debt.split_expense_id]

    async def create_debt(self, debt: Debt) -> Debt:
        if debt.id in self._debts:
            raise DuplicateError(f"Debt already exists: {debt.id}")
        self._debts[debt.id] = debt.model_copy(deep=True)
        self._index(debt)
        return debt.model_copy(deep=True)

    async def get_debt(self, debt_id: UUID) -> Optional[Debt]:
        debt = self._debts.get(debt_id)
        return debt.model_copy(deep=True) if debt else None

    async def list_debts(self, user_id: str, direction: DebtDirection) -> list[Debt]:
        if direction == DebtDirection.OWED_TO_ME:
            debts = [d for d in self._debts.values() if d.creditor == user_id]
        else:
            debts = [d for d in self._debts.values() if d.debtor == user_id]
        debts.sort(key=lambda d: d.created_at, reverse=True)
        return [d.model_copy(deep=True) for d in debts]

    async def update_debt(self, debt: Debt) -> Debt:
        existing = self._debts.get(debt.id)
        if existing is None:
            raise NotFoundError(f"Debt not found: {debt.id}")
        self._unindex(existing)
        self._debts[debt.id] = debt.model_copy(deep=True)
        self._index(debt)
        return debt.model_copy(deep=True)

    async def delete_debt(self, debt_id: UUID) -> bool:
        debt = self._debts.pop(debt_id, None)
        if debt is None:
            return False
        self._unindex(debt)
        return True

    async def find_debts_for_split_expense(
        self,
        user_id: str,
        expense_id: UUID,
    ) -> list[Debt]:
        ids = self._by_expense.get(str(expense_id), set())
        debts = [self._debts[i] for i in ids if self._debts[i].creditor == user_id]
        debts.sort(key=lambda d: d.created_at)
        return [d.model_copy(deep=True) for d in debts]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]
