"""
Shared fixtures and failing test doubles.

No test talks to Google Sheets. The in-memory backends stand in for the
remote store, and the subclasses below fail on demand to simulate a
flaky network.
"""

from uuid import UUID

import pytest

from split_ledger.audit import AuditLogger
from split_ledger.config import LedgerSettings
from split_ledger.engine import RateLimiter
from split_ledger.models import Debt, DebtDirection, UserContext
from split_ledger.orchestrator import SplitLedgerFlow
from split_ledger.services.notifications import (
    InMemoryNotificationDispatcher,
    NotificationError,
)
from split_ledger.services.storage import (
    ConnectionError,
    InMemoryAuditStorage,
    InMemoryDebtLedger,
    InMemorySplitExpenseStore,
    StorageError,
)


class FlakyDebtLedger(InMemoryDebtLedger):
    """In-memory ledger that fails for chosen debtors, debts or reads."""

    def __init__(self):
        super().__init__()
        self.fail_create_for: set[str] = set()
        self.fail_delete_for: set[UUID] = set()
        self.fail_list: set[DebtDirection] = set()
        self.fail_lookup = False
        self.create_calls = 0
        self.delete_calls = 0

    async def create_debt(self, debt: Debt) -> Debt:
        self.create_calls += 1
        if debt.debtor in self.fail_create_for:
            raise ConnectionError(f"ledger unreachable for {debt.debtor}")
        return await super().create_debt(debt)

    async def delete_debt(self, debt_id: UUID) -> bool:
        self.delete_calls += 1
        if debt_id in self.fail_delete_for:
            raise StorageError(f"delete timed out for {debt_id}")
        return await super().delete_debt(debt_id)

    async def list_debts(self, user_id: str, direction: DebtDirection) -> list[Debt]:
        if direction in self.fail_list:
            raise ConnectionError("ledger unreachable")
        return await super().list_debts(user_id, direction)

    async def find_debts_for_split_expense(self, user_id: str, expense_id: UUID) -> list[Debt]:
        if self.fail_lookup:
            raise ConnectionError("ledger unreachable")
        return await super().find_debts_for_split_expense(user_id, expense_id)


class FlakyExpenseStore(InMemorySplitExpenseStore):
    """In-memory expense store that can fail deletes and listings."""

    def __init__(self):
        super().__init__()
        self.fail_delete = False
        self.fail_list = False

    async def delete_expense(self, expense_id: UUID) -> bool:
        if self.fail_delete:
            raise StorageError("expense delete rejected")
        return await super().delete_expense(expense_id)

    async def list_expenses(self, user_id: str):
        if self.fail_list:
            raise ConnectionError("store unreachable")
        return await super().list_expenses(user_id)


class FailingNotifier(InMemoryNotificationDispatcher):
    """Dispatcher whose every send fails."""

    async def send(self, expense_id, recipient_ids, notification_type, payload):
        raise NotificationError("notification backend down")


@pytest.fixture
def ctx() -> UserContext:
    return UserContext(user_id="me", name="Asha", email="asha@example.com")


@pytest.fixture
def settings() -> LedgerSettings:
    # No throttling in tests
    return LedgerSettings(calls_per_second=0)


@pytest.fixture
def limiter() -> RateLimiter:
    return RateLimiter.unlimited()


@pytest.fixture
def store() -> FlakyExpenseStore:
    return FlakyExpenseStore()


@pytest.fixture
def ledger() -> FlakyDebtLedger:
    return FlakyDebtLedger()


@pytest.fixture
def notifier() -> InMemoryNotificationDispatcher:
    return InMemoryNotificationDispatcher()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def flow(store, ledger, notifier, audit_logger, settings, limiter) -> SplitLedgerFlow:
    return SplitLedgerFlow(
        store,
        ledger,
        notifier=notifier,
        audit_logger=audit_logger,
        settings=settings,
        limiter=limiter,
    )


@pytest.fixture
def dinner() -> dict:
    return {
        "description": "Dinner",
        "total_amount": "300",
        "paid_by": "self",
        "split_type": "equal",
        "splits": [
            {"participant_id": "f1", "participant_name": "Farah"},
            {"participant_id": "f2", "participant_name": "Gopal"},
        ],
    }


@pytest.fixture
def failing_notifier() -> FailingNotifier:
    return FailingNotifier()
