"""
Main Orchestrator for Split Ledger

This module ties together all the components and exposes the
operations a client calls:
1. Split expenses (create with debts, list, delete with debts)
2. Manual debts (create, list by direction, mark paid, delete)
3. Balance summary
4. Reconciliation and allocation retry

DESIGN DECISION: The orchestrator enforces the boundaries:
- Identity always comes in as an explicit UserContext
- Partial failures are reported in results, never hidden
- Every write is audited

One rate limiter is shared by every engine so that allocation fan-out
and cascade deletes together stay under the ledger's call budget.
"""

from typing import Any, Mapping, Optional, Union
from uuid import UUID

import structlog

from split_ledger.audit import AuditLogger
from split_ledger.config import LedgerSettings, get_settings
from split_ledger.engine import (
    BalanceAggregator,
    DebtAllocationEngine,
    DebtService,
    RateLimiter,
    ReconciliationService,
    SplitExpenseService,
)
from split_ledger.models.ledger import (
    Debt,
    DebtDirection,
    DebtType,
    SplitExpense,
    UserContext,
)
from split_ledger.models.results import (
    AllocationResult,
    BalanceSummary,
    CascadeDeleteResult,
    CreateSplitExpenseResult,
    ReconciliationReport,
)
from split_ledger.services.notifications import (
    GoogleSheetsNotificationDispatcher,
    InMemoryNotificationDispatcher,
    NotificationDispatcherInterface,
)
from split_ledger.services.storage import (
    DebtLedgerInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDebtLedger,
    GoogleSheetsSplitExpenseStore,
    InMemoryDebtLedger,
    InMemorySplitExpenseStore,
    SplitExpenseStoreInterface,
)

logger = structlog.get_logger(__name__)


class SplitLedgerFlow:
    """
    REST-shaped facade over the ledger engines.

    Every method takes the acting user's context first.
    """

    def __init__(
        self,
        store: SplitExpenseStoreInterface,
        ledger: DebtLedgerInterface,
        notifier: Optional[NotificationDispatcherInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        limiter: Optional[RateLimiter] = None,
    ):
        settings = settings or get_settings().ledger
        limiter = limiter or RateLimiter.from_settings(settings)
        self._audit_logger = audit_logger

        self._allocation = DebtAllocationEngine(
            ledger,
            notifier=notifier,
            audit_logger=audit_logger,
            limiter=limiter,
            settings=settings,
        )
        self._reconciliation = ReconciliationService(
            store,
            ledger,
            audit_logger=audit_logger,
            limiter=limiter,
            settings=settings,
        )
        self._expenses = SplitExpenseService(
            store,
            ledger,
            allocation_engine=self._allocation,
            reconciliation=self._reconciliation,
            audit_logger=audit_logger,
        )
        self._debts = DebtService(ledger, audit_logger=audit_logger)
        self._balances = BalanceAggregator(store, ledger, audit_logger=audit_logger)

    @property
    def reconciliation(self) -> ReconciliationService:
        return self._reconciliation

    # Split expenses

    async def create_split_expense(
        self,
        ctx: UserContext,
        data: Mapping[str, Any],
    ) -> CreateSplitExpenseResult:
        """
        Create a split expense and its debts.

        Raises:
            ValidationError: Nothing was written
        """
        return await self._expenses.create_with_debts(ctx, data)

    async def fetch_split_expenses(self, ctx: UserContext) -> list[SplitExpense]:
        return await self._expenses.list_expenses(ctx)

    async def delete_split_expense(
        self,
        ctx: UserContext,
        expense_id: UUID,
    ) -> CascadeDeleteResult:
        """
        Delete a split expense and every debt derived from it.

        Raises:
            NotFoundError: No such expense
            ConsistencyGapError: Debts were processed but the expense remains
        """
        return await self._expenses.delete(ctx, expense_id)

    async def retry_allocation(self, ctx: UserContext, expense_id: UUID) -> AllocationResult:
        return await self._expenses.retry_allocation(ctx, expense_id)

    # Debts

    async def create_debt(self, ctx: UserContext, data: Mapping[str, Any]) -> Debt:
        return await self._debts.create_debt(ctx, data)

    async def fetch_debts(
        self,
        ctx: UserContext,
        direction: Union[DebtDirection, str],
    ) -> list[Debt]:
        return await self._debts.list_debts(ctx, direction)

    async def mark_debt_paid(
        self,
        ctx: UserContext,
        debt_id: UUID,
        payment_method: Optional[str] = None,
    ) -> Debt:
        """
        Settle a debt. When the payer settles the last open debt of a
        split expense, the expense is marked settled too.
        """
        debt = await self._debts.mark_paid(ctx, debt_id, payment_method)

        if debt.type == DebtType.SPLIT and debt.creditor == ctx.user_id and debt.split_expense_id:
            try:
                await self._expenses.refresh_status(ctx, UUID(debt.split_expense_id))
            except Exception as e:
                # The debt is paid either way; expense status is derived
                logger.warning(
                    "expense_status_refresh_failed",
                    debt_id=str(debt_id),
                    split_expense_id=debt.split_expense_id,
                    error=str(e),
                )
        return debt

    async def delete_debt(self, ctx: UserContext, debt_id: UUID) -> bool:
        return await self._debts.delete_debt(ctx, debt_id)

    # Reads and maintenance

    async def compute_summary(self, ctx: UserContext) -> BalanceSummary:
        return await self._balances.compute_summary(ctx)

    async def reconcile(self, ctx: UserContext, repair: bool = False) -> ReconciliationReport:
        return await self._reconciliation.reconcile(ctx, repair=repair)


def create_app_components(
    use_storage: bool = True,
) -> tuple[SplitLedgerFlow, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run entirely in memory.

    Returns:
        (ledger_flow, sheets_client)
    """
    sheets_client = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            store = GoogleSheetsSplitExpenseStore(sheets_client)
            ledger = GoogleSheetsDebtLedger(sheets_client)
            notifier = GoogleSheetsNotificationDispatcher(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            use_storage = False

    if not use_storage:
        store = InMemorySplitExpenseStore()
        ledger = InMemoryDebtLedger()
        notifier = InMemoryNotificationDispatcher()
        audit_logger = AuditLogger()  # Local-only logging

    flow = SplitLedgerFlow(
        store,
        ledger,
        notifier=notifier,
        audit_logger=audit_logger,
    )
    return flow, sheets_client
