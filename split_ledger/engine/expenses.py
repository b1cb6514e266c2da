"""
Split Expense Service

Entry point for everything that starts from a split expense:
validate and store it, fan it out into debts, delete it with its debts,
and work out when it has been settled.

DESIGN DECISION: The expense is written before any debt. If the fan-out
stops halfway, the stored expense still lists every participant, so the
gap can be found and the allocation re-run for just the missing people.
"""

from typing import Any, Mapping, Optional
from uuid import UUID

import structlog

from split_ledger.audit import AuditLogger, create_correlation_id
from split_ledger.engine.allocation import DebtAllocationEngine
from split_ledger.engine.debts import PermissionDeniedError
from split_ledger.engine.reconciliation import ReconciliationService
from split_ledger.models.audit import AuditEventBuilder
from split_ledger.models.ledger import (
    DebtStatus,
    ExpenseStatus,
    SplitExpense,
    UserContext,
)
from split_ledger.models.results import (
    AllocationResult,
    CascadeDeleteResult,
    CreateSplitExpenseResult,
    CreateSummary,
)
from split_ledger.services.storage import (
    DebtLedgerInterface,
    NotFoundError,
    SplitExpenseStoreInterface,
)
from split_ledger.validation import SplitExpenseValidator, ValidationError

logger = structlog.get_logger(__name__)


class SplitExpenseService:
    """
    Split expense lifecycle.

    Usage:
        service = SplitExpenseService(store, ledger, allocation_engine=engine)
        result = await service.create_with_debts(ctx, {
            "description": "Dinner",
            "total_amount": "300",
            "split_type": "equal",
            "splits": [{"participant_id": "f1"}, {"participant_id": "f2"}],
        })
    """

    def __init__(
        self,
        store: SplitExpenseStoreInterface,
        ledger: DebtLedgerInterface,
        allocation_engine: Optional[DebtAllocationEngine] = None,
        reconciliation: Optional[ReconciliationService] = None,
        validator: Optional[SplitExpenseValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._ledger = ledger
        self._audit_logger = audit_logger
        self._validator = validator or SplitExpenseValidator()
        self._allocation = allocation_engine or DebtAllocationEngine(
            ledger, audit_logger=audit_logger
        )
        self._reconciliation = reconciliation or ReconciliationService(
            store, ledger, audit_logger=audit_logger
        )

    async def create(
        self,
        ctx: UserContext,
        expense_data: Mapping[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> SplitExpense:
        """
        Validate and store a split expense. No debts are created.

        Raises:
            ValidationError: Every rule the input breaks (nothing written)
            StorageError: The store write failed
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            expense = self._validator.validate(ctx, expense_data)
        except ValidationError as e:
            logger.info("split_expense_rejected", user_id=ctx.user_id, issues=e.messages)
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    issues=e.as_dicts(),
                    actor_id=ctx.user_id,
                    correlation_id=correlation_id,
                )
            raise

        stored = await self._store.create_expense(expense)
        logger.info(
            "split_expense_created",
            expense_id=str(stored.id),
            user_id=ctx.user_id,
            participants=len(stored.participants),
        )
        if self._audit_logger:
            await self._audit_logger.log_split_expense_created(stored, correlation_id)
        return stored

    async def create_with_debts(
        self,
        ctx: UserContext,
        expense_data: Mapping[str, Any],
    ) -> CreateSplitExpenseResult:
        """
        Store a split expense and create one debt per participant.

        Succeeds even when some debts could not be created; those are
        listed in `failed_debts` for the caller to surface or retry.
        """
        correlation_id = create_correlation_id()
        expense = await self.create(ctx, expense_data, correlation_id=correlation_id)
        allocation = await self._allocation.allocate(
            ctx,
            expense,
            check_existing=False,
            correlation_id=correlation_id,
        )

        return CreateSplitExpenseResult(
            success=True,
            expense=expense,
            debts=allocation.successful_debts,
            failed_debts=allocation.failed_debts,
            summary=CreateSummary(
                expense_id=expense.id,
                total_amount=expense.total_amount,
                participant_count=len(expense.participants),
                debts_created=len(allocation.successful_debts),
                debts_failed=len(allocation.failed_debts),
                notifications_sent=allocation.notifications_sent,
                has_errors=allocation.is_partial,
            ),
        )

    async def list_expenses(self, ctx: UserContext) -> list[SplitExpense]:
        return await self._store.list_expenses(ctx.user_id)

    async def get_expense(self, ctx: UserContext, expense_id: UUID) -> Optional[SplitExpense]:
        expense = await self._store.get_expense(expense_id)
        if expense is not None and ctx.user_id not in (expense.created_by, expense.paid_by):
            raise PermissionDeniedError(
                f"User {ctx.user_id} did not create split expense {expense_id}"
            )
        return expense

    async def _require(self, ctx: UserContext, expense_id: UUID) -> SplitExpense:
        expense = await self.get_expense(ctx, expense_id)
        if expense is None:
            raise NotFoundError(f"Split expense not found: {expense_id}")
        return expense

    async def delete(self, ctx: UserContext, expense_id: UUID) -> CascadeDeleteResult:
        """Delete the expense and its debts. See ReconciliationService."""
        await self._require(ctx, expense_id)
        return await self._reconciliation.delete_expense_and_related_debts(ctx, expense_id)

    async def retry_allocation(self, ctx: UserContext, expense_id: UUID) -> AllocationResult:
        """
        Create whatever debts are missing for an existing expense.

        Participants that already have their debt are skipped.
        Only ever called on request; nothing retries automatically.
        """
        expense = await self._require(ctx, expense_id)
        return await self._allocation.allocate(ctx, expense, check_existing=True)

    async def refresh_status(self, ctx: UserContext, expense_id: UUID) -> SplitExpense:
        """
        Mark the expense settled once every participant's debt is paid.

        An expense with a missing debt is never settled.
        """
        expense = await self._require(ctx, expense_id)
        if expense.status == ExpenseStatus.SETTLED:
            return expense

        debts = await self._ledger.find_debts_for_split_expense(expense.paid_by, expense.id)
        paid_keys = {
            d.allocation_key for d in debts
            if d.allocation_key and d.status == DebtStatus.PAID
        }
        settled = all(
            expense.allocation_key(share) in paid_keys
            for share in expense.participants
        )
        if not settled:
            return expense

        updated = await self._store.update_status(expense.id, ExpenseStatus.SETTLED)
        logger.info("split_expense_settled", expense_id=str(expense.id))
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.split_expense_settled(
                expense_id=expense.id,
                actor_id=ctx.user_id,
            ))
        return updated
