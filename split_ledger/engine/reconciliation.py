"""
Reconciliation Service

Keeps split expenses and the debts derived from them in step.

DESIGN DECISION: The store has no transactions and no foreign keys.
Deleting an expense is done debts-first so that the worst partial outcome
is the one we can detect later: a debt whose expense is gone (an orphan).
The reverse order would leave an expense whose debts silently vanished.

The expense record doubles as the intent record for its debts: it lists
every participant, so a pass over all expenses and debts can report
both orphans and participants that never got their debt.
"""

import asyncio
from typing import Awaitable, Callable, Optional
from uuid import UUID

import structlog

from split_ledger.audit import AuditLogger, create_correlation_id
from split_ledger.config import LedgerSettings, get_settings
from split_ledger.engine.throttle import RateLimiter
from split_ledger.models.audit import AuditEventBuilder
from split_ledger.models.ledger import (
    Debt,
    DebtDirection,
    DebtType,
    ExpenseStatus,
    SplitExpense,
    UserContext,
)
from split_ledger.models.results import (
    CascadeDeleteResult,
    MissingAllocation,
    ReconciliationReport,
)
from split_ledger.services.storage import (
    DebtLedgerInterface,
    NotFoundError,
    SplitExpenseStoreInterface,
)

logger = structlog.get_logger(__name__)


class ConsistencyGapError(Exception):
    """
    Debts were deleted but the expense record wasn't.

    Carries the partial result; nothing is rolled back.
    """

    def __init__(self, message: str, result: CascadeDeleteResult):
        self.result = result
        super().__init__(message)


def find_orphans(debts: list[Debt], expense_ids: set[str]) -> list[Debt]:
    """Split debts whose expense id doesn't resolve to a known expense."""
    return [
        d for d in debts
        if d.type == DebtType.SPLIT and d.split_expense_id not in expense_ids
    ]


class ReconciliationService:
    """
    Cascade delete plus the orphan / missing-allocation pass.

    Usage:
        service = ReconciliationService(store, ledger, audit_logger=audit)
        result = await service.delete_expense_and_related_debts(ctx, expense_id)
        report = await service.reconcile(ctx, repair=True)
    """

    def __init__(
        self,
        store: SplitExpenseStoreInterface,
        ledger: DebtLedgerInterface,
        audit_logger: Optional[AuditLogger] = None,
        limiter: Optional[RateLimiter] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._ledger = ledger
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().ledger
        self._limiter = limiter or RateLimiter.from_settings(self._settings)

    async def delete_expense_and_related_debts(
        self,
        ctx: UserContext,
        expense_id: UUID,
    ) -> CascadeDeleteResult:
        """
        Delete an expense and every debt derived from it.

        Returns:
            CascadeDeleteResult. Debts that couldn't be deleted are counted
            in `debts_failed` and left behind as orphans.

        Raises:
            NotFoundError: The expense doesn't exist (nothing written)
            StorageError: Looking up the expense or its debts failed
                (nothing written)
            ConsistencyGapError: Deleting the expense itself failed
                after its debts were processed
        """
        correlation_id = create_correlation_id()
        log = logger.bind(expense_id=str(expense_id), user_id=ctx.user_id)

        expense = await self._store.get_expense(expense_id)
        if expense is None:
            raise NotFoundError(f"Split expense not found: {expense_id}")

        debts = await self._ledger.find_debts_for_split_expense(
            expense.paid_by, expense_id
        )
        result = CascadeDeleteResult(expense_id=expense_id, debts_found=len(debts))

        for debt in debts:
            await self._limiter.acquire()
            try:
                await self._ledger.delete_debt(debt.id)
            except Exception as e:
                result.debts_failed += 1
                log.warning("related_debt_delete_failed", debt_id=str(debt.id), error=str(e))
                if self._audit_logger:
                    await self._audit_logger.log(AuditEventBuilder.debt_deletion_failed(
                        debt_id=debt.id,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    ))
                continue
            result.debts_deleted += 1

        try:
            await self._store.delete_expense(expense_id)
        except Exception as e:
            log.error(
                "split_expense_delete_failed",
                debts_deleted=result.debts_deleted,
                debts_failed=result.debts_failed,
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_consistency_gap(
                    expense_id=expense_id,
                    reason=f"expense delete failed: {e}",
                    counts=result.model_dump(mode="json"),
                    correlation_id=correlation_id,
                )
            raise ConsistencyGapError(
                f"Deleted {result.debts_deleted} of {result.debts_found} debts "
                f"but the expense could not be deleted: {e}",
                result,
            ) from e

        result.expense_deleted = True

        if result.debts_failed:
            log.warning("cascade_delete_left_orphans", debts_failed=result.debts_failed)
            if self._audit_logger:
                await self._audit_logger.log_consistency_gap(
                    expense_id=expense_id,
                    reason=f"{result.debts_failed} debts left without their expense",
                    counts=result.model_dump(mode="json"),
                    correlation_id=correlation_id,
                )

        log.info(
            "cascade_delete_completed",
            debts_deleted=result.debts_deleted,
            debts_failed=result.debts_failed,
        )
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.cascade_delete_completed(
                expense_id=expense_id,
                debts_deleted=result.debts_deleted,
                debts_failed=result.debts_failed,
                actor_id=ctx.user_id,
                correlation_id=correlation_id,
            ))
        return result

    async def _snapshot(self, ctx: UserContext) -> tuple[list[SplitExpense], list[Debt]]:
        expenses, debts = await asyncio.gather(
            self._store.list_expenses(ctx.user_id),
            self._ledger.list_debts(ctx.user_id, DebtDirection.OWED_TO_ME),
        )
        return expenses, debts

    async def find_orphaned_debts(self, ctx: UserContext) -> list[Debt]:
        """Split debts owed to the user whose expense no longer exists."""
        expenses, debts = await self._snapshot(ctx)
        return find_orphans(debts, {str(e.id) for e in expenses})

    async def find_missing_allocations(self, ctx: UserContext) -> list[MissingAllocation]:
        """Active expenses paid by the user with participants that have no debt."""
        expenses, debts = await self._snapshot(ctx)
        return self._missing(ctx, expenses, debts)

    def _missing(
        self,
        ctx: UserContext,
        expenses: list[SplitExpense],
        debts: list[Debt],
    ) -> list[MissingAllocation]:
        keys = {d.allocation_key for d in debts if d.allocation_key}
        missing = []
        for expense in expenses:
            # debts of expenses paid by someone else are owed to them
            if expense.status != ExpenseStatus.ACTIVE or expense.paid_by != ctx.user_id:
                continue
            absent = [
                share.participant_key for share in expense.participants
                if expense.allocation_key(share) not in keys
            ]
            if absent:
                missing.append(MissingAllocation(
                    expense_id=expense.id,
                    missing_participants=absent,
                ))
        return missing

    async def reconcile(self, ctx: UserContext, repair: bool = False) -> ReconciliationReport:
        """
        One reconciliation pass over the user's expenses and debts.

        With `repair`, orphaned debts are deleted. Missing allocations are
        only reported; recreating them is left to the caller.
        """
        expenses, debts = await self._snapshot(ctx)
        orphans = find_orphans(debts, {str(e.id) for e in expenses})

        report = ReconciliationReport(
            expenses_checked=len(expenses),
            debts_checked=len(debts),
            orphaned_debt_ids=[d.id for d in orphans],
            missing_allocations=self._missing(ctx, expenses, debts),
        )

        if orphans:
            logger.warning("orphaned_debts_detected", user_id=ctx.user_id, count=len(orphans))
            if self._audit_logger:
                await self._audit_logger.log(AuditEventBuilder.orphaned_debts_detected(
                    debt_ids=report.orphaned_debt_ids,
                    actor_id=ctx.user_id,
                ))

        if repair:
            for debt in orphans:
                await self._limiter.acquire()
                try:
                    await self._ledger.delete_debt(debt.id)
                except Exception as e:
                    report.repair_failures += 1
                    logger.warning("orphan_repair_failed", debt_id=str(debt.id), error=str(e))
                    continue
                report.repaired_debt_ids.append(debt.id)
                if self._audit_logger:
                    await self._audit_logger.log(AuditEventBuilder.orphaned_debt_repaired(
                        debt_id=debt.id,
                        split_expense_id=debt.split_expense_id,
                        actor_id=ctx.user_id,
                    ))

        logger.info(
            "reconciliation_completed",
            user_id=ctx.user_id,
            orphans=len(report.orphaned_debt_ids),
            missing=len(report.missing_allocations),
            repaired=len(report.repaired_debt_ids),
        )
        return report

    async def run_periodically(
        self,
        ctx: UserContext,
        interval_seconds: Optional[float] = None,
        repair: bool = False,
        iterations: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> list[ReconciliationReport]:
        """
        Run `reconcile` every `interval_seconds`.

        Runs forever when `iterations` is None, in which case reports are
        not kept. A failed pass is logged and the loop keeps going.
        """
        interval = (
            interval_seconds if interval_seconds is not None
            else self._settings.reconcile_interval_seconds
        )
        reports: list[ReconciliationReport] = []
        run = 0
        while iterations is None or run < iterations:
            if run:
                await sleep(interval)
            run += 1
            try:
                report = await self.reconcile(ctx, repair=repair)
                if iterations is not None:
                    reports.append(report)
            except Exception as e:
                logger.error("reconciliation_pass_failed", user_id=ctx.user_id, error=str(e))
                if self._audit_logger:
                    await self._audit_logger.log_error(
                        error_type="reconciliation_failed",
                        error_message=str(e),
                    )
        return reports
