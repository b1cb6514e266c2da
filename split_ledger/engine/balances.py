"""
Balance Aggregator

Builds the user's balance overview from three independent reads:
debts owed to them, debts they owe, and their split expenses.

DESIGN DECISION: The reads run concurrently and a failed read does not
fail the summary. It counts as empty and is named in `degraded_sources`,
so a flaky backend yields a partial overview instead of none.

Only pending debts count toward money figures. Paid debts are settled
and would otherwise inflate what the user is owed.
"""

import asyncio
from typing import Optional

import structlog

from split_ledger.audit import AuditLogger
from split_ledger.engine.reconciliation import find_orphans
from split_ledger.models.audit import AuditEventBuilder
from split_ledger.models.ledger import Debt, DebtDirection, DebtType, UserContext
from split_ledger.models.results import BalanceSummary, IntegrationHealth
from split_ledger.money import qround, sum_amounts
from split_ledger.services.storage import DebtLedgerInterface, SplitExpenseStoreInterface

logger = structlog.get_logger(__name__)

SOURCE_OWED_TO_ME = "owed_to_me"
SOURCE_OWED_BY_ME = "owed_by_me"
SOURCE_SPLIT_EXPENSES = "split_expenses"


def _total(debts: list[Debt]):
    return qround(sum_amounts(d.amount for d in debts))


class BalanceAggregator:
    """
    Read-only balance summary.

    Usage:
        aggregator = BalanceAggregator(store, ledger)
        summary = await aggregator.compute_summary(ctx)
        summary.net_balance
    """

    def __init__(
        self,
        store: SplitExpenseStoreInterface,
        ledger: DebtLedgerInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._ledger = ledger
        self._audit_logger = audit_logger

    async def compute_summary(self, ctx: UserContext) -> BalanceSummary:
        sources = (SOURCE_OWED_TO_ME, SOURCE_OWED_BY_ME, SOURCE_SPLIT_EXPENSES)
        results = await asyncio.gather(
            self._ledger.list_debts(ctx.user_id, DebtDirection.OWED_TO_ME),
            self._ledger.list_debts(ctx.user_id, DebtDirection.OWED_BY_ME),
            self._store.list_expenses(ctx.user_id),
            return_exceptions=True,
        )

        degraded = []
        loaded = []
        for source, outcome in zip(sources, results):
            if isinstance(outcome, Exception):
                logger.warning(
                    "summary_source_failed",
                    source=source,
                    user_id=ctx.user_id,
                    error=str(outcome),
                )
                degraded.append(source)
                loaded.append([])
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                loaded.append(outcome)
        owed_to_me, owed_by_me, expenses = loaded

        pending_to_me = [d for d in owed_to_me if d.is_pending]
        pending_by_me = [d for d in owed_by_me if d.is_pending]
        split_debts = [d for d in pending_to_me if d.type == DebtType.SPLIT]
        regular_debts = [d for d in pending_to_me if d.type != DebtType.SPLIT]

        total_owed_to_me = _total(pending_to_me)
        total_owed_by_me = _total(pending_by_me)
        split_amount = _total(split_debts)

        summary = BalanceSummary(
            total_owed_to_me=total_owed_to_me,
            total_owed_by_me=total_owed_by_me,
            net_balance=total_owed_to_me - total_owed_by_me,
            split_expense_amount=split_amount,
            regular_amount=total_owed_to_me - split_amount,
            owed_to_me_count=len(pending_to_me),
            owed_by_me_count=len(pending_by_me),
            split_expense_debt_count=len(split_debts),
            regular_debt_count=len(regular_debts),
            split_expense_count=len(expenses),
            total_split_expense_amount=qround(sum_amounts(e.total_amount for e in expenses)),
            integration_health=self._health(owed_to_me, expenses, SOURCE_SPLIT_EXPENSES in degraded),
            degraded_sources=degraded,
        )

        if degraded and self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.summary_degraded(
                sources=degraded,
                actor_id=ctx.user_id,
            ))
        return summary

    def _health(self, owed_to_me: list[Debt], expenses: list, expenses_missing: bool) -> IntegrationHealth:
        """
        Link health over every debt owed to the user, paid or not.

        Without the expense list no debt can be matched to an expense,
        so both counts stay at zero.
        """
        if expenses_missing:
            return IntegrationHealth()

        referenced = {
            d.split_expense_id for d in owed_to_me
            if d.type == DebtType.SPLIT and d.split_expense_id
        }
        expense_ids = {str(e.id) for e in expenses}
        return IntegrationHealth(
            split_expenses_with_debts=len(referenced & expense_ids),
            orphaned_debts=len(find_orphans(owed_to_me, expense_ids)),
        )
