"""
Debt Allocation Engine

Turns one stored split expense into one pending debt per participant.

DESIGN DECISION: Participants are processed one at a time, in split order,
through a rate limiter. A failure for one participant is recorded and the
loop moves on. The expense already exists at this point, so the only
useful outcome is an exact account of which debts made it.

Each debt carries an allocation key `<expense_id>:<participant_key>`.
Participants that already have a debt with their key are skipped, which
makes re-running the allocation for the same expense safe.
"""

from typing import Any, Optional
from uuid import UUID

import structlog

from split_ledger.audit import AuditLogger
from split_ledger.config import LedgerSettings, get_settings
from split_ledger.engine.throttle import RateLimiter
from split_ledger.models.audit import AuditEventBuilder
from split_ledger.models.ledger import (
    Debt,
    DebtType,
    SplitExpense,
    SplitShare,
    UserContext,
)
from split_ledger.models.results import (
    AllocationResult,
    FailureRecord,
    NotificationType,
)
from split_ledger.services.notifications import NotificationDispatcherInterface
from split_ledger.services.storage import DebtLedgerInterface

logger = structlog.get_logger(__name__)


def payer_identity(ctx: UserContext, expense: SplitExpense) -> dict[str, Optional[str]]:
    """Snapshot of who paid, for debt metadata and notifications."""
    if expense.paid_by == ctx.user_id:
        return {"payer_id": ctx.user_id, "payer_name": ctx.name, "payer_email": ctx.email}

    for share in expense.splits:
        if share.participant_key == expense.paid_by:
            return {
                "payer_id": expense.paid_by,
                "payer_name": share.participant_name,
                "payer_email": share.participant_email,
            }
    return {"payer_id": expense.paid_by, "payer_name": None, "payer_email": None}


def build_split_debt(
    ctx: UserContext,
    expense: SplitExpense,
    share: SplitShare,
) -> Debt:
    """The debt `share`'s participant owes the payer of `expense`."""
    metadata: dict[str, Any] = {
        "split_expense_id": str(expense.id),
        "original_amount": str(expense.total_amount),
        "split_type": expense.split_type.value,
        "participant_count": expense.participant_count,
        **payer_identity(ctx, expense),
        "allocation_key": expense.allocation_key(share),
        "participant_name": share.participant_name,
        "participant_email": share.participant_email,
        "created_via": "split_expense",
    }
    return Debt(
        creditor=expense.paid_by,
        debtor=share.participant_key,
        amount=share.amount,
        description=f"Split expense: {expense.description}",
        type=DebtType.SPLIT,
        metadata=metadata,
    )


class DebtAllocationEngine:
    """
    Fans a split expense out into per-participant debts.

    Usage:
        engine = DebtAllocationEngine(ledger, notifier=dispatcher)
        result = await engine.allocate(ctx, expense)
    """

    def __init__(
        self,
        ledger: DebtLedgerInterface,
        notifier: Optional[NotificationDispatcherInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        limiter: Optional[RateLimiter] = None,
        settings: Optional[LedgerSettings] = None,
        currency_code: Optional[str] = None,
    ):
        self._ledger = ledger
        self._notifier = notifier
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().ledger
        self._limiter = limiter or RateLimiter.from_settings(self._settings)
        self._currency_code = currency_code or get_settings().app.currency_code

    async def allocate(
        self,
        ctx: UserContext,
        expense: SplitExpense,
        check_existing: bool = True,
        correlation_id: Optional[UUID] = None,
    ) -> AllocationResult:
        """
        Create the debts for `expense`.

        Args:
            ctx: The acting user
            expense: A stored split expense
            check_existing: Look up debts already derived from this expense
                and skip their participants. Can be turned off for an
                expense that was stored a moment ago.
            correlation_id: Ties audit events to the calling operation

        Returns:
            AllocationResult. Failed participants are listed, never raised.

        Raises:
            StorageError: Only if the existing-debt lookup fails,
                in which case nothing has been written.
        """
        result = AllocationResult(expense_id=expense.id)
        log = logger.bind(expense_id=str(expense.id), user_id=ctx.user_id)

        allocated: set[str] = set()
        if check_existing:
            existing = await self._ledger.find_debts_for_split_expense(
                expense.paid_by, expense.id
            )
            allocated = {d.allocation_key for d in existing if d.allocation_key}

        for share in expense.participants:
            key = expense.allocation_key(share)
            if key in allocated:
                result.skipped_participants.append(share.participant_key)
                continue

            await self._limiter.acquire()
            try:
                debt = build_split_debt(ctx, expense, share)
                created = await self._ledger.create_debt(debt)
            except Exception as e:
                log.warning(
                    "split_debt_failed",
                    participant=share.participant_key,
                    error=str(e),
                )
                result.failed_debts.append(FailureRecord(
                    participant_key=share.participant_key,
                    participant_name=share.participant_name,
                    participant_email=share.participant_email,
                    amount=share.amount,
                    error=str(e) or type(e).__name__,
                ))
                if self._audit_logger:
                    await self._audit_logger.log_debt_creation_failed(
                        expense_id=expense.id,
                        participant_key=share.participant_key,
                        amount=str(share.amount),
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                continue

            allocated.add(key)
            result.successful_debts.append(created)
            if self._audit_logger:
                await self._audit_logger.log_debt_created(created, correlation_id)

        result.notifications_sent = await self._notify(ctx, expense, result, correlation_id)

        log.info(
            "allocation_completed",
            created=len(result.successful_debts),
            failed=len(result.failed_debts),
            skipped=len(result.skipped_participants),
        )
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.allocation_completed(
                expense_id=expense.id,
                created=len(result.successful_debts),
                failed=len(result.failed_debts),
                skipped=len(result.skipped_participants),
                correlation_id=correlation_id,
            ))
        return result

    async def _notify(
        self,
        ctx: UserContext,
        expense: SplitExpense,
        result: AllocationResult,
        correlation_id: Optional[UUID],
    ) -> int:
        """Tell the debtors whose debt was created. Never raises."""
        if not self._notifier or not self._settings.notifications_enabled:
            return 0
        if not result.successful_debts:
            return 0

        payer = payer_identity(ctx, expense)
        payload = {
            "description": expense.description,
            "total_amount": str(expense.total_amount),
            "currency": self._currency_code,
            "split_type": expense.split_type.value,
            "payer_id": payer["payer_id"],
            "payer_name": payer["payer_name"],
            "amounts": {d.debtor: str(d.amount) for d in result.successful_debts},
        }
        recipients = [d.debtor for d in result.successful_debts]
        try:
            receipt = await self._notifier.send(
                expense.id,
                recipients,
                NotificationType.EXPENSE_SPLIT,
                payload,
            )
        except Exception as e:
            logger.warning(
                "split_notification_failed",
                expense_id=str(expense.id),
                recipients=len(recipients),
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log(AuditEventBuilder.notification_failed(
                    expense_id=expense.id,
                    recipient_count=len(recipients),
                    error_message=str(e),
                    correlation_id=correlation_id,
                ))
            return 0
        return receipt.sent
