"""
Debt Service

Manual debts and the per-debt operations shared by manual and split debts:
listing by direction, marking paid and deleting.

Only the two parties to a debt may touch it.
"""

from typing import Any, Mapping, Optional, Union
from uuid import UUID

import structlog

from split_ledger.audit import AuditLogger
from split_ledger.models.audit import AuditEventBuilder
from split_ledger.models.ledger import (
    Debt,
    DebtDirection,
    DebtStatus,
    UserContext,
    utcnow,
)
from split_ledger.services.storage import DebtLedgerInterface, NotFoundError
from split_ledger.validation import DebtValidator

logger = structlog.get_logger(__name__)


class DebtServiceError(Exception):
    """Base exception for debt operations."""
    pass


class InvalidDebtStateError(DebtServiceError):
    """The debt is not in a state that allows this operation."""
    pass


class PermissionDeniedError(DebtServiceError):
    """The acting user is not a party to the record."""
    pass


class DebtService:
    """
    Manual debt CRUD against the ledger.

    Usage:
        service = DebtService(ledger)
        debt = await service.create_debt(ctx, {"counterparty_id": "f1", ...})
        await service.mark_paid(ctx, debt.id, payment_method="upi")
    """

    def __init__(
        self,
        ledger: DebtLedgerInterface,
        validator: Optional[DebtValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger
        self._validator = validator or DebtValidator()
        self._audit_logger = audit_logger

    async def create_debt(self, ctx: UserContext, data: Mapping[str, Any]) -> Debt:
        """
        Record a manual debt between the user and a friend.

        Raises:
            ValidationError: Bad input (nothing written)
            StorageError: The ledger write failed
        """
        debt = self._validator.validate(ctx, data)
        created = await self._ledger.create_debt(debt)
        logger.info(
            "debt_created",
            debt_id=str(created.id),
            creditor=created.creditor,
            debtor=created.debtor,
        )
        if self._audit_logger:
            await self._audit_logger.log_debt_created(created)
        return created

    async def list_debts(
        self,
        ctx: UserContext,
        direction: Union[DebtDirection, str],
    ) -> list[Debt]:
        return await self._ledger.list_debts(ctx.user_id, DebtDirection(direction))

    async def _get_own(self, ctx: UserContext, debt_id: UUID) -> Optional[Debt]:
        debt = await self._ledger.get_debt(debt_id)
        if debt is not None and not debt.involves(ctx.user_id):
            raise PermissionDeniedError(f"User {ctx.user_id} is not a party to debt {debt_id}")
        return debt

    async def mark_paid(
        self,
        ctx: UserContext,
        debt_id: UUID,
        payment_method: Optional[str] = None,
    ) -> Debt:
        """
        Settle a pending debt.

        Raises:
            NotFoundError: No such debt
            PermissionDeniedError: The user is not a party to it
            InvalidDebtStateError: It was already paid
        """
        debt = await self._get_own(ctx, debt_id)
        if debt is None:
            raise NotFoundError(f"Debt not found: {debt_id}")
        if debt.status == DebtStatus.PAID:
            raise InvalidDebtStateError(f"Debt {debt_id} is already paid")

        debt.status = DebtStatus.PAID
        debt.paid_at = utcnow()
        debt.payment_method = payment_method
        updated = await self._ledger.update_debt(debt)

        logger.info("debt_paid", debt_id=str(debt_id), user_id=ctx.user_id)
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.debt_paid(
                debt_id=debt_id,
                actor_id=ctx.user_id,
                payment_method=payment_method,
            ))
        return updated

    async def delete_debt(self, ctx: UserContext, debt_id: UUID) -> bool:
        """
        Delete a single debt.

        Deleting a split debt this way leaves its expense with a
        missing allocation; reconciliation will report it.

        Returns:
            False if the debt didn't exist
        """
        debt = await self._get_own(ctx, debt_id)
        if debt is None:
            return False

        deleted = await self._ledger.delete_debt(debt_id)
        if deleted:
            logger.info("debt_deleted", debt_id=str(debt_id), user_id=ctx.user_id)
            if self._audit_logger:
                await self._audit_logger.log(AuditEventBuilder.debt_deleted(
                    debt_id=debt_id,
                    actor_id=ctx.user_id,
                ))
        return deleted
