"""
Participant Notifications

DESIGN DECISION: Notifying participants is best-effort.
A split expense is real whether or not anyone was told about it,
so the engines treat this interface as fire-and-report: they await
`send`, log whatever it raises, and move on.

Delivery transport (email, push) is out of scope. The Sheets dispatcher
writes one row per recipient for a separate delivery job to pick up.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID, uuid4

from split_ledger.models.ledger import utcnow
from split_ledger.models.results import NotificationReceipt, NotificationType
from split_ledger.services.storage.google_sheets import GoogleSheetsClient


class NotificationError(Exception):
    """Notification could not be queued."""
    pass


class NotificationDispatcherInterface(ABC):
    """Abstract interface for participant notifications."""

    @abstractmethod
    async def send(
        self,
        expense_id: UUID,
        recipient_ids: list[str],
        notification_type: NotificationType,
        payload: dict[str, Any],
    ) -> NotificationReceipt:
        """
        Queue one notification per recipient.

        Args:
            expense_id: Split expense the notification is about
            recipient_ids: Participant keys to notify
            notification_type: What happened
            payload: Display data (description, amounts, payer)

        Raises:
            NotificationError: If nothing could be queued
        """
        pass


def _dedupe(recipient_ids: list[str]) -> tuple[list[str], int]:
    seen: list[str] = []
    for recipient in recipient_ids:
        if recipient and recipient not in seen:
            seen.append(recipient)
    return seen, len(recipient_ids) - len(seen)


class InMemoryNotificationDispatcher(NotificationDispatcherInterface):
    """Records notifications in a list. Used in tests and local runs."""

    def __init__(self):
        self.sent: list[dict[str, Any]] = []

    async def send(
        self,
        expense_id: UUID,
        recipient_ids: list[str],
        notification_type: NotificationType,
        payload: dict[str, Any],
    ) -> NotificationReceipt:
        recipients, skipped = _dedupe(recipient_ids)
        for recipient in recipients:
            self.sent.append({
                "expense_id": expense_id,
                "recipient_id": recipient,
                "type": notification_type,
                "payload": dict(payload),
            })
        return NotificationReceipt(sent=len(recipients), skipped=skipped)


class GoogleSheetsNotificationDispatcher(NotificationDispatcherInterface):
    """Appends notification rows to the Notifications sheet."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _append_sync(self, rows: list[list]) -> None:
        sheet = self._client.get_notifications_sheet()
        sheet.append_rows(rows, value_input_option="RAW")

    async def send(
        self,
        expense_id: UUID,
        recipient_ids: list[str],
        notification_type: NotificationType,
        payload: dict[str, Any],
    ) -> NotificationReceipt:
        recipients, skipped = _dedupe(recipient_ids)
        if not recipients:
            return NotificationReceipt(sent=0, skipped=skipped)

        created_at = utcnow().isoformat()
        payload_json = json.dumps(payload, default=str)
        rows = [
            [
                str(uuid4()),
                created_at,
                str(expense_id),
                recipient,
                notification_type.value,
                payload_json,
            ]
            for recipient in recipients
        ]
        try:
            await asyncio.to_thread(self._append_sync, rows)
        except Exception as e:
            raise NotificationError(f"Failed to queue notifications: {e}")
        return NotificationReceipt(sent=len(recipients), skipped=skipped)
