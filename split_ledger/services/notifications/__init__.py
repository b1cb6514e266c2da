"""Participant notification package."""

from split_ledger.services.notifications.dispatcher import (
    GoogleSheetsNotificationDispatcher,
    InMemoryNotificationDispatcher,
    NotificationDispatcherInterface,
    NotificationError,
)

__all__ = [
    "GoogleSheetsNotificationDispatcher",
    "InMemoryNotificationDispatcher",
    "NotificationDispatcherInterface",
    "NotificationError",
]
