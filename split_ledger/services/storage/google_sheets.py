"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the remote backend because:
1. Non-technical users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions, which is exactly the failure model the engines assume
- Limited query capabilities (we filter in Python)

gspread is synchronous. Every call runs in a worker thread so the
event loop stays free for the balance aggregator's concurrent reads.
The client's lazy connect and sheet creation are guarded by a lock
because those threads share it.
"""

import asyncio
import json
import threading
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
import structlog
from gspread.utils import rowcol_to_a1
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from split_ledger.config import GoogleSheetsSettings, get_settings
from split_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from split_ledger.models.ledger import (
    Debt,
    DebtDirection,
    DebtStatus,
    DebtType,
    ExpenseStatus,
    SplitExpense,
    SplitShare,
    SplitType,
)
from split_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DebtLedgerInterface,
    DuplicateError,
    NotFoundError,
    SplitExpenseStoreInterface,
    StorageError,
)

logger = structlog.get_logger(__name__)


# Column mappings for SplitExpenses sheet
EXPENSE_COLUMNS = [
    "id",
    "created_by",
    "created_at",
    "description",
    "total_amount",
    "paid_by",
    "split_type",
    "status",
    "splits_json",
]

# Column mappings for Debts sheet
DEBT_COLUMNS = [
    "id",
    "created_at",
    "creditor",
    "debtor",
    "amount",
    "description",
    "type",
    "status",
    "due_date",
    "paid_at",
    "payment_method",
    "split_expense_id",
    "metadata_json",
]

# Column mappings for Notifications sheet
NOTIFICATION_COLUMNS = [
    "notification_id",
    "created_at",
    "expense_id",
    "recipient_id",
    "type",
    "payload_json",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "actor_id",
    "description",
    "details_json",
    "error_message",
]


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for the connection.
    Individual reads and writes are not retried.

    Safe to share between worker threads: authorization, opening the
    spreadsheet and creating missing sheets happen once.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._sheets: dict[str, gspread.Worksheet] = {}
        self._lock = threading.RLock()
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        with self._lock:
            if self._client is None:
                try:
                    scopes = [
                        "https://www.googleapis.com/auth/spreadsheets",
                        "https://www.googleapis.com/auth/drive",
                    ]
                    credentials = Credentials.from_service_account_file(
                        self._settings.credentials_path,
                        scopes=scopes,
                    )
                    self._client = gspread.authorize(credentials)
                except FileNotFoundError:
                    raise ConnectionError(
                        f"Google credentials file not found: {self._settings.credentials_path}"
                    )
                except Exception as e:
                    raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

            return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        with self._lock:
            if self._spreadsheet is None:
                client = self.connect()
                try:
                    self._spreadsheet = client.open_by_key(
                        self._settings.spreadsheet_id
                    )
                except gspread.SpreadsheetNotFound:
                    raise ConnectionError(
                        f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                    )
            return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        with self._lock:
            sheet = self._sheets.get(title)
            if sheet is not None:
                return sheet

            spreadsheet = self.get_spreadsheet()
            try:
                sheet = spreadsheet.worksheet(title)
            except gspread.WorksheetNotFound:
                try:
                    # Create the sheet with headers
                    sheet = spreadsheet.add_worksheet(
                        title=title,
                        rows=rows,
                        cols=len(columns),
                    )
                except gspread.exceptions.APIError:
                    # Another process created it first
                    sheet = spreadsheet.worksheet(title)
                else:
                    sheet.append_row(columns)

            self._sheets[title] = sheet
            return sheet

    def get_expenses_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(
            self._settings.expenses_sheet_name, EXPENSE_COLUMNS
        )

    def get_debts_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(
            self._settings.debts_sheet_name, DEBT_COLUMNS
        )

    def get_notifications_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(
            self._settings.notifications_sheet_name, NOTIFICATION_COLUMNS
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


def _find_row(all_rows: list[list], record_id: UUID) -> Optional[int]:
    """1-based sheet row index of `record_id`, skipping the header."""
    for idx, row in enumerate(all_rows[1:], start=2):
        if row and row[0] == str(record_id):
            return idx
    return None


class GoogleSheetsSplitExpenseStore(SplitExpenseStoreInterface):
    """
    Google Sheets implementation of split expense storage.

    One expense per row. Splits are JSON-serialized.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _expense_to_row(self, expense: SplitExpense) -> list:
        return [
            str(expense.id),
            expense.created_by,
            expense.created_at.isoformat(),
            expense.description,
            str(expense.total_amount),
            expense.paid_by,
            expense.split_type.value,
            expense.status.value,
            json.dumps([s.model_dump(mode="json") for s in expense.splits]),
        ]

    def _row_to_expense(self, row: list) -> SplitExpense:
        splits_json = _safe_get(row, 8)
        return SplitExpense(
            id=UUID(_safe_get(row, 0)),
            created_by=_safe_get(row, 1),
            created_at=datetime.fromisoformat(_safe_get(row, 2)),
            description=_safe_get(row, 3),
            total_amount=Decimal(_safe_get(row, 4)),
            paid_by=_safe_get(row, 5),
            split_type=SplitType(_safe_get(row, 6, SplitType.EQUAL.value)),
            status=ExpenseStatus(_safe_get(row, 7, ExpenseStatus.ACTIVE.value)),
            splits=[SplitShare(**s) for s in json.loads(splits_json)] if splits_json else [],
        )

    def _read_all(self) -> list[SplitExpense]:
        sheet = self._client.get_expenses_sheet()
        expenses = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                expenses.append(self._row_to_expense(row))
            except Exception as e:
                logger.warning("malformed_expense_row", row_id=row[0], error=str(e))
        return expenses

    def _create_sync(self, expense: SplitExpense) -> SplitExpense:
        sheet = self._client.get_expenses_sheet()
        if _find_row(sheet.get_all_values(), expense.id) is not None:
            raise DuplicateError(f"Split expense already exists: {expense.id}")
        sheet.append_row(self._expense_to_row(expense), value_input_option="RAW")
        return expense

    async def create_expense(self, expense: SplitExpense) -> SplitExpense:
        try:
            return await asyncio.to_thread(self._create_sync, expense)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save split expense: {e}")

    def _get_sync(self, expense_id: UUID) -> Optional[SplitExpense]:
        sheet = self._client.get_expenses_sheet()
        for row in sheet.get_all_values()[1:]:
            if row and row[0] == str(expense_id):
                return self._row_to_expense(row)
        return None

    async def get_expense(self, expense_id: UUID) -> Optional[SplitExpense]:
        try:
            return await asyncio.to_thread(self._get_sync, expense_id)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get split expense: {e}")

    async def list_expenses(self, user_id: str) -> list[SplitExpense]:
        try:
            expenses = await asyncio.to_thread(self._read_all)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list split expenses: {e}")
        expenses = [e for e in expenses if user_id in (e.created_by, e.paid_by)]
        expenses.sort(key=lambda e: e.created_at, reverse=True)
        return expenses

    def _update_status_sync(self, expense_id: UUID, status: ExpenseStatus) -> SplitExpense:
        sheet = self._client.get_expenses_sheet()
        all_rows = sheet.get_all_values()
        idx = _find_row(all_rows, expense_id)
        if idx is None:
            raise NotFoundError(f"Split expense not found: {expense_id}")
        expense = self._row_to_expense(all_rows[idx - 1])
        expense.status = status
        sheet.update(
            range_name=rowcol_to_a1(idx, 1),
            values=[self._expense_to_row(expense)],
        )
        return expense

    async def update_status(self, expense_id: UUID, status: ExpenseStatus) -> SplitExpense:
        try:
            return await asyncio.to_thread(self._update_status_sync, expense_id, status)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update split expense: {e}")

    def _delete_sync(self, expense_id: UUID) -> bool:
        sheet = self._client.get_expenses_sheet()
        idx = _find_row(sheet.get_all_values(), expense_id)
        if idx is None:
            return False
        sheet.delete_rows(idx)
        return True

    async def delete_expense(self, expense_id: UUID) -> bool:
        try:
            return await asyncio.to_thread(self._delete_sync, expense_id)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete split expense: {e}")


class GoogleSheetsDebtLedger(DebtLedgerInterface):
    """
    Google Sheets implementation of the debt ledger.

    The split expense id gets its own column so the
    per-expense lookup doesn't have to parse metadata JSON.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _debt_to_row(self, debt: Debt) -> list:
        return [
            str(debt.id),
            debt.created_at.isoformat(),
            debt.creditor,
            debt.debtor,
            str(debt.amount),
            debt.description,
            debt.type.value,
            debt.status.value,
            debt.due_date.isoformat() if debt.due_date else "",
            debt.paid_at.isoformat() if debt.paid_at else "",
            debt.payment_method or "",
            debt.split_expense_id or "",
            json.dumps(debt.metadata, default=str) if debt.metadata else "",
        ]

    def _row_to_debt(self, row: list) -> Debt:
        due_date = _safe_get(row, 8)
        paid_at = _safe_get(row, 9)
        metadata = _safe_get(row, 12)
        return Debt(
            id=UUID(_safe_get(row, 0)),
            created_at=datetime.fromisoformat(_safe_get(row, 1)),
            creditor=_safe_get(row, 2),
            debtor=_safe_get(row, 3),
            amount=Decimal(_safe_get(row, 4)),
            description=_safe_get(row, 5),
            type=DebtType(_safe_get(row, 6, DebtType.MANUAL.value)),
            status=DebtStatus(_safe_get(row, 7, DebtStatus.PENDING.value)),
            due_date=date.fromisoformat(due_date) if due_date else None,
            paid_at=datetime.fromisoformat(paid_at) if paid_at else None,
            payment_method=_safe_get(row, 10) or None,
            metadata=json.loads(metadata) if metadata else {},
        )

    def _read_rows(self) -> list[list]:
        return self._client.get_debts_sheet().get_all_values()[1:]

    def _parse_rows(self, rows: list[list]) -> list[Debt]:
        debts = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                debts.append(self._row_to_debt(row))
            except Exception as e:
                logger.warning("malformed_debt_row", row_id=row[0], error=str(e))
        return debts

    def _create_sync(self, debt: Debt) -> Debt:
        sheet = self._client.get_debts_sheet()
        if _find_row(sheet.get_all_values(), debt.id) is not None:
            raise DuplicateError(f"Debt already exists: {debt.id}")
        sheet.append_row(self._debt_to_row(debt), value_input_option="RAW")
        return debt

    async def create_debt(self, debt: Debt) -> Debt:
        try:
            return await asyncio.to_thread(self._create_sync, debt)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save debt: {e}")

    async def get_debt(self, debt_id: UUID) -> Optional[Debt]:
        try:
            rows = await asyncio.to_thread(self._read_rows)
            for row in rows:
                if row and row[0] == str(debt_id):
                    return self._row_to_debt(row)
            return None
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get debt: {e}")

    async def list_debts(self, user_id: str, direction: DebtDirection) -> list[Debt]:
        try:
            rows = await asyncio.to_thread(self._read_rows)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list debts: {e}")

        debts = self._parse_rows(rows)
        if direction == DebtDirection.OWED_TO_ME:
            debts = [d for d in debts if d.creditor == user_id]
        else:
            debts = [d for d in debts if d.debtor == user_id]
        debts.sort(key=lambda d: d.created_at, reverse=True)
        return debts

    def _update_sync(self, debt: Debt) -> Debt:
        sheet = self._client.get_debts_sheet()
        idx = _find_row(sheet.get_all_values(), debt.id)
        if idx is None:
            raise NotFoundError(f"Debt not found: {debt.id}")
        sheet.update(
            range_name=rowcol_to_a1(idx, 1),
            values=[self._debt_to_row(debt)],
        )
        return debt

    async def update_debt(self, debt: Debt) -> Debt:
        try:
            return await asyncio.to_thread(self._update_sync, debt)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update debt: {e}")

    def _delete_sync(self, debt_id: UUID) -> bool:
        sheet = self._client.get_debts_sheet()
        idx = _find_row(sheet.get_all_values(), debt_id)
        if idx is None:
            return False
        sheet.delete_rows(idx)
        return True

    async def delete_debt(self, debt_id: UUID) -> bool:
        try:
            return await asyncio.to_thread(self._delete_sync, debt_id)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete debt: {e}")

    async def find_debts_for_split_expense(
        self,
        user_id: str,
        expense_id: UUID,
    ) -> list[Debt]:
        try:
            rows = await asyncio.to_thread(self._read_rows)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to look up debts for split expense: {e}")

        # Filter on the dedicated column before parsing anything
        matching = [
            row for row in rows
            if len(row) > 11 and row[11] == str(expense_id) and row[2] == user_id
        ]
        return self._parse_rows(matching)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        details = _safe_get(row, 9)
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            entity_type=_safe_get(row, 4) or None,
            entity_id=UUID(_safe_get(row, 5)) if _safe_get(row, 5) else None,
            correlation_id=UUID(_safe_get(row, 6)) if _safe_get(row, 6) else None,
            actor_id=_safe_get(row, 7) or None,
            description=_safe_get(row, 8),
            details=json.loads(details) if details else {},
            error_message=_safe_get(row, 10) or None,
        )

    def _append_sync(self, event: AuditEvent) -> None:
        sheet = self._client.get_audit_sheet()
        sheet.append_row(event.to_sheets_row(), value_input_option="RAW")

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            await asyncio.to_thread(self._append_sync, event)
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_append_failed", event_id=str(event.event_id), error=str(e))
            return False

    async def _load_events(self) -> list[AuditEvent]:
        try:
            rows = await asyncio.to_thread(
                lambda: self._client.get_audit_sheet().get_all_values()[1:]
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except Exception:
                continue
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in await self._load_events()
            if e.correlation_id == correlation_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in await self._load_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = await self._load_events()
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
