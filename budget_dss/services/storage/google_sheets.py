"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the durable backend because:
1. Non-technical users can view committed month plans directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- No transactions. The version check in append_state reads the sheet and
  then appends, so it only protects against writers in other processes
  on a best-effort basis. Within one process the orchestrator's per-month
  lock serializes finalize.
- Limited query capabilities (we filter in Python)

Month states are stored one row per version with the full state as JSON.
"""

import json
from datetime import datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from budget_dss.config import get_settings
from budget_dss.models.audit import AuditEvent, AuditEventType, AuditSeverity
from budget_dss.models.workflow import MonthStateVersion
from budget_dss.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    MonthStateStorageInterface,
    StorageError,
    VersionConflictError,
)


logger = structlog.get_logger("budget_dss.storage")


# Column mappings for MonthStates sheet
MONTH_STATE_COLUMNS = [
    "month_id",
    "version",
    "created_at",
    "monthly_income",
    "total_allocated",
    "to_be_budgeted",
    "correlation_id",
    "state_json",
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
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

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

    def _get_or_create_sheet(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_month_states_sheet(self) -> gspread.Worksheet:
        """Get or create the MonthStates worksheet."""
        return self._get_or_create_sheet(
            self._settings.month_states_sheet_name, MONTH_STATE_COLUMNS, 1000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000
        )


class GoogleSheetsMonthStateStorage(MonthStateStorageInterface):
    """
    Google Sheets implementation of month state storage.

    Each committed version is one row. The state itself is JSON in the
    last column; the other columns are there for people reading the sheet.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _state_to_row(self, state: MonthStateVersion) -> list:
        """Convert a MonthStateVersion to a spreadsheet row."""
        return [
            state.month_id,
            str(state.version),
            state.created_at.isoformat(),
            str(state.monthly_income),
            str(state.total_allocated),
            str(state.to_be_budgeted),
            str(state.correlation_id) if state.correlation_id else "",
            state.model_dump_json(),
        ]

    def _row_to_state(self, row: list) -> MonthStateVersion:
        """Convert a spreadsheet row to a MonthStateVersion."""
        return MonthStateVersion.model_validate_json(_safe_get(row, 7))

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _rows_for_month(self, month_id: str) -> list[list]:
        try:
            sheet = self._client.get_month_states_sheet()
            all_rows = sheet.get_all_values()[1:]
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read month states: {e}")
        return [row for row in all_rows if row and row[0] == month_id]

    async def get_current_version(self, month_id: str) -> int:
        rows = self._rows_for_month(month_id)
        versions = [int(_safe_get(row, 1, "0")) for row in rows]
        return max(versions) if versions else 0

    async def get_latest_state(self, month_id: str) -> Optional[MonthStateVersion]:
        versions = await self.list_versions(month_id)
        return versions[-1] if versions else None

    async def list_versions(self, month_id: str) -> list[MonthStateVersion]:
        states = [self._row_to_state(row) for row in self._rows_for_month(month_id)]
        states.sort(key=lambda s: s.version)
        return states

    @retry(
        retry=retry_if_not_exception_type(VersionConflictError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_state(
        self,
        state: MonthStateVersion,
        expected_version: int,
    ) -> MonthStateVersion:
        """Append a month state version to Google Sheets."""
        current = await self.get_current_version(state.month_id)
        if current != expected_version:
            raise VersionConflictError(state.month_id, expected_version, current)
        if state.version != expected_version + 1:
            raise StorageError(
                f"Version {state.version} does not follow {expected_version} "
                f"for month {state.month_id}"
            )
        try:
            sheet = self._client.get_month_states_sheet()
            sheet.append_row(self._state_to_row(state), value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to save month state: {e}")
        return state


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            entity_type=_safe_get(row, 4) or None,
            entity_id=_safe_get(row, 5) or None,
            correlation_id=UUID(_safe_get(row, 6)) if _safe_get(row, 6) else None,
            description=_safe_get(row, 7),
            details=json.loads(_safe_get(row, 8)) if _safe_get(row, 8) else {},
            error_message=_safe_get(row, 9) or None,
            is_user_action=_safe_get(row, 10).lower() == "true",
        )

    def _read_events(self, predicate) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0] or not predicate(row):
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError as e:
                logger.warning("audit_row_unreadable", event_id=row[0], error=str(e))
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning(
                "audit_event_write_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        events = self._read_events(
            lambda row: len(row) > 6 and row[6] == str(correlation_id)
        )
        # Sort chronologically
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        events = self._read_events(
            lambda row: len(row) > 5 and row[4] == entity_type and row[5] == entity_id
        )
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        events = self._read_events(lambda row: True)
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
