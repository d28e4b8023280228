"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the remote store because:
1. Both parties can look at the numbers directly in Sheets
2. A spreadsheet is all the infrastructure a two-person ledger needs
3. Sheets keeps its own revision history of every cell

Layout:
- Settlements sheet: one row per settlement document
  (doc_id, mine_json, siblings_json, last_updated)
- MonthlyRecords sheet: one row per YYYY-MM key
- ConnectionTest sheet: read by the connectivity probe

TRADEOFFS:
- No server-assigned timestamps, the backend stamps UTC time at write
- No transactions, each document is written as one row range update
- gspread is blocking, so every call runs in a worker thread

The implementation follows the abstract interface, so a real document
database can replace it without touching the gateway or the archive.
"""

import asyncio
import json
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional, TypeVar

import gspread
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1

from billsplit.config import GoogleSheetsSettings, get_settings
from billsplit.services.storage.interface import (
    ConnectivityError,
    DuplicateError,
    MonthlyRecordStorageInterface,
    NotFoundError,
    SettlementStorageInterface,
    StorageError,
)


T = TypeVar("T")

# Column mappings for Settlements sheet
SETTLEMENT_COLUMNS = [
    "doc_id",
    "mine_json",
    "siblings_json",
    "last_updated",
]

# Column mappings for MonthlyRecords sheet
MONTHLY_COLUMNS = [
    "year_month",
    "total_mine",
    "total_siblings",
    "settlement_amount",
    "mine_items_json",
    "siblings_items_json",
    "created_at",
    "last_updated",
]

CONNECTION_TEST_COLUMNS = ["status"]


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _write_error(message: str, error: Exception) -> StorageError:
    """API rejections are storage errors, anything else is unreachable."""
    if isinstance(error, gspread.exceptions.APIError):
        return StorageError(f"{message}: {error}")
    return ConnectivityError(f"{message}: {error}")


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


async def _in_thread(func: Callable[..., T], *args, **kwargs) -> T:
    return await asyncio.to_thread(func, *args, **kwargs)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet creation. It does not retry:
    every call is already wrapped by the caller's RetryPolicy.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets
        # Calls run in worker threads; a timed-out attempt may still be running
        self._lock = threading.RLock()

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication. Failures
        raise ConnectivityError at once.
        """
        with self._lock:
            return self._connect()

    def _connect(self) -> gspread.Client:
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
                raise ConnectivityError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectivityError(f"Failed to connect to Google Sheets: {e}")

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
                    raise ConnectivityError(
                        f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                    )
            return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        with self._lock:
            spreadsheet = self.get_spreadsheet()
            try:
                sheet = spreadsheet.worksheet(title)
            except gspread.WorksheetNotFound:
                # New worksheet starts with its header row
                sheet = spreadsheet.add_worksheet(
                    title=title,
                    rows=rows,
                    cols=len(columns),
                )
                sheet.append_row(columns)
            return sheet

    def get_settlement_sheet(self) -> gspread.Worksheet:
        """Get or create the Settlements worksheet."""
        return self._get_or_create_sheet(
            self._settings.settlement_sheet_name, SETTLEMENT_COLUMNS, rows=10,
        )

    def get_monthly_sheet(self) -> gspread.Worksheet:
        """Get or create the MonthlyRecords worksheet."""
        return self._get_or_create_sheet(
            self._settings.monthly_sheet_name, MONTHLY_COLUMNS, rows=240,
        )

    def get_connection_test_sheet(self) -> gspread.Worksheet:
        """Get or create the ConnectionTest worksheet."""
        return self._get_or_create_sheet(
            self._settings.connection_test_sheet_name, CONNECTION_TEST_COLUMNS, rows=2,
        )


class GoogleSheetsSettlementStorage(SettlementStorageInterface):
    """
    Google Sheets implementation of the settlement document.

    The item lists are JSON-serialized into one cell each.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._doc_id = self._client.settings.settlement_doc_id

    def _find_row(self, all_rows: list[list]) -> tuple[Optional[int], Optional[list]]:
        """Return (sheet row number, row) of the document, header is row 1."""
        for idx, row in enumerate(all_rows[1:], start=2):
            if row and row[0] == self._doc_id:
                return idx, row
        return None, None

    def _row_to_document(self, row: list) -> dict[str, Any]:
        document: dict[str, Any] = {}
        mine_json = _safe_get(row, 1)
        if mine_json:
            document["mine"] = json.loads(mine_json)
        siblings_json = _safe_get(row, 2)
        if siblings_json:
            document["siblings"] = json.loads(siblings_json)
        last_updated = _safe_get(row, 3)
        if last_updated:
            document["lastUpdated"] = last_updated
        return document

    def _document_to_row(self, document: dict[str, Any]) -> list:
        return [
            self._doc_id,
            json.dumps(document["mine"], ensure_ascii=False) if "mine" in document else "",
            json.dumps(document["siblings"], ensure_ascii=False) if "siblings" in document else "",
            document.get("lastUpdated", ""),
        ]

    def _read(self) -> Optional[dict[str, Any]]:
        try:
            sheet = self._client.get_settlement_sheet()
            _, row = self._find_row(sheet.get_all_values())
        except StorageError:
            raise
        except Exception as e:
            raise ConnectivityError(f"Failed to read settlement document: {e}")

        if row is None:
            return None
        try:
            return self._row_to_document(row)
        except json.JSONDecodeError as e:
            raise StorageError(f"Settlement document is corrupt: {e}")

    def _write(self, fields: dict[str, Any], merge: bool) -> None:
        try:
            sheet = self._client.get_settlement_sheet()
            idx, row = self._find_row(sheet.get_all_values())
        except StorageError:
            raise
        except Exception as e:
            raise ConnectivityError(f"Failed to read settlement document: {e}")

        try:
            document = self._row_to_document(row) if (merge and row) else {}
        except json.JSONDecodeError as e:
            raise StorageError(f"Settlement document is corrupt: {e}")

        document.update(fields)
        document["lastUpdated"] = _utcnow_iso()
        new_row = self._document_to_row(document)

        try:
            if idx is None:
                sheet.append_row(new_row, value_input_option="RAW")
            else:
                sheet.update(
                    range_name=f"A{idx}:{rowcol_to_a1(idx, len(SETTLEMENT_COLUMNS))}",
                    values=[new_row],
                    value_input_option="RAW",
                )
        except Exception as e:
            raise _write_error("Failed to save settlement document", e)

    def _probe(self) -> None:
        try:
            sheet = self._client.get_connection_test_sheet()
            sheet.acell("A1")
        except StorageError:
            raise
        except Exception as e:
            raise ConnectivityError(f"Connectivity probe failed: {e}")

    async def get_document(self) -> Optional[dict[str, Any]]:
        return await _in_thread(self._read)

    async def set_document(self, fields: dict[str, Any], merge: bool = True) -> None:
        await _in_thread(self._write, fields, merge)

    async def probe(self) -> None:
        await _in_thread(self._probe)


class GoogleSheetsMonthlyRecordStorage(MonthlyRecordStorageInterface):
    """
    Google Sheets implementation of the monthly collection.

    One row per month. Item snapshots are JSON-serialized.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _record_to_row(self, record: dict[str, Any]) -> list:
        """Convert a monthly record document to a spreadsheet row."""
        return [
            record["yearMonth"],
            record["totalMine"],
            record["totalSiblings"],
            record["settlementAmount"],
            json.dumps(record.get("mineItems", []), ensure_ascii=False),
            json.dumps(record.get("siblingsItems", []), ensure_ascii=False),
            record.get("createdAt") or "",
            record.get("lastUpdated") or "",
        ]

    def _row_to_record(self, row: list) -> dict[str, Any]:
        """Convert a spreadsheet row to a monthly record document."""
        items_mine = _safe_get(row, 4)
        items_siblings = _safe_get(row, 5)
        return {
            "yearMonth": _safe_get(row, 0),
            "totalMine": int(_safe_get(row, 1, "0")),
            "totalSiblings": int(_safe_get(row, 2, "0")),
            "settlementAmount": float(_safe_get(row, 3, "0")),
            "mineItems": json.loads(items_mine) if items_mine else [],
            "siblingsItems": json.loads(items_siblings) if items_siblings else [],
            "createdAt": _safe_get(row, 6) or None,
            "lastUpdated": _safe_get(row, 7) or None,
        }

    def _all_rows(self) -> tuple[gspread.Worksheet, list[list]]:
        try:
            sheet = self._client.get_monthly_sheet()
            return sheet, sheet.get_all_values()
        except StorageError:
            raise
        except Exception as e:
            raise ConnectivityError(f"Failed to read monthly records: {e}")

    def _find_row(self, all_rows: list[list], year_month: str) -> Optional[int]:
        for idx, row in enumerate(all_rows[1:], start=2):
            if row and row[0] == year_month:
                return idx
        return None

    def _get(self, year_month: str) -> Optional[dict[str, Any]]:
        _, all_rows = self._all_rows()
        idx = self._find_row(all_rows, year_month)
        if idx is None:
            return None
        try:
            return self._row_to_record(all_rows[idx - 1])
        except (ValueError, TypeError) as e:
            raise StorageError(f"Monthly record {year_month} is malformed: {e}")

    def _create(self, record: dict[str, Any]) -> None:
        sheet, all_rows = self._all_rows()
        if self._find_row(all_rows, record["yearMonth"]) is not None:
            raise DuplicateError(f"Monthly record already exists: {record['yearMonth']}")
        try:
            sheet.append_row(self._record_to_row(record), value_input_option="RAW")
        except Exception as e:
            raise _write_error("Failed to create monthly record", e)

    def _update(self, record: dict[str, Any]) -> None:
        sheet, all_rows = self._all_rows()
        idx = self._find_row(all_rows, record["yearMonth"])
        if idx is None:
            raise NotFoundError(f"Monthly record not found: {record['yearMonth']}")
        try:
            sheet.update(
                range_name=f"A{idx}:{rowcol_to_a1(idx, len(MONTHLY_COLUMNS))}",
                values=[self._record_to_row(record)],
                value_input_option="RAW",
            )
        except Exception as e:
            raise _write_error("Failed to update monthly record", e)

    def _list(self) -> list[dict[str, Any]]:
        _, all_rows = self._all_rows()
        records = []
        for row in all_rows[1:]:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                records.append(self._row_to_record(row))
            except (ValueError, TypeError):
                continue  # Skip malformed rows
        return records

    def _delete_all(self) -> int:
        sheet, all_rows = self._all_rows()
        count = sum(1 for row in all_rows[1:] if row and row[0])
        if len(all_rows) > 1:
            try:
                sheet.delete_rows(2, len(all_rows))
            except Exception as e:
                raise _write_error("Failed to delete monthly records", e)
        return count

    async def get_record(self, year_month: str) -> Optional[dict[str, Any]]:
        return await _in_thread(self._get, year_month)

    async def create_record(self, record: dict[str, Any]) -> None:
        await _in_thread(self._create, record)

    async def update_record(self, record: dict[str, Any]) -> None:
        await _in_thread(self._update, record)

    async def list_records(self) -> list[dict[str, Any]]:
        return await _in_thread(self._list)

    async def delete_all(self) -> int:
        return await _in_thread(self._delete_all)
