"""
In-Memory Storage Implementation

Keeps the settlement document and the monthly collection in process
memory. Used for tests and for running without a configured spreadsheet.
Documents are deep-copied on the way in and out so callers never share
state with the store, the same as with a real remote backend.
"""

import copy
from datetime import datetime, timezone
from typing import Any, Optional

from billsplit.services.storage.interface import (
    DuplicateError,
    MonthlyRecordStorageInterface,
    NotFoundError,
    SettlementStorageInterface,
)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemorySettlementStorage(SettlementStorageInterface):
    """Settlement document held in a dict."""

    def __init__(self, document: Optional[dict[str, Any]] = None):
        self._document = copy.deepcopy(document) if document is not None else None

    async def get_document(self) -> Optional[dict[str, Any]]:
        return copy.deepcopy(self._document)

    async def set_document(self, fields: dict[str, Any], merge: bool = True) -> None:
        base = self._document if (merge and self._document is not None) else {}
        self._document = {
            **base,
            **copy.deepcopy(fields),
            "lastUpdated": _utcnow_iso(),
        }

    async def probe(self) -> None:
        return None


class InMemoryMonthlyRecordStorage(MonthlyRecordStorageInterface):
    """Monthly records held in a dict keyed by year-month."""

    def __init__(self):
        self._records: dict[str, dict[str, Any]] = {}

    async def get_record(self, year_month: str) -> Optional[dict[str, Any]]:
        return copy.deepcopy(self._records.get(year_month))

    async def create_record(self, record: dict[str, Any]) -> None:
        key = record["yearMonth"]
        if key in self._records:
            raise DuplicateError(f"Monthly record already exists: {key}")
        self._records[key] = copy.deepcopy(record)

    async def update_record(self, record: dict[str, Any]) -> None:
        key = record["yearMonth"]
        if key not in self._records:
            raise NotFoundError(f"Monthly record not found: {key}")
        self._records[key] = copy.deepcopy(record)

    async def list_records(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(record) for record in self._records.values()]

    async def delete_all(self) -> int:
        count = len(self._records)
        self._records.clear()
        return count
