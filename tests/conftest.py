"""
Shared fixtures and storage fakes.

No test talks to Google Sheets. The fakes below wrap the in-memory
backend and can be told to fail or hang for a number of calls.
"""

import asyncio
from typing import Optional

import pytest

from billsplit.services.retry import RetryPolicy
from billsplit.services.storage import (
    ConnectivityError,
    InMemoryMonthlyRecordStorage,
    InMemorySettlementStorage,
    StorageError,
)
from billsplit.status import StatusFeed


class FlakySettlementStorage(InMemorySettlementStorage):
    """In-memory settlement document that fails the next `failures` calls."""

    def __init__(
        self,
        document: Optional[dict] = None,
        failures: int = 0,
        error: type[StorageError] = ConnectivityError,
        hang_seconds: float = 0.0,
        probe_ok: bool = True,
    ):
        super().__init__(document)
        self.failures = failures
        self.error = error
        self.hang_seconds = hang_seconds
        self.probe_ok = probe_ok
        self.calls = {"get": 0, "set": 0, "probe": 0}

    async def _maybe_fail(self) -> None:
        if self.hang_seconds:
            await asyncio.sleep(self.hang_seconds)
        if self.failures > 0:
            self.failures -= 1
            raise self.error("simulated failure")

    async def get_document(self):
        self.calls["get"] += 1
        await self._maybe_fail()
        return await super().get_document()

    async def set_document(self, fields, merge=True):
        self.calls["set"] += 1
        await self._maybe_fail()
        await super().set_document(fields, merge=merge)

    async def probe(self):
        self.calls["probe"] += 1
        if not self.probe_ok:
            raise ConnectivityError("probe failed")


class UnreachableSettlementStorage(FlakySettlementStorage):
    """Every call fails with ConnectivityError."""

    def __init__(self):
        super().__init__(failures=10**6, probe_ok=False)


class FlakyMonthlyRecordStorage(InMemoryMonthlyRecordStorage):
    """In-memory monthly collection with switchable failures."""

    def __init__(self):
        super().__init__()
        self.fail_list = False
        self.fail_writes = 0
        self.hang_seconds = 0.0
        self.writes: list[tuple[str, str]] = []

    async def get_record(self, year_month):
        if self.hang_seconds:
            await asyncio.sleep(self.hang_seconds)
        return await super().get_record(year_month)

    async def create_record(self, record):
        if self.fail_writes > 0:
            self.fail_writes -= 1
            raise StorageError("simulated write failure")
        self.writes.append(("create", record["yearMonth"]))
        await super().create_record(record)

    async def update_record(self, record):
        if self.fail_writes > 0:
            self.fail_writes -= 1
            raise StorageError("simulated write failure")
        self.writes.append(("update", record["yearMonth"]))
        await super().update_record(record)

    async def list_records(self):
        if self.fail_list:
            raise ConnectivityError("simulated list failure")
        return await super().list_records()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Three attempts, no backoff pause, short time bound."""
    return RetryPolicy(max_attempts=3, base_delay=0.0, timeout=0.2)


@pytest.fixture
def status() -> StatusFeed:
    return StatusFeed()
