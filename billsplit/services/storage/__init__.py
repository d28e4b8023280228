"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the remote backend; the in-memory backend serves tests
and unconfigured runs.
"""

from billsplit.services.storage.interface import (
    ConnectivityError,
    DuplicateError,
    MonthlyRecordStorageInterface,
    NotFoundError,
    PersistenceError,
    RequestTimeoutError,
    SettlementStorageInterface,
    StorageError,
)
from billsplit.services.storage.memory import (
    InMemoryMonthlyRecordStorage,
    InMemorySettlementStorage,
)
from billsplit.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsMonthlyRecordStorage,
    GoogleSheetsSettlementStorage,
)

__all__ = [
    # Interfaces
    "MonthlyRecordStorageInterface",
    "SettlementStorageInterface",
    # Exceptions
    "ConnectivityError",
    "DuplicateError",
    "NotFoundError",
    "PersistenceError",
    "RequestTimeoutError",
    "StorageError",
    # In-memory implementation
    "InMemoryMonthlyRecordStorage",
    "InMemorySettlementStorage",
    # Google Sheets implementation
    "GoogleSheetsClient",
    "GoogleSheetsMonthlyRecordStorage",
    "GoogleSheetsSettlementStorage",
]
