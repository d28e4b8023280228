"""Services package."""

from billsplit.services.retry import RetryPolicy, is_retryable
from billsplit.services.storage import (
    ConnectivityError,
    DuplicateError,
    GoogleSheetsClient,
    GoogleSheetsMonthlyRecordStorage,
    GoogleSheetsSettlementStorage,
    InMemoryMonthlyRecordStorage,
    InMemorySettlementStorage,
    MonthlyRecordStorageInterface,
    NotFoundError,
    PersistenceError,
    RequestTimeoutError,
    SettlementStorageInterface,
    StorageError,
)

__all__ = [
    # Retry
    "RetryPolicy",
    "is_retryable",
    # Storage services
    "ConnectivityError",
    "DuplicateError",
    "GoogleSheetsClient",
    "GoogleSheetsMonthlyRecordStorage",
    "GoogleSheetsSettlementStorage",
    "InMemoryMonthlyRecordStorage",
    "InMemorySettlementStorage",
    "MonthlyRecordStorageInterface",
    "NotFoundError",
    "PersistenceError",
    "RequestTimeoutError",
    "SettlementStorageInterface",
    "StorageError",
]
