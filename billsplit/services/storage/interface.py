"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a document database later
2. Use in-memory storage for testing
3. Keep the gateway and archive decoupled from the backend

The store holds two things:
- One settlement document with both item lists
- A monthly collection with one record per YYYY-MM key

The interface deals in plain dicts shaped like the remote documents.
Mapping to models happens in the gateway and the archive.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class SettlementStorageInterface(ABC):
    """
    Abstract interface for the single settlement document.
    """

    @abstractmethod
    async def get_document(self) -> Optional[dict[str, Any]]:
        """
        Fetch the settlement document.

        Returns:
            The document fields, or None if the document does not exist

        Raises:
            ConnectivityError: If the store cannot be reached
        """
        pass

    @abstractmethod
    async def set_document(self, fields: dict[str, Any], merge: bool = True) -> None:
        """
        Write the settlement document.

        The backend stamps `lastUpdated` itself. With merge=True, fields
        not included are preserved.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def probe(self) -> None:
        """
        Cheap read used to fail fast before an expensive write.

        Raises:
            ConnectivityError: If the store cannot be reached
        """
        pass


class MonthlyRecordStorageInterface(ABC):
    """
    Abstract interface for the monthly snapshot collection.

    Records are keyed by year-month and only ever fully overwritten.
    """

    @abstractmethod
    async def get_record(self, year_month: str) -> Optional[dict[str, Any]]:
        """
        Fetch one record.

        Returns:
            The record, or None if no record exists for that month
        """
        pass

    @abstractmethod
    async def create_record(self, record: dict[str, Any]) -> None:
        """
        Insert a new record.

        Raises:
            DuplicateError: If a record for that month already exists
        """
        pass

    @abstractmethod
    async def update_record(self, record: dict[str, Any]) -> None:
        """
        Overwrite an existing record in place.

        Raises:
            NotFoundError: If no record exists for that month
        """
        pass

    @abstractmethod
    async def list_records(self) -> list[dict[str, Any]]:
        """
        Fetch every record, in no particular order.
        """
        pass

    @abstractmethod
    async def delete_all(self) -> int:
        """
        Delete every record (administrative).

        Returns:
            Number of records deleted
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""

    user_message = "저장소 오류가 발생했습니다"


class NotFoundError(StorageError):
    """Entity not found in storage."""

    user_message = "데이터를 찾을 수 없습니다"


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectivityError(StorageError):
    """Could not reach the storage backend."""

    user_message = "오프라인 상태입니다"


class RequestTimeoutError(StorageError):
    """A single remote call exceeded its time bound."""

    user_message = "네트워크가 너무 느립니다"


class PersistenceError(StorageError):
    """A write failed after exhausting retries."""

    user_message = "저장에 실패했습니다"
