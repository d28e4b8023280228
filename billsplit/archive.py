"""
Monthly Snapshot Archive

Captures a dated copy of the persisted ledger (totals and items) under
a YYYY-MM key and serves the history back for trend display.

Save flow:
1. Check connectivity (fail fast when clearly offline)
2. Re-fetch the ledger from the store, not the possibly-stale local copy;
   a failed fetch fails the save instead of archiving defaults
3. Compute totals and the settlement amount
4. Update the month's record in place, or create it

Repeated saves in the same month leave one record whose contents come
from the last save. Every remote call is time-bounded by the retry
policy; a call past its bound fails with RequestTimeoutError.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

import structlog
from pydantic import ValidationError

from billsplit.audit import AuditLogger
from billsplit.gateway import PersistenceGateway
from billsplit.models.audit import AuditEvent, AuditEventBuilder
from billsplit.models.ledger import (
    YEAR_MONTH_PATTERN,
    MonthlyRecord,
    current_year_month,
)
from billsplit.services.retry import RetryPolicy
from billsplit.services.storage import (
    ConnectivityError,
    MonthlyRecordStorageInterface,
    PersistenceError,
    RequestTimeoutError,
    StorageError,
)
from billsplit.status import StatusFeed, SyncState


logger = structlog.get_logger(__name__)

DEFAULT_HISTORY_LIMIT = 12


class SnapshotState(str, Enum):
    """States of one save_snapshot call. DONE and FAILED are terminal."""
    IDLE = "idle"
    CHECKING_CONNECTIVITY = "checking_connectivity"
    LOADING_CURRENT_DATA = "loading_current_data"
    COMPUTING_TOTALS = "computing_totals"
    UPDATING = "updating"
    CREATING = "creating"
    DONE = "done"
    FAILED = "failed"


def _local_now() -> datetime:
    return datetime.now().astimezone()


class MonthlySnapshotArchive:
    """
    Idempotent monthly upsert and ordered history.

    `state` and `last_error` describe the most recent save_snapshot call.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        storage: MonthlyRecordStorageInterface,
        retry_policy: Optional[RetryPolicy] = None,
        status: Optional[StatusFeed] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._gateway = gateway
        self._storage = storage
        self._retry = retry_policy or gateway.retry_policy
        self._status = status
        self._audit_logger = audit_logger
        self._clock = clock or _local_now
        self.state = SnapshotState.IDLE
        self.last_error: Optional[Exception] = None

    def _publish(self, state: SyncState, reason: Optional[str] = None) -> None:
        if self._status:
            self._status.publish(state, reason)

    def _audit(self, event: AuditEvent) -> None:
        if self._audit_logger:
            self._audit_logger.log(event)

    def _transition(self, state: SnapshotState) -> None:
        logger.debug("snapshot_state", previous=self.state.value, state=state.value)
        self.state = state

    async def save_snapshot(self, year_month: Optional[str] = None) -> MonthlyRecord:
        """
        Archive the persisted ledger under `year_month` (default: this month).

        Raises:
            ValueError: If year_month is not YYYY-MM
            ConnectivityError: If the store is unreachable
            RequestTimeoutError: If a remote call exceeds its time bound
            PersistenceError: If the record write fails after retries
        """
        year_month = year_month or current_year_month(self._clock())
        if not re.fullmatch(YEAR_MONTH_PATTERN, year_month):
            raise ValueError(f"Expected YYYY-MM, got {year_month!r}")

        self.state = SnapshotState.IDLE
        self.last_error = None
        self._publish(SyncState.SYNCING)

        try:
            self._transition(SnapshotState.CHECKING_CONNECTIVITY)
            await self._gateway.check_connectivity()

            self._transition(SnapshotState.LOADING_CURRENT_DATA)
            ledger = await self._gateway.fetch()

            self._transition(SnapshotState.COMPUTING_TOTALS)
            record = MonthlyRecord.from_ledger(year_month, ledger, saved_at=self._clock())

            existing = await self._retry.call(
                lambda: self._storage.get_record(year_month), "fetch monthly record"
            )
            if existing is not None:
                self._transition(SnapshotState.UPDATING)
                record = record.model_copy(
                    update={"created_at": _created_at(existing) or record.created_at}
                )
                payload = record.to_document()
                await self._retry.call(
                    lambda: self._storage.update_record(payload), "update monthly record"
                )
            else:
                self._transition(SnapshotState.CREATING)
                payload = record.to_document()
                await self._retry.call(
                    lambda: self._storage.create_record(payload), "create monthly record"
                )
        except (ConnectivityError, RequestTimeoutError) as e:
            self._fail(year_month, e)
            raise
        except StorageError as e:
            self._fail(year_month, e)
            raise PersistenceError(f"Saving monthly record {year_month} failed: {e}") from e

        created = self.state == SnapshotState.CREATING
        self._transition(SnapshotState.DONE)
        self._audit(AuditEventBuilder.snapshot_saved(
            year_month, created=created, settlement_amount=record.settlement_amount,
        ))
        self._publish(SyncState.SAVED)
        return record

    def _fail(self, year_month: str, error: StorageError) -> None:
        stage = self.state.value
        self.last_error = error
        self._transition(SnapshotState.FAILED)
        self._audit(AuditEventBuilder.snapshot_failed(year_month, stage, str(error)))
        if isinstance(error, ConnectivityError):
            self._publish(SyncState.OFFLINE)
        else:
            self._publish(SyncState.ERROR, error.user_message)

    async def list_snapshots(self, limit: int = DEFAULT_HISTORY_LIMIT) -> list[MonthlyRecord]:
        """
        Most recent records first, at most `limit`. Never raises.
        """
        try:
            documents = await self._retry.call(
                self._storage.list_records, "list monthly records"
            )
        except Exception as e:
            logger.warning("snapshot_list_failed", error=str(e))
            return []

        records = []
        for document in documents:
            try:
                records.append(MonthlyRecord.model_validate(document))
            except ValidationError as e:
                logger.warning(
                    "snapshot_skipped",
                    year_month=document.get("yearMonth"),
                    error=str(e),
                )

        # Zero-padded YYYY-MM sorts correctly as text
        records.sort(key=lambda r: r.year_month, reverse=True)
        return records[:max(limit, 0)]

    async def clear_snapshots(self) -> int:
        """
        Delete every monthly record (administrative, not part of normal flow).

        Returns:
            Number of records deleted
        """
        count = await self._retry.call(self._storage.delete_all, "clear monthly records")
        self._audit(AuditEventBuilder.snapshots_cleared(count))
        return count


def _created_at(document: dict) -> Optional[datetime]:
    value = document.get("createdAt")
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None
