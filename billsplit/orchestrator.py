"""
Main Orchestrator for Bill Split Ledger

This module ties together all the components and is the surface the
presentation layer calls:
1. Editing: add/update/delete item -> debounced save of the ledger
2. Archiving: "save this month" -> monthly snapshot of the persisted ledger
3. History: ordered snapshots for trend display

DESIGN DECISION: The session owns the ledger. The store only ever holds
a copy; a failed save changes the status feed, never the local data.
"""

from typing import Any, Optional, Union

import structlog
from pydantic import ValidationError

from billsplit.archive import DEFAULT_HISTORY_LIMIT, MonthlySnapshotArchive
from billsplit.audit import AuditLogger, configure_logging
from billsplit.config import ConfigurationError, Settings, get_settings
from billsplit.gateway import PersistenceGateway
from billsplit.models.audit import AuditEventBuilder, AuditEventType
from billsplit.models.ledger import (
    DEFAULT_ITEM_NAME,
    Ledger,
    LedgerTotals,
    MonthlyRecord,
    Owner,
)
from billsplit.scheduler import DebouncedSyncScheduler
from billsplit.services.retry import RetryPolicy
from billsplit.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsMonthlyRecordStorage,
    InMemoryMonthlyRecordStorage,
    InMemorySettlementStorage,
)
from billsplit.status import StatusFeed


logger = structlog.get_logger(__name__)


class SettlementSession:
    """
    One running editing session.

    Flow:
    1. start() loads the ledger (remote data or defaults, never fails)
    2. Every edit mutates the ledger synchronously and schedules a sync
    3. save_current_month() flushes pending edits, then archives
    4. close() flushes and tears the scheduler down
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        archive: MonthlySnapshotArchive,
        status: Optional[StatusFeed] = None,
        audit_logger: Optional[AuditLogger] = None,
        debounce_seconds: float = 1.0,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        self._gateway = gateway
        self._archive = archive
        self.status = status or StatusFeed()
        self._audit_logger = audit_logger
        self._history_limit = history_limit
        self._ledger = Ledger()
        self._started = False
        self._scheduler = DebouncedSyncScheduler(
            gateway.save,
            delay=debounce_seconds,
            on_error=self._on_sync_error,
        )

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    @property
    def scheduler(self) -> DebouncedSyncScheduler:
        return self._scheduler

    @property
    def archive(self) -> MonthlySnapshotArchive:
        return self._archive

    def totals(self) -> LedgerTotals:
        return self._ledger.totals()

    async def start(self) -> Ledger:
        self._ledger = await self._gateway.load()
        self._started = True
        return self._ledger

    # -------------------------------------------------------------------------
    # Edits
    # -------------------------------------------------------------------------

    def add_item(
        self,
        owner: Union[Owner, str],
        name: str = DEFAULT_ITEM_NAME,
        amount: Union[int, str] = 0,
        fixed: bool = False,
    ) -> str:
        item_id = self._ledger.add_item(owner, name=name, amount=amount, fixed=fixed)
        self._changed(AuditEventType.ITEM_ADDED, owner, item_id)
        return item_id

    def update_item(self, owner: Union[Owner, str], item_id: str, **patch: Any) -> bool:
        """
        Patch one item. Returns False if the id is gone.

        Raises:
            InvalidAmountError: If amount text is not a whole number
        """
        if not self._ledger.update_item(owner, item_id, **patch):
            return False
        self._changed(AuditEventType.ITEM_UPDATED, owner, item_id, {"fields": sorted(patch)})
        return True

    def delete_item(self, owner: Union[Owner, str], item_id: str) -> bool:
        if not self._ledger.delete_item(owner, item_id):
            return False
        self._changed(AuditEventType.ITEM_DELETED, owner, item_id)
        return True

    def _changed(
        self,
        event_type: AuditEventType,
        owner: Union[Owner, str],
        item_id: str,
        details: Optional[dict] = None,
    ) -> None:
        if self._audit_logger:
            self._audit_logger.log(AuditEventBuilder.item_changed(
                event_type, Owner(owner).value, item_id, details,
            ))
        # Nothing is written back until the remote copy has been read once
        if self._started:
            self._scheduler.schedule(self._ledger)

    def _on_sync_error(self, error: Exception) -> None:
        # The gateway has already published the failure on the status feed
        logger.warning("ledger_sync_failed", error=str(error))

    # -------------------------------------------------------------------------
    # Archive
    # -------------------------------------------------------------------------

    async def save_current_month(self, year_month: Optional[str] = None) -> MonthlyRecord:
        """
        Archive the persisted ledger for `year_month` (default: this month).

        Pending edits are flushed first so the archive sees them.
        """
        await self._scheduler.flush()
        return await self._archive.save_snapshot(year_month)

    async def history(self, limit: Optional[int] = None) -> list[MonthlyRecord]:
        return await self._archive.list_snapshots(
            self._history_limit if limit is None else limit
        )

    async def close(self) -> None:
        await self._scheduler.flush()
        await self._scheduler.close()


def create_app_components(
    settings: Optional[Settings] = None,
    use_storage: bool = True,
) -> SettlementSession:
    """
    Factory function to create a ready-to-start session.

    Args:
        settings: Settings to use, defaults to get_settings()
        use_storage: Whether to use Google Sheets storage.
                    Set to False to keep everything in memory.

    Falls back to in-memory storage when Google Sheets is not configured.
    """
    settings = settings or get_settings()
    app_settings = settings.app
    sync_settings = settings.sync
    configure_logging(app_settings.log_level)

    status = StatusFeed()
    audit_logger = AuditLogger()
    retry_policy = RetryPolicy.from_settings(sync_settings)

    gateway = None
    monthly_storage = None
    if use_storage:
        try:
            client = GoogleSheetsClient(settings.google_sheets)
            gateway = PersistenceGateway.from_settings(
                settings, client=client, status=status, audit_logger=audit_logger,
            )
            monthly_storage = GoogleSheetsMonthlyRecordStorage(client)
        except (ConfigurationError, ValidationError) as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))

    if gateway is None or monthly_storage is None:
        gateway = PersistenceGateway(
            InMemorySettlementStorage(),
            retry_policy=retry_policy,
            status=status,
            audit_logger=audit_logger,
        )
        monthly_storage = InMemoryMonthlyRecordStorage()

    archive = MonthlySnapshotArchive(
        gateway,
        monthly_storage,
        retry_policy=retry_policy,
        status=status,
        audit_logger=audit_logger,
    )

    return SettlementSession(
        gateway,
        archive,
        status=status,
        audit_logger=audit_logger,
        debounce_seconds=sync_settings.debounce_seconds,
        history_limit=sync_settings.history_limit,
    )
