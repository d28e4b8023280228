"""
Persistence Gateway

Maps the in-memory ledger to and from the single remote settlement
document.

DESIGN DECISION: The gateway never blocks the user on the network.
- load() always resolves to a usable ledger: remote data, or the
  built-in default when the store is unreachable
- a missing document is not an error; the default is written back so
  the next run finds it (self-healing initialization)
- save() reports failure only after the retry policy gives up, and the
  caller's ledger is never rolled back
"""

from typing import Callable, Optional

import structlog
from pydantic import ValidationError

from billsplit.audit import AuditLogger
from billsplit.config import ConfigurationError, Settings, get_settings
from billsplit.models.audit import AuditEvent, AuditEventBuilder
from billsplit.models.ledger import Ledger, Owner, default_ledger
from billsplit.services.retry import RetryPolicy
from billsplit.services.storage import (
    ConnectivityError,
    GoogleSheetsClient,
    GoogleSheetsSettlementStorage,
    PersistenceError,
    RequestTimeoutError,
    SettlementStorageInterface,
    StorageError,
)
from billsplit.status import StatusFeed, SyncState


logger = structlog.get_logger(__name__)


class PersistenceGateway:
    """
    Loads and saves the ledger through a settlement storage backend.

    Every remote call goes through one RetryPolicy. State transitions are
    published on the status feed for the presentation layer.
    """

    def __init__(
        self,
        storage: SettlementStorageInterface,
        retry_policy: Optional[RetryPolicy] = None,
        status: Optional[StatusFeed] = None,
        audit_logger: Optional[AuditLogger] = None,
        default_factory: Callable[[], Ledger] = default_ledger,
    ):
        self._storage = storage
        self._retry = retry_policy or RetryPolicy()
        self._status = status
        self._audit_logger = audit_logger
        self._default_factory = default_factory

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        client: Optional[GoogleSheetsClient] = None,
        status: Optional[StatusFeed] = None,
        audit_logger: Optional[AuditLogger] = None,
    ) -> "PersistenceGateway":
        """
        Build the Google Sheets backed gateway.

        Raises:
            ConfigurationError: If the spreadsheet settings are missing or invalid
        """
        settings = settings or get_settings()
        try:
            sheets_settings = settings.google_sheets
            sync_settings = settings.sync
        except ValidationError as e:
            raise ConfigurationError(f"Persistence is not configured: {e}") from e

        client = client or GoogleSheetsClient(sheets_settings)
        return cls(
            storage=GoogleSheetsSettlementStorage(client),
            retry_policy=RetryPolicy.from_settings(sync_settings),
            status=status,
            audit_logger=audit_logger,
        )

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    def _publish(self, state: SyncState, reason: Optional[str] = None) -> None:
        if self._status:
            self._status.publish(state, reason)

    def _audit(self, event: AuditEvent) -> None:
        if self._audit_logger:
            self._audit_logger.log(event)

    # -------------------------------------------------------------------------
    # Connectivity
    # -------------------------------------------------------------------------

    async def check_connectivity(self) -> None:
        """
        Single bounded probe, no retries.

        Raises:
            ConnectivityError: If the probe fails
            RequestTimeoutError: If the probe exceeds the time bound
        """
        try:
            await self._retry.bounded(self._storage.probe, "connectivity probe")
        except (ConnectivityError, RequestTimeoutError):
            self._publish(SyncState.OFFLINE)
            raise
        except Exception as e:
            self._publish(SyncState.OFFLINE)
            raise ConnectivityError(f"Connectivity probe failed: {e}") from e

    async def is_online(self) -> bool:
        try:
            await self.check_connectivity()
        except StorageError:
            return False
        return True

    # -------------------------------------------------------------------------
    # Load / save
    # -------------------------------------------------------------------------

    async def load(self) -> Ledger:
        """
        Fetch the persisted ledger. Never raises.

        Returns the default ledger when the store is unreachable, and
        writes it to the store when the document does not exist yet.
        """
        try:
            return await self.fetch()
        except Exception as e:
            # Offline operation must never block the UI
            logger.warning("ledger_load_failed", error=str(e))
            self._audit(AuditEventBuilder.ledger_load_fallback(str(e)))
            self._publish(SyncState.OFFLINE)
            return self._default_factory()

    async def fetch(self) -> Ledger:
        """
        Fetch the persisted ledger, propagating failures.

        A missing document is initialized with the default ledger, the
        same as load().

        Raises:
            ConnectivityError: If the store is unreachable
            RequestTimeoutError: If the read exceeds its time bound
            StorageError: If the read fails or the document is malformed
        """
        default = self._default_factory()
        document = await self._retry.call(
            self._storage.get_document, "load settlement"
        )

        if document is None:
            await self._initialize(default)
            return default
        if not isinstance(document, dict):
            raise StorageError(
                f"Settlement document is malformed: {type(document).__name__}"
            )

        ledger = Ledger.from_document(document, fallback=default)
        self._audit(AuditEventBuilder.ledger_loaded(
            {owner.value: len(ledger.items[owner]) for owner in Owner}
        ))
        self._publish(SyncState.SAVED)
        return ledger

    async def _initialize(self, default: Ledger) -> None:
        fields = default.to_document()
        try:
            await self._retry.call(
                lambda: self._storage.set_document(fields, merge=True),
                "initialize settlement",
            )
        except Exception as e:
            logger.warning("ledger_init_failed", error=str(e))
            self._publish(SyncState.OFFLINE)
            return
        self._audit(AuditEventBuilder.ledger_initialized())
        self._publish(SyncState.SAVED)

    async def save(self, ledger: Ledger) -> None:
        """
        Merge-write both item lists; the backend stamps lastUpdated.

        Raises:
            PersistenceError: If the write fails after all retries
        """
        fields = ledger.to_document()
        self._publish(SyncState.SYNCING)

        try:
            await self._retry.call(
                lambda: self._storage.set_document(fields, merge=True),
                "save settlement",
            )
        except StorageError as e:
            self._audit(AuditEventBuilder.ledger_save_failed(str(e)))
            if isinstance(e, ConnectivityError):
                self._publish(SyncState.OFFLINE)
            else:
                self._publish(SyncState.ERROR, e.user_message)
            raise PersistenceError(
                f"Saving settlement failed after {self._retry.max_attempts} attempts: {e}"
            ) from e

        totals = ledger.totals()
        self._audit(AuditEventBuilder.ledger_saved(totals.total_mine, totals.total_siblings))
        self._publish(SyncState.SAVED)
