"""Tests for the session orchestrator, status feed and settings."""

import asyncio

import pytest

from billsplit.archive import MonthlySnapshotArchive
from billsplit.config import ConfigurationError, Settings, SyncSettings, validate_all_settings
from billsplit.gateway import PersistenceGateway
from billsplit.models.ledger import InvalidAmountError, Owner, default_ledger
from billsplit.orchestrator import SettlementSession, create_app_components
from billsplit.services.storage import InMemorySettlementStorage
from billsplit.status import StatusFeed, StatusUpdate, SyncState

from conftest import FlakyMonthlyRecordStorage, FlakySettlementStorage


def make_session(fast_retry, storage=None, debounce_seconds=0.02):
    status = StatusFeed()
    storage = storage or FlakySettlementStorage(document=None)
    gateway = PersistenceGateway(storage, fast_retry, status=status)
    archive = MonthlySnapshotArchive(
        gateway, FlakyMonthlyRecordStorage(), fast_retry, status=status,
    )
    session = SettlementSession(
        gateway, archive, status=status, debounce_seconds=debounce_seconds,
    )
    return session, storage


class TestSettlementSession:
    """End-to-end flows against in-memory storage."""

    def test_start_loads_and_initializes(self, fast_retry):
        """Test first run seeds the store with the default ledger."""
        session, storage = make_session(fast_retry)

        ledger = asyncio.run(session.start())

        assert ledger == default_ledger()
        assert session.totals().net == 375515.5
        assert asyncio.run(storage.get_document())["siblings"][0]["id"] == "sib1"

    def test_edits_are_debounced_into_one_save(self, fast_retry):
        """Test a burst of edits reaches the store once, with the final values."""
        session, storage = make_session(fast_retry)

        async def scenario():
            await session.start()
            writes_after_start = storage.calls["set"]
            item_id = session.add_item(Owner.SIBLINGS, name="통신비")
            for text in ("1", "12", "1,200"):
                session.update_item(Owner.SIBLINGS, item_id, amount=text)
            await asyncio.sleep(0.1)
            await session.close()
            return item_id, storage.calls["set"] - writes_after_start

        item_id, writes = asyncio.run(scenario())

        assert writes == 1
        stored = asyncio.run(storage.get_document())
        assert stored["siblings"][-1] == {
            "id": item_id, "name": "통신비", "amount": 1200, "fixed": False,
        }

    def test_rejected_amount_does_not_schedule(self, fast_retry):
        """Test invalid text raises and leaves nothing pending."""
        session, _ = make_session(fast_retry)

        async def scenario():
            await session.start()
            with pytest.raises(InvalidAmountError):
                session.update_item(Owner.MINE, "gas", amount="12a4")
            assert not session.scheduler.pending

        asyncio.run(scenario())
        assert session.ledger.get_item(Owner.MINE, "gas").amount == 15300

    def test_missing_item_does_not_schedule(self, fast_retry):
        session, _ = make_session(fast_retry)

        async def scenario():
            await session.start()
            assert session.delete_item(Owner.MINE, "nope") is False
            assert session.update_item(Owner.MINE, "nope", name="x") is False
            assert not session.scheduler.pending

        asyncio.run(scenario())

    def test_edits_before_start_are_not_synced(self, fast_retry):
        """Test nothing is written back before the remote copy was read."""
        storage = FlakySettlementStorage({"mine": [], "siblings": []})
        session, _ = make_session(fast_retry, storage=storage)

        async def scenario():
            session.add_item(Owner.MINE, amount=5)
            assert not session.scheduler.pending

        asyncio.run(scenario())
        assert storage.calls["set"] == 0

    def test_save_current_month_flushes_pending_edits(self, fast_retry):
        """Test the archive sees an edit made just before the save."""
        session, _ = make_session(fast_retry, debounce_seconds=10.0)

        async def scenario():
            await session.start()
            session.delete_item(Owner.MINE, "jaewoo-var")
            return await session.save_current_month("2025-08")

        record = asyncio.run(scenario())

        assert record.total_mine == 904120 - 365200
        assert [item.id for item in record.mine_items][-1] == "elec"

    def test_history(self, fast_retry):
        session, _ = make_session(fast_retry)

        async def scenario():
            await session.start()
            for key in ("2025-07", "2025-09", "2025-08"):
                await session.save_current_month(key)
            return await session.history(), await session.history(limit=1)

        everything, latest = asyncio.run(scenario())

        assert [r.year_month for r in everything] == ["2025-09", "2025-08", "2025-07"]
        assert [r.year_month for r in latest] == ["2025-09"]

    def test_failed_sync_keeps_local_edits(self, fast_retry):
        """Test a failing save changes the status but not the ledger."""
        storage = FlakySettlementStorage({"mine": [], "siblings": []})
        session, _ = make_session(fast_retry, storage=storage)
        seen = []
        session.status.subscribe(seen.append)

        async def scenario():
            await session.start()
            storage.failures = 10
            session.add_item(Owner.MINE, amount=700)
            await asyncio.sleep(0.1)
            await session.close()

        asyncio.run(scenario())

        assert session.totals().total_mine == 700
        assert session.status.current.state == SyncState.OFFLINE
        assert SyncState.SYNCING in [update.state for update in seen]


class TestStatusFeed:
    """Tests for the status feed."""

    def test_labels(self):
        assert StatusUpdate(state=SyncState.SAVED).label == "saved"
        assert StatusUpdate(state=SyncState.ERROR, reason="timeout").label == "error:timeout"

    def test_subscribe_and_unsubscribe(self):
        feed = StatusFeed()
        seen = []
        unsubscribe = feed.subscribe(seen.append)
        feed.publish(SyncState.SYNCING)
        unsubscribe()
        feed.publish(SyncState.SAVED)

        assert [u.state for u in seen] == [SyncState.SYNCING]
        assert feed.current.state == SyncState.SAVED

    def test_listener_errors_do_not_stop_others(self):
        feed = StatusFeed()
        seen = []

        def broken(update):
            raise RuntimeError("listener bug")

        feed.subscribe(broken)
        feed.subscribe(seen.append)
        feed.publish(SyncState.OFFLINE)

        assert [u.state for u in seen] == [SyncState.OFFLINE]


class TestSettings:
    """Tests for configuration and the component factory."""

    def test_sync_defaults(self, monkeypatch):
        for name in ("SYNC_DEBOUNCE_SECONDS", "SYNC_RETRY_ATTEMPTS"):
            monkeypatch.delenv(name, raising=False)
        settings = SyncSettings()
        assert settings.debounce_seconds == 1.0
        assert settings.retry_attempts == 3
        assert settings.retry_base_delay_seconds == 0.5

    def test_sync_from_environment(self, monkeypatch):
        monkeypatch.setenv("SYNC_RETRY_ATTEMPTS", "2")
        assert SyncSettings().retry_attempts == 2

    def test_gateway_from_settings_requires_sheets_config(self, monkeypatch):
        """Test missing spreadsheet settings fail at construction time."""
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        with pytest.raises(ConfigurationError):
            PersistenceGateway.from_settings(Settings())

    def test_validate_all_settings_reports_missing_sheets(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        results = validate_all_settings()

        assert results["google_sheets"] is False
        assert results["sync"] is True

    def test_factory_falls_back_to_memory(self, monkeypatch):
        """Test an unconfigured spreadsheet yields a working in-memory session."""
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        monkeypatch.setenv("SYNC_RETRY_BASE_DELAY_SECONDS", "0")

        session = create_app_components(Settings())

        async def scenario():
            await session.start()
            record = await session.save_current_month("2025-08")
            await session.close()
            return record

        record = asyncio.run(scenario())
        assert record.total_mine == 904120

    def test_factory_without_storage(self):
        session = create_app_components(Settings(), use_storage=False)
        assert isinstance(session, SettlementSession)
        assert isinstance(session._gateway._storage, InMemorySettlementStorage)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
