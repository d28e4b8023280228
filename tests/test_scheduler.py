"""Tests for the debounced sync scheduler."""

import asyncio

import pytest

from billsplit.models.ledger import Ledger, Owner, default_ledger
from billsplit.scheduler import DebouncedSyncScheduler


class RecordingSave:
    """Async save stand-in that records every payload it receives."""

    def __init__(self, delay: float = 0.0, fail: bool = False):
        self.payloads: list[Ledger] = []
        self.delay = delay
        self.fail = fail

    async def __call__(self, ledger: Ledger) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.payloads.append(ledger)
        if self.fail:
            raise RuntimeError("save failed")


class TestDebounce:
    """Tests for coalescing behaviour."""

    def test_rapid_calls_coalesce_into_last_payload(self):
        """Test a burst of schedule() calls produces one save of the last state."""
        save = RecordingSave()

        async def scenario():
            scheduler = DebouncedSyncScheduler(save, delay=0.1)
            ledger = Ledger()
            item_id = ledger.add_item(Owner.MINE)
            for amount in range(1, 6):
                ledger.update_item(Owner.MINE, item_id, amount=amount)
                scheduler.schedule(ledger)
                await asyncio.sleep(0.01)
            assert scheduler.pending
            await asyncio.sleep(0.3)
            assert not scheduler.pending
            await scheduler.close()

        asyncio.run(scenario())

        assert len(save.payloads) == 1
        assert save.payloads[0].mine[0].amount == 5

    def test_payload_is_a_snapshot(self):
        """Test edits made after schedule() don't leak into the saved payload."""
        save = RecordingSave()

        async def scenario():
            scheduler = DebouncedSyncScheduler(save, delay=0.02)
            ledger = default_ledger()
            scheduler.schedule(ledger)
            ledger.update_item(Owner.MINE, "rent", amount=1)
            await asyncio.sleep(0.08)
            await scheduler.close()

        asyncio.run(scenario())

        assert save.payloads[0].get_item(Owner.MINE, "rent").amount == 250000

    def test_spaced_calls_each_save(self):
        """Test calls further apart than the delay are saved separately, in order."""
        save = RecordingSave()

        async def scenario():
            scheduler = DebouncedSyncScheduler(save, delay=0.02)
            ledger = Ledger()
            ledger.add_item(Owner.MINE, amount=1)
            scheduler.schedule(ledger)
            await asyncio.sleep(0.08)
            ledger.add_item(Owner.MINE, amount=2)
            scheduler.schedule(ledger)
            await asyncio.sleep(0.08)
            await scheduler.close()

        asyncio.run(scenario())

        assert [len(p.mine) for p in save.payloads] == [1, 2]

    def test_cancel_drops_pending_save(self):
        """Test cancellation has no observable side effect."""
        save = RecordingSave()

        async def scenario():
            scheduler = DebouncedSyncScheduler(save, delay=0.02)
            scheduler.schedule(default_ledger())
            scheduler.cancel()
            assert not scheduler.pending
            await asyncio.sleep(0.06)

        asyncio.run(scenario())

        assert save.payloads == []

    def test_flush_saves_immediately(self):
        """Test flush() does not wait for the countdown."""
        save = RecordingSave()

        async def scenario():
            scheduler = DebouncedSyncScheduler(save, delay=10.0)
            scheduler.schedule(default_ledger())
            await scheduler.flush()
            assert not scheduler.pending

        asyncio.run(scenario())

        assert len(save.payloads) == 1

    def test_flush_without_pending_is_noop(self):
        save = RecordingSave()
        asyncio.run(DebouncedSyncScheduler(save, delay=0.01).flush())
        assert save.payloads == []

    def test_close_awaits_in_flight_save(self):
        """Test teardown doesn't cancel a save that already started."""
        save = RecordingSave(delay=0.05)

        async def scenario():
            scheduler = DebouncedSyncScheduler(save, delay=0.01)
            scheduler.schedule(default_ledger())
            await asyncio.sleep(0.03)
            await scheduler.close()

        asyncio.run(scenario())

        assert len(save.payloads) == 1

    def test_save_errors_go_to_handler(self):
        """Test a failing save is reported and does not escape the loop."""
        errors = []
        save = RecordingSave(fail=True)

        async def scenario():
            scheduler = DebouncedSyncScheduler(save, delay=0.01, on_error=errors.append)
            scheduler.schedule(default_ledger())
            await asyncio.sleep(0.05)
            await scheduler.close()

        asyncio.run(scenario())

        assert len(errors) == 1
        assert isinstance(errors[0], RuntimeError)

    def test_schedule_requires_running_loop(self):
        """Test scheduling outside an event loop is refused."""
        scheduler = DebouncedSyncScheduler(RecordingSave(), delay=0.01)
        with pytest.raises(RuntimeError):
            scheduler.schedule(default_ledger())


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
