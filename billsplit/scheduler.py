"""
Debounced Sync Scheduler

Coalesces a burst of ledger edits into one remote write. Each call to
schedule() replaces the pending snapshot and restarts the countdown;
only the snapshot that survives a full quiet period is saved.

The scheduler owns at most one timer handle. It does no blocking work
itself: when the timer fires, the save runs as a separate task. Saves
that fire back to back are serialized so they reach the store in the
order they were scheduled.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from billsplit.models.ledger import Ledger


logger = structlog.get_logger(__name__)

SaveCallable = Callable[[Ledger], Awaitable[None]]


class DebouncedSyncScheduler:
    """
    Single-timer debounce around an async save.

    Usage:
        scheduler = DebouncedSyncScheduler(gateway.save, delay=1.0)
        scheduler.schedule(ledger)   # from inside the event loop
        ...
        await scheduler.close()
    """

    def __init__(
        self,
        save: SaveCallable,
        delay: float = 1.0,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self._save = save
        self._delay = delay
        self._on_error = on_error
        self._timer: Optional[asyncio.TimerHandle] = None
        self._latest: Optional[Ledger] = None
        self._in_flight: set[asyncio.Task] = set()
        self._write_lock: Optional[asyncio.Lock] = None

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        """True while a countdown is running."""
        return self._timer is not None

    def schedule(self, ledger: Ledger) -> None:
        """
        Record a snapshot of `ledger` and restart the countdown.

        Must be called from a running event loop.
        """
        loop = asyncio.get_running_loop()
        self._latest = ledger.snapshot()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        """Drop the pending countdown and snapshot. Nothing is saved."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._latest = None

    async def flush(self) -> None:
        """Save the pending snapshot now, then wait for in-flight saves."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            self._start_pending()
        await self.wait_idle()

    async def wait_idle(self) -> None:
        """Wait until no save is in flight."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight))

    async def close(self) -> None:
        """Cancel the countdown; in-flight saves are awaited, not cancelled."""
        self.cancel()
        await self.wait_idle()

    def _fire(self) -> None:
        self._timer = None
        self._start_pending()

    def _start_pending(self) -> None:
        ledger, self._latest = self._latest, None
        if ledger is None:
            return
        task = asyncio.get_running_loop().create_task(self._run_save(ledger))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _run_save(self, ledger: Ledger) -> None:
        if self._write_lock is None:
            self._write_lock = asyncio.Lock()
        async with self._write_lock:
            try:
                await self._save(ledger)
            except Exception as e:
                if self._on_error is not None:
                    self._on_error(e)
                else:
                    logger.error("debounced_save_failed", error=str(e))
