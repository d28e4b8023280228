"""
Sync Status Feed

The gateway and the archive publish their state transitions here; the
presentation layer subscribes and shows a transient banner. Only the
transitions are part of the contract, not the banner text.
"""

from collections import deque
from enum import Enum
from typing import Callable, Optional

import structlog
from pydantic import BaseModel, ConfigDict


logger = structlog.get_logger(__name__)


class SyncState(str, Enum):
    """States of the remote synchronization."""
    IDLE = "idle"
    OFFLINE = "offline"
    SYNCING = "syncing"
    SAVED = "saved"
    ERROR = "error"


class StatusUpdate(BaseModel):
    """One published state, with a reason for errors."""
    model_config = ConfigDict(frozen=True)

    state: SyncState
    reason: Optional[str] = None

    @property
    def label(self) -> str:
        """`offline`, `syncing`, `saved` or `error:<reason>`."""
        if self.state == SyncState.ERROR:
            return f"error:{self.reason or 'unknown'}"
        return self.state.value


StatusListener = Callable[[StatusUpdate], None]


class StatusFeed:
    """
    Publish/subscribe holder for the latest sync state.

    Listener exceptions are logged and never interrupt publishing.
    """

    def __init__(self, history_size: int = 50):
        self._current = StatusUpdate(state=SyncState.IDLE)
        self._listeners: list[StatusListener] = []
        self._history: deque[StatusUpdate] = deque(maxlen=history_size)

    @property
    def current(self) -> StatusUpdate:
        return self._current

    @property
    def history(self) -> list[StatusUpdate]:
        return list(self._history)

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, state: SyncState, reason: Optional[str] = None) -> StatusUpdate:
        update = StatusUpdate(state=state, reason=reason)
        self._current = update
        self._history.append(update)

        for listener in list(self._listeners):
            try:
                listener(update)
            except Exception as e:
                logger.error("status_listener_failed", status=update.label, error=str(e))
        return update
