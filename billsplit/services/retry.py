"""
Retry Policy for Remote Calls

One policy object parameterizes every remote call the gateway and the
archive make: a small number of sequential attempts, a linearly growing
pause between them (attempt x base delay) and a time bound per attempt.

This is not meant for long-tail resilience. The point is a couple of
quick extra tries before the caller falls back or reports failure.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from billsplit.config import SyncSettings
from billsplit.services.storage.interface import (
    DuplicateError,
    NotFoundError,
    RequestTimeoutError,
    StorageError,
)


T = TypeVar("T")

logger = structlog.get_logger(__name__)


def is_retryable(exc: BaseException) -> bool:
    """Storage failures are retried, except for missing or duplicate entities."""
    return isinstance(exc, StorageError) and not isinstance(
        exc, (NotFoundError, DuplicateError)
    )


class RetryPolicy:
    """
    Sequential retry with linear backoff and a per-attempt timeout.

    Usage:
        policy = RetryPolicy(max_attempts=3, base_delay=0.5, timeout=5.0)
        data = await policy.call(storage.get_document, "load settlement")
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        timeout: float = 5.0,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.timeout = timeout
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_attempts,
            base_delay=settings.retry_base_delay_seconds,
            timeout=settings.request_timeout_seconds,
        )

    def _retrying(self, description: str) -> AsyncRetrying:
        def log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "remote_call_retry",
                operation=description,
                attempt=retry_state.attempt_number,
                max_attempts=self.max_attempts,
                sleep_seconds=retry_state.next_action.sleep if retry_state.next_action else 0,
                error=str(exc),
            )

        extra = {"sleep": self._sleep} if self._sleep else {}
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.base_delay, increment=self.base_delay),
            retry=retry_if_exception(is_retryable),
            before_sleep=log_retry,
            reraise=True,
            **extra,
        )

    async def bounded(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str,
    ) -> T:
        """Run one attempt, raising RequestTimeoutError past the time bound."""
        try:
            return await asyncio.wait_for(operation(), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise RequestTimeoutError(
                f"{description} exceeded {self.timeout:g}s"
            ) from None

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str,
    ) -> T:
        """
        Run `operation` under the policy.

        `operation` is a zero-argument factory so that every attempt gets
        a fresh awaitable. The last error is re-raised once attempts are
        exhausted.
        """
        return await self._retrying(description)(self.bounded, operation, description)
