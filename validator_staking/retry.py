"""Bounded retry with pure exponential backoff for read-only RPC calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_INITIAL_DELAY = 1.0

Sleep = Callable[[float], Awaitable[None]]

logger = logging.getLogger(__name__)


async def fetch_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    *,
    sleep: Sleep = asyncio.sleep,
    label: Optional[str] = None,
) -> T:
    """Await ``operation()`` until it succeeds or ``max_attempts`` is reached.

    The delay before attempt ``n + 1`` is ``initial_delay * 2 ** (n - 1)``.
    When every attempt fails the last exception propagates unchanged.
    ``operation`` must be safe to repeat.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    name = label or getattr(operation, "__name__", "operation")
    delay = initial_delay
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:  # pylint: disable=broad-except
            if attempt >= max_attempts:
                logger.error("%s failed after %d attempts: %s", name, attempt, exc)
                raise
            logger.warning(
                "%s attempt=%d/%d failed: %s; retrying after %.2fs",
                name,
                attempt,
                max_attempts,
                exc,
                delay,
            )
        await sleep(delay)
        delay *= 2


class RetryingFetcher:
    """A retry policy bound once and shared by the components that read from the network."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self._sleep = sleep

    async def fetch(self, operation: Callable[[], Awaitable[T]], label: Optional[str] = None) -> T:
        return await fetch_with_retry(
            operation,
            self.max_attempts,
            self.initial_delay,
            sleep=self._sleep,
            label=label,
        )
