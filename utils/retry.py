"""
Bounded retry with exponential backoff, for running the pipeline without a
Temporal server. Mirrors the RetryPolicy the workflow hands to Temporal.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import config
from utils.errors import RetryableTaskError

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetrySettings:
    max_attempts: int = config.RETRY_MAX_ATTEMPTS
    initial_interval: float = config.RETRY_INITIAL_INTERVAL_SEC
    backoff: float = config.RETRY_BACKOFF
    max_interval: float = config.RETRY_MAX_INTERVAL_SEC

    def delay_for(self, attempt: int) -> float:
        """Delay before the attempt after `attempt` (1-based)."""
        return min(self.initial_interval * (self.backoff ** (attempt - 1)), self.max_interval)


async def retry_async(
    fn: Callable[[int], Awaitable[T]],
    settings: RetrySettings | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call `fn(attempt)` until it returns or raises something other than RetryableTaskError.

    After `max_attempts` retryable failures the last error is raised.
    """
    settings = settings or RetrySettings()
    attempt = 1
    while True:
        try:
            return await fn(attempt)
        except RetryableTaskError as e:
            if attempt >= settings.max_attempts:
                log.error("Giving up after %d attempts: %s", attempt, e)
                raise
            delay = settings.delay_for(attempt)
            log.warning(
                "Retryable %s (attempt %d/%d), retrying in %.1fs: %s",
                e.kind.value, attempt, settings.max_attempts, delay, e,
            )
            await sleep(delay)
            attempt += 1
