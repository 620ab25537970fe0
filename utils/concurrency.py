"""
Concurrency helpers — session mutex and scoped heartbeats.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import weakref
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")


class SessionMutex:
    """FIFO async mutex guarding read-modify-write cycles on shared session state.

    Waiters are woken in arrival order. `for_path` returns the shared mutex for
    a file so every writer of that file in this process goes through one gate.
    The registry holds mutexes weakly: an entry lives as long as some writer
    still holds it.
    """

    _registry: weakref.WeakValueDictionary[str, SessionMutex] = weakref.WeakValueDictionary()
    _registry_lock = threading.Lock()

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    @classmethod
    def for_path(cls, path: str | Path) -> SessionMutex:
        key = str(Path(path).resolve())
        with cls._registry_lock:
            mutex = cls._registry.get(key)
            if mutex is None:
                mutex = cls._registry[key] = cls()
            return mutex

    async def acquire(self) -> None:
        await self._lock.acquire()

    def release(self) -> None:
        self._lock.release()

    def locked(self) -> bool:
        return self._lock.locked()

    async def __aenter__(self) -> SessionMutex:
        await self.acquire()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.release()

    async def with_lock(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run `fn` while holding the mutex."""
        async with self:
            return await fn()


@asynccontextmanager
async def heartbeating(
    send: Callable[..., Any],
    interval: float,
    details: Callable[[], dict] | None = None,
):
    """Emit `send(details())` every `interval` seconds for the duration of the block.

    The heartbeat task is cancelled on every exit path, including cancellation
    of the enclosing task.
    """

    async def _beat() -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                if details is not None:
                    send(details())
                else:
                    send()
            except Exception as e:
                log.debug("Heartbeat failed: %s", e)

    beat = asyncio.create_task(_beat())
    try:
        yield beat
    finally:
        beat.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await beat
