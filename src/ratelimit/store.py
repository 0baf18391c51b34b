"""Counter stores for the rate limiter.

The limiter talks to a store through the :class:`CounterStore` protocol so the
in-process table can be swapped for an external atomic counter service without
touching call sites. Every store must make ``increment`` atomic per key.
"""

import asyncio
import logging
from typing import Protocol

from src.ratelimit.models import RateLimitWindow

logger = logging.getLogger(__name__)


class CounterStore(Protocol):
    async def increment(self, key: str, window_id: int, window_start: int, window_end: int) -> RateLimitWindow:
        """Fetch-or-create the counter for ``key`` in ``window_id`` and add one.

        A stored entry from a different window is discarded and the count
        restarts at 1.
        """
        ...

    async def get(self, key: str) -> RateLimitWindow | None: ...

    async def delete(self, key: str) -> None: ...

    async def sweep(self, now_ms: int) -> int:
        """Remove windows whose end is before ``now_ms``. Returns the count removed."""
        ...


class InMemoryCounterStore:
    """Process-local counter table with single-writer-at-a-time semantics per key."""

    def __init__(self) -> None:
        self._windows: dict[str, RateLimitWindow] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def increment(self, key: str, window_id: int, window_start: int, window_end: int) -> RateLimitWindow:
        async with self._lock_for(key):
            window = self._windows.get(key)
            if window is None or window.window_id != window_id:
                window = RateLimitWindow(
                    key=key,
                    window_id=window_id,
                    count=0,
                    window_start=window_start,
                    window_end=window_end,
                )
                self._windows[key] = window
            window.count += 1
            return RateLimitWindow(**vars(window))

    async def get(self, key: str) -> RateLimitWindow | None:
        window = self._windows.get(key)
        if window is None:
            return None
        return RateLimitWindow(**vars(window))

    async def delete(self, key: str) -> None:
        lock = self._lock_for(key)
        async with lock:
            self._windows.pop(key, None)
        if not lock.locked() and self._locks.get(key) is lock:
            del self._locks[key]

    async def sweep(self, now_ms: int) -> int:
        expired = [key for key, w in self._windows.items() if w.window_end < now_ms]
        removed = 0
        for key in expired:
            lock = self._locks.get(key)
            if lock is not None and lock.locked():
                continue
            self._windows.pop(key, None)
            self._locks.pop(key, None)
            removed += 1
        return removed

    def __len__(self) -> int:
        return len(self._windows)
