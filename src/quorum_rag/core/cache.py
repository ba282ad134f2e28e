"""
Process-scoped TTL cache with single-flight refresh.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, Tuple, TypeVar

from .logging import logger


T = TypeVar("T")


def _retrieve_exception(task: "asyncio.Future[Any]") -> None:
    # Every waiter may have been cancelled; mark the outcome as seen
    if not task.cancelled():
        task.exception()


class TTLCache(Generic[T]):
    """Replace-only key/value cache whose entries expire after ``ttl_seconds``.

    Reads never block. A refresh runs as one task per key; concurrent callers
    that find a stale entry await that task and share its value or its
    exception.
    """

    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[T, float]] = {}
        self._inflight: Dict[str, "asyncio.Future[T]"] = {}

    def get(self, key: str) -> Optional[T]:
        """Return the cached value, even if stale, or None."""
        entry = self._entries.get(key)
        return entry[0] if entry else None

    def set(self, key: str, value: T) -> None:
        self._entries[key] = (value, self._clock())

    def age(self, key: str) -> Optional[float]:
        """Seconds since the entry was stored."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._clock() - entry[1]

    def is_stale(self, key: str) -> bool:
        age = self.age(key)
        return age is None or age >= self.ttl_seconds

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one entry, or every entry when no key is given."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def get_or_refresh(self, key: str, loader: Callable[[], Awaitable[T]]) -> T:
        """Return a fresh value, calling ``loader`` at most once per expiry.

        Loader exceptions propagate; the previous value (if any) is kept.
        """
        if not self.is_stale(key):
            return self._entries[key][0]

        refresh = self._inflight.get(key)
        if refresh is None:
            refresh = asyncio.ensure_future(self._refresh(key, loader))
            refresh.add_done_callback(_retrieve_exception)
            self._inflight[key] = refresh

        # A cancelled caller must not cancel the refresh the others are waiting on
        return await asyncio.shield(refresh)

    async def _refresh(self, key: str, loader: Callable[[], Awaitable[T]]) -> T:
        try:
            logger.debug(f"Refreshing cache entry '{key}'")
            value = await loader()
            self.set(key, value)
            return value
        finally:
            self._inflight.pop(key, None)

    def snapshot(self) -> Dict[str, Any]:
        """Describe cache contents for diagnostics."""
        return {
            key: {"age_seconds": round(self._clock() - stored_at, 3), "stale": self.is_stale(key)}
            for key, (_, stored_at) in self._entries.items()
        }
