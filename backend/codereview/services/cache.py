"""In-memory TTL cache with sliding and absolute expiry."""

import abc
import asyncio
import time
from collections import OrderedDict
from typing import Any, Callable, Optional


class CacheBackend(abc.ABC):
    """Async key/value store with expiry.

    Implementations may be in-process or remote; callers only rely on these
    four operations.
    """

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        ...

    @abc.abstractmethod
    async def set(self, key: str, value: Any) -> None:
        ...

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abc.abstractmethod
    async def clear(self, prefix: str = None) -> None:
        ...


class CacheEntry:
    """A single cache entry with sliding and absolute expiration."""

    __slots__ = ("value", "created_at", "last_access")

    def __init__(self, value: Any, now: float, created_at: float = None):
        self.value = value
        self.created_at = now if created_at is None else created_at
        self.last_access = now

    def is_expired(self, now: float, sliding_seconds: float, absolute_seconds: float) -> bool:
        if now - self.created_at > absolute_seconds:
            return True
        return now - self.last_access > sliding_seconds


class TTLCache(CacheBackend):
    """Size-bounded cache; every entry weighs one unit.

    A read resets the sliding window, but never moves an entry past its
    absolute deadline. Replacing a value keeps the original creation time.
    When full, the least recently accessed entry is evicted.
    """

    def __init__(
        self,
        sliding_seconds: float = 30 * 60,
        absolute_seconds: float = 60 * 60,
        size_limit: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        if size_limit < 1:
            raise ValueError("size_limit must be at least 1")
        self.sliding_seconds = sliding_seconds
        self.absolute_seconds = absolute_seconds
        self.size_limit = size_limit
        self._clock = clock
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._cache)

    async def get(self, key: str) -> Optional[Any]:
        """Get a value from cache."""
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            now = self._clock()
            if entry.is_expired(now, self.sliding_seconds, self.absolute_seconds):
                del self._cache[key]
                return None
            entry.last_access = now
            self._cache.move_to_end(key)
            return entry.value

    async def set(self, key: str, value: Any) -> None:
        """Set a value in cache, evicting old entries if needed."""
        async with self._lock:
            now = self._clock()
            existing = self._cache.pop(key, None)
            if existing is not None and existing.is_expired(
                now, self.sliding_seconds, self.absolute_seconds
            ):
                existing = None
            self._purge_expired(now)
            while len(self._cache) >= self.size_limit:
                self._cache.popitem(last=False)
            created_at = existing.created_at if existing is not None else None
            self._cache[key] = CacheEntry(value, now, created_at)

    async def delete(self, key: str) -> None:
        """Delete a value from cache."""
        async with self._lock:
            self._cache.pop(key, None)

    async def clear(self, prefix: str = None) -> None:
        """Clear all cache or entries with a specific prefix."""
        async with self._lock:
            if prefix:
                keys_to_delete = [k for k in self._cache.keys() if k.startswith(prefix)]
                for key in keys_to_delete:
                    del self._cache[key]
            else:
                self._cache.clear()

    def _purge_expired(self, now: float) -> None:
        expired = [
            key for key, entry in self._cache.items()
            if entry.is_expired(now, self.sliding_seconds, self.absolute_seconds)
        ]
        for key in expired:
            del self._cache[key]
