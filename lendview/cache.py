"""TTL cache with per-key-class expiry and single-flight loading."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

logger = logging.getLogger(__name__)

# Key classes. A cache key is "<class>:<identifier>".
LIVE = "live"
ANALYTICS = "analytics"
MARKET = "market"

DEFAULT_TTLS: dict[str, float] = {LIVE: 30.0, ANALYTICS: 60.0, MARKET: 300.0}


class _Miss:
    _instance: _Miss | None = None

    def __new__(cls) -> _Miss:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISS"

    def __bool__(self) -> bool:
        return False


MISS = _Miss()


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    fetched_at: float


def make_key(key_class: str, *parts: object) -> str:
    return ":".join([key_class, *(str(p) for p in parts)])


class TTLCache:
    """Key → (value, fetch-time) store.

    Entries are replaced wholesale on ``set``; readers always see a complete
    previous or new value. ``clock`` is injectable for deterministic tests.
    """

    def __init__(
        self,
        ttls: Mapping[str, float] | None = None,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 1024,
        default_ttl: float = DEFAULT_TTLS[LIVE],
    ) -> None:
        self._ttls = dict(DEFAULT_TTLS)
        if ttls:
            self._ttls.update(ttls)
        self._clock = clock
        self._max_entries = max_entries
        self._default_ttl = default_ttl
        self._entries: dict[str, CacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def ttl_for(self, key: str) -> float:
        return self._ttls.get(key.split(":", 1)[0], self._default_ttl)

    def get(self, key: str) -> Any:
        """Return the fresh value for ``key`` or ``MISS``. Never raises."""
        entry = self._entries.get(key)
        if entry is None or self._expired(entry):
            return MISS
        return entry.value

    def peek(self, key: str) -> CacheEntry | None:
        """Return the entry for ``key`` even if stale."""
        return self._entries.get(key)

    def set(self, key: str, value: Any) -> CacheEntry:
        entry = CacheEntry(key=key, value=value, fetched_at=self._clock())
        self._entries[key] = entry
        if len(self._entries) > self._max_entries:
            self._evict()
        return entry

    def is_expired(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is None or self._expired(entry)

    def invalidate(self, key: str | None = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def lock(self, key: str) -> asyncio.Lock:
        """Per-key lock used to serialize recomputation of one key."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return a fresh cached value, or run ``loader`` once per key and cache it."""
        value = self.get(key)
        if value is not MISS:
            return value
        async with self.lock(key):
            value = self.get(key)
            if value is not MISS:
                return value
            value = await loader()
            self.set(key, value)
            return value

    def stats(self) -> dict[str, Any]:
        return {"size": len(self._entries), "keys": sorted(self._entries)}

    def __len__(self) -> int:
        return len(self._entries)

    def _expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.fetched_at > self.ttl_for(entry.key)

    def _evict(self) -> None:
        expired = [k for k, e in self._entries.items() if self._expired(e)]
        for key in expired:
            del self._entries[key]
        while len(self._entries) > self._max_entries:
            oldest = min(self._entries.values(), key=lambda e: e.fetched_at)
            logger.debug("Cache full, evicting %s", oldest.key)
            del self._entries[oldest.key]
