"""Bounded in-memory TTL cache for collaborator lookups.

The cache is constructed once in the application lifespan and injected into
the metrics resolver; nothing in the pipeline reaches for a module global.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Protocol


class LookupCache(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None: ...

    def has(self, key: str) -> bool: ...

    def delete(self, key: str) -> bool: ...

    def clear(self) -> None: ...


class TTLCache:
    """Thread-safe TTL cache that evicts the oldest entry when full."""

    def __init__(
        self,
        max_entries: int = 1000,
        default_ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._store: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def _is_expired_unlocked(self, key: str) -> bool:
        entry = self._store.get(key)
        if entry is None:
            return True
        _value, expires_at = entry
        if expires_at <= self._clock():
            self._store.pop(key, None)
            return True
        return False

    def get(self, key: str) -> Any | None:
        with self._lock:
            if self._is_expired_unlocked(key):
                self._misses += 1
                return None
            self._hits += 1
            return self._store[key][0]

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            if key not in self._store and len(self._store) >= self._max_entries:
                self._purge_expired_unlocked()
                while len(self._store) >= self._max_entries:
                    self._store.popitem(last=False)
                    self._evictions += 1
            self._store[key] = (value, self._clock() + ttl)
            self._store.move_to_end(key)

    def has(self, key: str) -> bool:
        with self._lock:
            return not self._is_expired_unlocked(key)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_expired_unlocked()

    def _purge_expired_unlocked(self) -> int:
        now = self._clock()
        expired = [key for key, (_value, expires_at) in self._store.items() if expires_at <= now]
        for key in expired:
            self._store.pop(key, None)
        return len(expired)

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._store),
                "max_entries": self._max_entries,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
