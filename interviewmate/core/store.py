"""
interviewmate/core/store.py — KeyValueStore interface and in-process implementation
Backs the response cache. A shared external store can replace the
process-local map without touching the cache.
"""
from __future__ import annotations

import threading
import time
from typing import Any, Callable, Optional, Protocol


class KeyValueStore(Protocol):
    """Minimal TTL key-value contract used by the response cache."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ...

    def delete(self, *keys: str) -> int:
        ...

    def keys(self, substring: str = "") -> list[str]:
        ...


class InMemoryStore:
    """
    Dict-backed store with per-key expiry.
    Expired keys are dropped lazily on access and in bulk by purge_expired().
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[Any, Optional[float]]] = {}
        self._lock = threading.RLock()

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    def _live(self, key: str) -> Optional[tuple[Any, Optional[float]]]:
        item = self._data.get(key)
        if item is None:
            return None
        if self._expired(item[1]):
            del self._data[key]
            return None
        return item

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._live(key)
            return item[0] if item else None

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        with self._lock:
            expires_at = self._clock() + ttl if ttl is not None else None
            self._data[key] = (value, expires_at)

    def delete(self, *keys: str) -> int:
        removed = 0
        with self._lock:
            for key in keys:
                if self._data.pop(key, None) is not None:
                    removed += 1
        return removed

    def keys(self, substring: str = "") -> list[str]:
        with self._lock:
            self.purge_expired()
            return [k for k in self._data if substring in k]

    def purge_expired(self) -> int:
        """Remove every expired entry. Returns how many were dropped."""
        with self._lock:
            expired = [k for k, (_, exp) in self._data.items() if self._expired(exp)]
            for k in expired:
                del self._data[k]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            self.purge_expired()
            return len(self._data)
