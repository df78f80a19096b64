"""
interviewmate/core/cache_manager.py — TTL response cache for read-heavy endpoints
Analytics and history payloads are memoized per user and per query; any write
touching a user's interviews clears every cached variant for that user.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from interviewmate.core import logging as app_logging
from interviewmate.core.store import InMemoryStore, KeyValueStore

CACHE_PREFIX = "cache:"


# ──────────────────────────────────────────────────────────────────────────────
# Key builders
# ──────────────────────────────────────────────────────────────────────────────

def analytics_key(user_id: str) -> str:
    return f"analytics:{user_id}"


def history_key(
    user_id: str,
    page: int = 1,
    limit: int = 10,
    interview_type: Optional[str] = None,
    status: Optional[str] = None,
) -> str:
    """Every filter combination is its own entry; missing filters read "all"."""
    return f"history:{user_id}:{page}:{limit}:{interview_type or 'all'}:{status or 'all'}"


# ──────────────────────────────────────────────────────────────────────────────
# Response cache
# ──────────────────────────────────────────────────────────────────────────────

class ResponseCache:
    """
    Pure in-memory memo, never a source of truth. Only payloads with
    success == True are stored.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _k(key: str) -> str:
        return CACHE_PREFIX + key

    def get(self, key: str) -> Optional[Any]:
        value = self._store.get(self._k(key))
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        self._store.set(self._k(key), value, ttl)

    def invalidate(self, substring: str) -> int:
        """Delete every cached key containing `substring`. Returns count removed."""
        doomed = [
            k for k in self._store.keys(substring)
            if k.startswith(CACHE_PREFIX) and substring in k[len(CACHE_PREFIX):]
        ]
        removed = self._store.delete(*doomed) if doomed else 0
        app_logging.log_cache_invalidation(scope=substring or "*", removed=removed)
        return removed

    def clear(self) -> int:
        return self.invalidate("")

    def keys(self) -> list[str]:
        return [k[len(CACHE_PREFIX):] for k in self._store.keys(CACHE_PREFIX) if k.startswith(CACHE_PREFIX)]

    async def remember(
        self,
        key: str,
        ttl: float,
        compute: Callable[[], Awaitable[dict[str, Any]]],
    ) -> dict[str, Any]:
        """Return the cached payload, or compute it and cache it when it represents success."""
        cached = self.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for key: {key}")
            return cached

        payload = await compute()
        if payload.get("success") is True:
            logger.debug(f"Caching data for key: {key}")
            self.set(key, payload, ttl)
        return payload

    def stats(self) -> dict[str, int]:
        return {"entries": len(self.keys()), "hits": self.hits, "misses": self.misses}


def clear_user_cache(cache: ResponseCache, user_id: str) -> int:
    """Fired after any write that affects a user's analytics or history."""
    return cache.invalidate(user_id)


@lru_cache()
def get_store() -> KeyValueStore:
    return InMemoryStore()


@lru_cache()
def get_response_cache() -> ResponseCache:
    return ResponseCache(get_store())
