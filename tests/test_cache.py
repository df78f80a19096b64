"""
tests/test_cache.py — Unit tests for the key-value store and response cache
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

from interviewmate.core.cache_manager import analytics_key, clear_user_cache, history_key


def test_store_expires_entries(store, clock):
    store.set("a", 1, ttl=10)
    assert store.get("a") == 1
    clock.advance(10)
    assert store.get("a") is None


def test_store_purge_expired(store, clock):
    store.set("short", 1, ttl=1)
    store.set("long", 2, ttl=100)
    store.set("forever", 3)
    clock.advance(5)
    assert store.purge_expired() == 1
    assert sorted(store.keys()) == ["forever", "long"]
    clock.advance(1_000_000)
    assert store.get("forever") == 3


def test_key_builders():
    assert analytics_key("u1") == "analytics:u1"
    assert history_key("u1") == "history:u1:1:10:all:all"
    assert history_key("u1", 2, 5, "hr", "completed") == "history:u1:2:5:hr:completed"


def test_second_read_does_not_recompute(response_cache):
    payload = {"success": True, "interviews": [], "pagination": {"total": 0}}
    compute = AsyncMock(return_value=payload)
    key = history_key("u1", 1, 10)

    first = asyncio.run(response_cache.remember(key, 180, compute))
    second = asyncio.run(response_cache.remember(key, 180, compute))

    assert first == second == payload
    assert compute.await_count == 1
    assert response_cache.hits == 1


def test_error_payload_is_never_cached(response_cache):
    compute = AsyncMock(return_value={"success": False, "error": {"message": "boom"}})
    asyncio.run(response_cache.remember("analytics:u1", 300, compute))
    asyncio.run(response_cache.remember("analytics:u1", 300, compute))
    assert compute.await_count == 2
    assert response_cache.keys() == []


def test_entry_recomputed_after_ttl(response_cache, clock):
    compute = AsyncMock(return_value={"success": True, "n": 1})
    asyncio.run(response_cache.remember("analytics:u1", 300, compute))
    clock.advance(301)
    asyncio.run(response_cache.remember("analytics:u1", 300, compute))
    assert compute.await_count == 2


def test_invalidation_clears_every_variant_for_user(response_cache):
    for page in (1, 2, 3):
        response_cache.set(history_key("u1", page, 10), {"success": True}, 180)
    response_cache.set(history_key("u1", 1, 10, "hr"), {"success": True}, 180)
    response_cache.set(analytics_key("u1"), {"success": True}, 300)
    response_cache.set(history_key("u2"), {"success": True}, 180)

    assert clear_user_cache(response_cache, "u1") == 5
    assert response_cache.keys() == [history_key("u2")]


def test_read_after_invalidation_misses_and_recomputes(response_cache):
    compute = AsyncMock(return_value={"success": True, "interviews": []})
    key = history_key("u1", 1, 10)
    asyncio.run(response_cache.remember(key, 180, compute))
    clear_user_cache(response_cache, "u1")
    asyncio.run(response_cache.remember(key, 180, compute))
    assert compute.await_count == 2


def test_invalidation_leaves_other_entries_in_store(response_cache, store):
    store.set("sessions:u1", {"active": True})
    response_cache.set(analytics_key("u1"), {"success": True}, 300)
    clear_user_cache(response_cache, "u1")
    assert store.get("sessions:u1") == {"active": True}


def test_clear_removes_everything(response_cache):
    response_cache.set("analytics:a", {"success": True}, 300)
    response_cache.set("analytics:b", {"success": True}, 300)
    assert response_cache.clear() == 2
    assert response_cache.stats()["entries"] == 0
