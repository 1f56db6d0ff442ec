"""Unit tests for StoredCache and MemoryStorage."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from policy_cache.entries import CacheMetadata, CompletedEntry, FailedEntry, PendingEntry
from policy_cache.policies import (
    UpdatePolicy,
    always_stale,
    always_update,
    always_wait,
    never_update,
    update_when_older_than,
)
from policy_cache.storage import MemoryStorage, StoredItem
from policy_cache.stored_cache import StoredCache, stored_cache


def make_storage(item: StoredItem | None = None) -> AsyncMock:
    storage = AsyncMock()
    storage.get_item = AsyncMock(return_value=item)
    storage.set_item = AsyncMock(return_value=None)
    return storage


class TestStorageHit:
    @pytest.mark.asyncio
    async def test_dont_update_serves_stored_value(self, clock) -> None:
        storage = make_storage(StoredItem(value="x", metadata=CacheMetadata(clock.now)))
        producer = AsyncMock(return_value="fresh")
        cache = stored_cache(
            producer,
            update_policy=never_update(),
            pending_policy=always_wait(),
            storage=storage,
        )

        assert await cache("k") == "x"

        storage.get_item.assert_awaited_once_with("k")
        producer.assert_not_called()
        storage.set_item.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_calls_producer_without_write_back(self, clock) -> None:
        storage = make_storage(StoredItem(value="old", metadata=CacheMetadata(clock.now)))
        producer = AsyncMock(return_value="new")
        cache = stored_cache(
            producer,
            update_policy=always_update(),
            pending_policy=always_wait(),
            storage=storage,
        )

        assert await cache("k") == "new"

        producer.assert_awaited_once_with("k")
        storage.set_item.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_policy_sees_stored_metadata(self, clock) -> None:
        stored_at = clock.now - timedelta(hours=1)
        storage = make_storage(StoredItem(value={"n": 1}, metadata=CacheMetadata(stored_at)))
        producer = AsyncMock(return_value={"n": 2})
        seen: list[tuple[object, CacheMetadata]] = []

        def update_policy(value, metadata):
            seen.append((value, metadata))
            return UpdatePolicy.DONT_UPDATE

        cache = stored_cache(
            producer,
            update_policy=update_policy,
            pending_policy=always_wait(),
            storage=storage,
        )

        assert await cache("k") == {"n": 1}
        assert seen == [({"n": 1}, CacheMetadata(stored_at))]

    @pytest.mark.asyncio
    async def test_stale_stored_value_refreshed_by_age_policy(self, clock) -> None:
        stored_at = clock.now - timedelta(minutes=10)
        storage = make_storage(StoredItem(value=1, metadata=CacheMetadata(stored_at)))
        producer = AsyncMock(return_value=2)
        cache = stored_cache(
            producer,
            update_policy=update_when_older_than(timedelta(minutes=5), clock=clock),
            pending_policy=always_wait(),
            storage=storage,
            clock=clock,
        )

        assert await cache("k") == 2
        assert producer.call_count == 1


class TestStorageMiss:
    @pytest.mark.asyncio
    async def test_miss_calls_producer_and_persists(self, clock) -> None:
        storage = make_storage(None)
        producer = AsyncMock(return_value="y")
        cache = stored_cache(
            producer,
            update_policy=never_update(),
            pending_policy=always_wait(),
            storage=storage,
            clock=clock,
        )

        assert await cache("k") == "y"

        producer.assert_awaited_once_with("k")
        storage.set_item.assert_awaited_once_with("k", "y", CacheMetadata(clock.now))

    @pytest.mark.asyncio
    async def test_memory_entry_authoritative_after_first_load(self) -> None:
        storage = make_storage(None)
        producer = AsyncMock(return_value="y")
        cache = stored_cache(
            producer,
            update_policy=never_update(),
            pending_policy=always_wait(),
            storage=storage,
        )

        for _ in range(3):
            assert await cache("k") == "y"

        assert storage.get_item.await_count == 1
        assert producer.call_count == 1
        assert isinstance(cache.peek("k"), CompletedEntry)
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_concurrent_cold_calls_hit_storage_once(self) -> None:
        storage = make_storage(None)
        producer = AsyncMock(return_value="y")
        cache = stored_cache(
            producer,
            update_policy=never_update(),
            pending_policy=always_wait(),
            storage=storage,
        )

        results = await asyncio.gather(cache("k"), cache("k"), cache("k"))

        assert results == ["y", "y", "y"]
        assert storage.get_item.await_count == 1
        assert storage.set_item.await_count == 1
        assert producer.call_count == 1


class TestFailures:
    @pytest.mark.asyncio
    async def test_storage_error_propagates_to_waiter(self) -> None:
        error = OSError("disk unavailable")
        storage = make_storage(None)
        storage.get_item.side_effect = error
        producer = AsyncMock(return_value="y")
        cache = stored_cache(
            producer,
            update_policy=never_update(),
            pending_policy=always_wait(),
            storage=storage,
        )

        with pytest.raises(OSError) as exc_info:
            await cache("k")

        assert exc_info.value is error
        assert isinstance(cache.peek("k"), FailedEntry)
        producer.assert_not_called()

    @pytest.mark.asyncio
    async def test_producer_error_is_not_persisted(self) -> None:
        storage = make_storage(None)
        producer = AsyncMock(side_effect=[RuntimeError("boom"), "y"])
        cache = stored_cache(
            producer,
            update_policy=never_update(),
            pending_policy=always_wait(),
            storage=storage,
        )

        with pytest.raises(RuntimeError):
            await cache("k")
        storage.set_item.assert_not_called()

        assert await cache("k") == "y"
        assert storage.set_item.await_count == 1


class TestWithMemoryStorage:
    @pytest.mark.asyncio
    async def test_stored_value_survives_new_cache_instance(self, clock) -> None:
        storage: MemoryStorage[str, dict] = MemoryStorage()
        producer = AsyncMock(return_value={"price": 2510.0})

        first = StoredCache(
            producer,
            update_policy=never_update(),
            pending_policy=always_wait(),
            storage=storage,
            clock=clock,
        )
        assert await first("7203") == {"price": 2510.0}
        assert "7203" in storage

        # simulated restart: new in-memory state, same storage
        restarted = StoredCache(
            producer,
            update_policy=never_update(),
            pending_policy=always_wait(),
            storage=storage,
            clock=clock,
        )
        assert await restarted("7203") == {"price": 2510.0}
        assert producer.call_count == 1

    @pytest.mark.asyncio
    async def test_memory_storage_copies_values(self, clock) -> None:
        storage: MemoryStorage[str, dict] = MemoryStorage()
        value = {"items": [1, 2]}
        await storage.set_item("k", value, CacheMetadata(clock.now))

        value["items"].append(3)
        loaded = await storage.get_item("k")
        assert loaded is not None
        assert loaded.value == {"items": [1, 2]}

        loaded.value["items"].clear()
        again = await storage.get_item("k")
        assert again is not None
        assert again.value == {"items": [1, 2]}
        assert again.metadata == CacheMetadata(clock.now)

    @pytest.mark.asyncio
    async def test_memory_storage_missing_key(self) -> None:
        storage: MemoryStorage[str, int] = MemoryStorage()
        assert await storage.get_item("missing") is None
        assert len(storage) == 0


class TestPendingPolicy:
    @pytest.mark.asyncio
    async def test_stale_callers_get_previous_value_during_update(self, gated_producer) -> None:
        storage: MemoryStorage[str, str] = MemoryStorage()
        producer = gated_producer("v1", "v2")
        decision = {"update": UpdatePolicy.DONT_UPDATE}
        cache = stored_cache(
            producer,
            update_policy=lambda value, metadata: decision["update"],
            pending_policy=always_stale(),
            storage=storage,
        )

        producer.gate.set()
        assert await cache("k") == "v1"
        producer.gate.clear()
        producer.started.clear()

        # UPDATE starts a refresh through storage; STALE serves v1 meanwhile
        decision["update"] = UpdatePolicy.UPDATE
        assert await cache("k") == "v1"
        await producer.started.wait()

        pending = cache.peek("k")
        assert isinstance(pending, PendingEntry)
        assert await cache("k") == "v1"
        assert producer.call_count == 2

        producer.gate.set()
        await pending.refresh

        completed = cache.peek("k")
        assert isinstance(completed, CompletedEntry)
        assert completed.current.value == "v2"
        stored = await storage.get_item("k")
        assert stored is not None
        assert stored.value == "v1"
