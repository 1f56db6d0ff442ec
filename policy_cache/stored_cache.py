"""Storage-backed cache: durable storage behind a `MemoryCache`.

The in-memory cache decides when to refresh. Each refresh first consults
storage, which makes storage authoritative on a cold start and the in-memory
entry authoritative afterwards.

Write-back asymmetry: only a storage miss writes the produced value back.
When a stored item exists and the update policy selects UPDATE, the producer
runs and its result is served from memory but not persisted, so storage keeps
the older item until it is written by some other path.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Generic, TypeVar

from policy_cache.entries import CacheEntry, CacheMetadata
from policy_cache.memory_cache import MemoryCache
from policy_cache.policies import (
    Clock,
    PendingPolicyFn,
    UpdatePolicy,
    UpdatePolicyFn,
    coerce_update_policy,
    utc_now,
)
from policy_cache.shared.utils.logger_config import get_logger
from policy_cache.storage import CacheStorage, J

K = TypeVar("K")


class StoredCache(Generic[K, J]):
    """Single-key cache whose refresh path reads and seeds durable storage."""

    def __init__(
        self,
        refresh: Callable[[K], Awaitable[J]],
        *,
        update_policy: UpdatePolicyFn[J],
        pending_policy: PendingPolicyFn[J],
        storage: CacheStorage[K, J],
        clock: Clock | None = None,
        name: str | None = None,
    ) -> None:
        self._producer = refresh
        self._update_policy = update_policy
        self._storage = storage
        self._clock = clock or utc_now
        self.name = name or getattr(refresh, "__qualname__", "stored_cache")
        self._logger = get_logger(self.name)
        self._memory: MemoryCache[J] = MemoryCache(
            self._refresh_through_storage,
            update_policy=update_policy,
            pending_policy=pending_policy,
            clock=self._clock,
            name=self.name,
        )

    def __len__(self) -> int:
        return len(self._memory)

    def __call__(self, key: K) -> Awaitable[J]:
        return self.get(key)

    async def get(self, key: K) -> J:
        """Return the value for ``key``; see `MemoryCache.get` for the state rules."""
        return await self._memory.get(key)

    def peek(self, key: K) -> CacheEntry[J] | None:
        return self._memory.peek(key)

    async def _refresh_through_storage(self, key: K) -> J:
        stored = await self._storage.get_item(key)
        if stored is not None:
            update = coerce_update_policy(self._update_policy(stored.value, stored.metadata))
            if update is UpdatePolicy.DONT_UPDATE:
                self._logger.debug(f"[{self.name}] served from storage: key={key!r}")
                return stored.value
            # not written back; see module docstring
            return await self._producer(key)

        value = await self._producer(key)
        await self._storage.set_item(key, value, CacheMetadata(last_updated_at=self._clock()))
        self._logger.debug(f"[{self.name}] stored: key={key!r}")
        return value


def stored_cache(
    refresh: Callable[[K], Awaitable[J]],
    *,
    update_policy: UpdatePolicyFn[J],
    pending_policy: PendingPolicyFn[J],
    storage: CacheStorage[K, J],
    clock: Clock | None = None,
    name: str | None = None,
) -> StoredCache[K, J]:
    """Wrap ``refresh`` in a `StoredCache` backed by ``storage``."""
    return StoredCache(
        refresh,
        update_policy=update_policy,
        pending_policy=pending_policy,
        storage=storage,
        clock=clock,
        name=name,
    )
