"""
policy_cache

Policy-driven async result cache with singleflight refresh and optional
durable storage.
"""

from loguru import logger

from policy_cache.entries import (
    CachedValue,
    CacheEntry,
    CacheMetadata,
    CompletedEntry,
    FailedEntry,
    PendingEntry,
)
from policy_cache.keys import canonical_key
from policy_cache.memory_cache import MemoryCache, memoize, memory_cache
from policy_cache.policies import (
    PendingPolicy,
    UpdatePolicy,
    always_stale,
    always_update,
    always_wait,
    never_update,
    update_when_older_than,
    wait_when_older_than,
)
from policy_cache.shared.exceptions import CacheKeyError, InvalidPolicyError, PolicyCacheError
from policy_cache.storage import CacheStorage, Json, MemoryStorage, StoredItem
from policy_cache.stored_cache import StoredCache, stored_cache

__all__ = [
    "CacheEntry",
    "CacheKeyError",
    "CacheMetadata",
    "CacheStorage",
    "CachedValue",
    "CompletedEntry",
    "FailedEntry",
    "InvalidPolicyError",
    "Json",
    "MemoryCache",
    "MemoryStorage",
    "PendingEntry",
    "PendingPolicy",
    "PolicyCacheError",
    "StoredCache",
    "StoredItem",
    "UpdatePolicy",
    "always_stale",
    "always_update",
    "always_wait",
    "canonical_key",
    "memoize",
    "memory_cache",
    "never_update",
    "stored_cache",
    "update_when_older_than",
    "wait_when_older_than",
]

# ライブラリとしては既定で無出力。setup_logger() で有効化する
logger.disable("policy_cache")
