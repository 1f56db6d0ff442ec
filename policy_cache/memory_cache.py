"""In-memory keyed async cache with policy-driven refresh and singleflight.

Every distinct argument key owns one entry that moves between three states:

- ``pending``: a refresh is in flight (the previous good value is kept)
- ``completed``: the last refresh succeeded
- ``failed``: the last refresh raised (the previous good value is kept)

Concurrent calls for the same key attach to one shared refresh task, so the
producer runs at most once per refresh decision. Entries are never evicted;
the map grows with the number of distinct keys for the lifetime of the cache.
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Awaitable, Callable, Generic, Mapping, Sequence, TypeVar, cast

from policy_cache.entries import (
    CachedValue,
    CacheEntry,
    CacheMetadata,
    CompletedEntry,
    FailedEntry,
    PendingEntry,
    RefreshFailed,
    RefreshOutcome,
    RefreshSucceeded,
    unwrap,
)
from policy_cache.keys import canonical_key
from policy_cache.policies import (
    Clock,
    PendingPolicy,
    PendingPolicyFn,
    UpdatePolicy,
    UpdatePolicyFn,
    coerce_pending_policy,
    coerce_update_policy,
    utc_now,
)
from policy_cache.shared.utils.logger_config import get_logger

T = TypeVar("T")

Producer = Callable[..., Awaitable[T]]


class MemoryCache(Generic[T]):
    """Memoize an async producer per argument key.

    Usage:
        cache = memory_cache(
            fetch_quote,
            update_policy=update_when_older_than(60),
            pending_policy=always_stale(),
        )
        quote = await cache("7203")
    """

    def __init__(
        self,
        refresh: Producer[T],
        *,
        update_policy: UpdatePolicyFn[T],
        pending_policy: PendingPolicyFn[T],
        clock: Clock | None = None,
        name: str | None = None,
    ) -> None:
        self._refresh = refresh
        self._update_policy = update_policy
        self._pending_policy = pending_policy
        self._clock = clock or utc_now
        self.name = name or getattr(refresh, "__qualname__", "memory_cache")
        self._entries: dict[str, CacheEntry[T]] = {}
        self._logger = get_logger(self.name)

    def __len__(self) -> int:
        return len(self._entries)

    def __call__(self, *args: Any, **kwargs: Any) -> Awaitable[T]:
        return self.get(*args, **kwargs)

    def peek(self, *args: Any, **kwargs: Any) -> CacheEntry[T] | None:
        """Current entry for these arguments, without starting anything."""
        return self._entries.get(canonical_key(args, kwargs))

    async def get(self, *args: Any, **kwargs: Any) -> T:
        """
        Return the value for these arguments according to the entry state.

        Policy functions run before any refresh is started, so an exception
        raised by a policy leaves the entry untouched.

        Raises:
            CacheKeyError: the arguments cannot be keyed
            InvalidPolicyError: a policy returned an unknown decision
            Exception: whatever the producer raised, when this caller waits
        """
        key = canonical_key(args, kwargs)
        entry = self._entries.get(key)

        if entry is None:
            refresh = self._start_refresh(key, None, args, kwargs)
            return await self._resolve(key, None, PendingPolicy.WAIT, refresh)

        if isinstance(entry, PendingEntry):
            decision = self._pending_decision(entry.previous)
            return await self._resolve(key, entry.previous, decision, entry.refresh)

        if isinstance(entry, CompletedEntry):
            current = entry.current
            update = coerce_update_policy(self._update_policy(current.value, current.metadata))
            if update is UpdatePolicy.DONT_UPDATE:
                self._logger.trace(f"[{self.name}] hit: key={key}")
                return current.value
            decision = self._pending_decision(current)
            refresh = self._start_refresh(key, current, args, kwargs)
            return await self._resolve(key, current, decision, refresh)

        # failed entries always retry; the update policy is not consulted
        decision = self._pending_decision(entry.previous)
        refresh = self._start_refresh(key, entry.previous, args, kwargs)
        return await self._resolve(key, entry.previous, decision, refresh)

    def _pending_decision(self, previous: CachedValue[T] | None) -> PendingPolicy:
        if previous is None:
            return PendingPolicy.WAIT
        return coerce_pending_policy(self._pending_policy(previous.value, previous.metadata))

    async def _resolve(
        self,
        key: str,
        previous: CachedValue[T] | None,
        decision: PendingPolicy,
        refresh: asyncio.Task[RefreshOutcome[T]],
    ) -> T:
        if previous is not None and decision is PendingPolicy.STALE:
            self._logger.trace(f"[{self.name}] stale: key={key}")
            return previous.value
        # shield: an abandoned waiter must not cancel the shared refresh
        outcome = await asyncio.shield(refresh)
        return unwrap(outcome)

    def _start_refresh(
        self,
        key: str,
        previous: CachedValue[T] | None,
        args: Sequence[Any],
        kwargs: Mapping[str, Any],
    ) -> asyncio.Task[RefreshOutcome[T]]:
        # task creation and entry installation happen without a suspension point
        refresh = asyncio.get_running_loop().create_task(
            self._run_refresh(key, previous, args, kwargs),
            name=f"{self.name}:refresh",
        )
        refresh.add_done_callback(functools.partial(self._release_unsettled, key, previous))
        self._entries[key] = PendingEntry(previous=previous, refresh=refresh)
        self._logger.debug(f"[{self.name}] refresh started: key={key}")
        return refresh

    def _release_unsettled(
        self,
        key: str,
        previous: CachedValue[T] | None,
        refresh: asyncio.Task[RefreshOutcome[T]],
    ) -> None:
        """Turn a refresh that ended without settling into a failed entry.

        Covers cancellation and `BaseException`s that `_run_refresh` does not
        catch, so the key retries on the next access instead of staying pending.
        """
        if refresh.cancelled():
            error: BaseException = asyncio.CancelledError()
        else:
            raised = refresh.exception()
            if raised is None:
                return
            error = raised
        entry = self._entries.get(key)
        if isinstance(entry, PendingEntry) and entry.refresh is refresh:
            self._entries[key] = FailedEntry(previous=previous, error=error, refresh=refresh)
            self._logger.warning(
                f"[{self.name}] refresh aborted: key={key} ({type(error).__name__})"
            )

    async def _run_refresh(
        self,
        key: str,
        previous: CachedValue[T] | None,
        args: Sequence[Any],
        kwargs: Mapping[str, Any],
    ) -> RefreshOutcome[T]:
        refresh = cast("asyncio.Task[RefreshOutcome[T]]", asyncio.current_task())
        try:
            data = await self._refresh(*args, **kwargs)
        except Exception as exc:
            self._entries[key] = FailedEntry(previous=previous, error=exc, refresh=refresh)
            self._logger.warning(
                f"[{self.name}] refresh failed: key={key} ({type(exc).__name__}: {exc})"
            )
            return RefreshFailed(exc)

        metadata = CacheMetadata(last_updated_at=self._clock())
        self._entries[key] = CompletedEntry(
            current=CachedValue(value=data, metadata=metadata),
            refresh=refresh,
        )
        self._logger.debug(f"[{self.name}] refresh completed: key={key}")
        return RefreshSucceeded(data)


def memory_cache(
    refresh: Producer[T],
    *,
    update_policy: UpdatePolicyFn[T],
    pending_policy: PendingPolicyFn[T],
    clock: Clock | None = None,
    name: str | None = None,
) -> MemoryCache[T]:
    """Wrap ``refresh`` in a `MemoryCache`."""
    return MemoryCache(
        refresh,
        update_policy=update_policy,
        pending_policy=pending_policy,
        clock=clock,
        name=name,
    )


def memoize(
    *,
    update_policy: UpdatePolicyFn[Any],
    pending_policy: PendingPolicyFn[Any],
    clock: Clock | None = None,
    name: str | None = None,
) -> Callable[[Producer[T]], Callable[..., Awaitable[T]]]:
    """Decorator form of `memory_cache`.

    The wrapped function keeps its metadata and exposes the underlying
    `MemoryCache` as ``.cache``.

    Usage:
        @memoize(update_policy=never_update(), pending_policy=always_wait())
        async def load_profile(user_id: str) -> dict:
            ...
    """

    def decorator(func: Producer[T]) -> Callable[..., Awaitable[T]]:
        cache: MemoryCache[T] = memory_cache(
            func,
            update_policy=update_policy,
            pending_policy=pending_policy,
            clock=clock,
            name=name,
        )

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await cache.get(*args, **kwargs)

        wrapper.cache = cache  # type: ignore[attr-defined]
        return wrapper

    return decorator
