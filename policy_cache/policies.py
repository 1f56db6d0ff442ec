"""Cache policy vocabulary.

Two closed decisions drive every cache access:

- `UpdatePolicy`: should a completed entry be refreshed now?
- `PendingPolicy`: while a refresh is in flight, return the previous value
  (`STALE`) or wait for the refresh (`WAIT`)?

Policy functions receive the currently cached value and its metadata, never
the value a refresh is about to produce.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, TypeVar

from policy_cache.entries import CacheMetadata
from policy_cache.shared.config.settings import get_settings
from policy_cache.shared.exceptions import InvalidPolicyError

T = TypeVar("T")


class UpdatePolicy(str, Enum):
    """完了済みエントリを更新するかどうか"""

    UPDATE = "UPDATE"
    DONT_UPDATE = "DONT_UPDATE"


class PendingPolicy(str, Enum):
    """更新中に古い値を返すか、更新完了を待つか"""

    STALE = "STALE"
    WAIT = "WAIT"


UpdatePolicyFn = Callable[[T, CacheMetadata], UpdatePolicy]
PendingPolicyFn = Callable[[T, CacheMetadata], PendingPolicy]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def coerce_update_policy(value: Any) -> UpdatePolicy:
    """Accept an `UpdatePolicy` member or its string value."""
    try:
        return UpdatePolicy(value)
    except ValueError:
        raise InvalidPolicyError(f"Unknown update policy: {value!r}") from None


def coerce_pending_policy(value: Any) -> PendingPolicy:
    """Accept a `PendingPolicy` member or its string value."""
    try:
        return PendingPolicy(value)
    except ValueError:
        raise InvalidPolicyError(f"Unknown pending policy: {value!r}") from None


def _resolve_max_age(max_age: timedelta | float | None) -> timedelta:
    if max_age is None:
        return timedelta(seconds=get_settings().default_max_age_seconds)
    if isinstance(max_age, timedelta):
        resolved = max_age
    else:
        resolved = timedelta(seconds=float(max_age))
    if resolved < timedelta(0):
        raise ValueError(f"max_age must not be negative: {max_age!r}")
    return resolved


def always_update() -> UpdatePolicyFn[Any]:
    """Refresh on every access to a completed entry."""

    def policy(_value: Any, _metadata: CacheMetadata) -> UpdatePolicy:
        return UpdatePolicy.UPDATE

    return policy


def never_update() -> UpdatePolicyFn[Any]:
    """Keep the first successful value for the lifetime of the cache."""

    def policy(_value: Any, _metadata: CacheMetadata) -> UpdatePolicy:
        return UpdatePolicy.DONT_UPDATE

    return policy


def update_when_older_than(
    max_age: timedelta | float | None = None,
    *,
    clock: Clock = utc_now,
) -> UpdatePolicyFn[Any]:
    """
    Refresh once the cached value is older than ``max_age``.

    Args:
        max_age: timedelta or seconds. Defaults to
            ``POLICY_CACHE_DEFAULT_MAX_AGE_SECONDS``.
        clock: must return datetimes comparable with the cache's timestamps.
    """
    limit = _resolve_max_age(max_age)

    def policy(_value: Any, metadata: CacheMetadata) -> UpdatePolicy:
        if metadata.age(clock()) > limit:
            return UpdatePolicy.UPDATE
        return UpdatePolicy.DONT_UPDATE

    return policy


def always_wait() -> PendingPolicyFn[Any]:
    """Always wait for the in-flight refresh."""

    def policy(_value: Any, _metadata: CacheMetadata) -> PendingPolicy:
        return PendingPolicy.WAIT

    return policy


def always_stale() -> PendingPolicyFn[Any]:
    """Return the previous value whenever one exists (stale-while-revalidate)."""

    def policy(_value: Any, _metadata: CacheMetadata) -> PendingPolicy:
        return PendingPolicy.STALE

    return policy


def wait_when_older_than(
    max_age: timedelta | float | None = None,
    *,
    clock: Clock = utc_now,
) -> PendingPolicyFn[Any]:
    """Serve the previous value while it is young enough, otherwise wait."""
    limit = _resolve_max_age(max_age)

    def policy(_value: Any, metadata: CacheMetadata) -> PendingPolicy:
        if metadata.age(clock()) > limit:
            return PendingPolicy.WAIT
        return PendingPolicy.STALE

    return policy
