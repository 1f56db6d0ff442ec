"""Cache entry states and refresh outcomes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CacheMetadata:
    """Stamped when a refresh settles successfully."""

    last_updated_at: datetime

    def age(self, now: datetime) -> timedelta:
        return now - self.last_updated_at


@dataclass(frozen=True, slots=True)
class CachedValue(Generic[T]):
    """A value and its metadata; the two are never present without each other."""

    value: T
    metadata: CacheMetadata


@dataclass(frozen=True, slots=True)
class RefreshSucceeded(Generic[T]):
    data: T


@dataclass(frozen=True, slots=True)
class RefreshFailed:
    error: BaseException


RefreshOutcome = Union[RefreshSucceeded[T], RefreshFailed]


def unwrap(outcome: RefreshOutcome[T]) -> T:
    """Return the refreshed value or re-raise the producer's own exception."""
    if isinstance(outcome, RefreshFailed):
        raise outcome.error
    return outcome.data


@dataclass(frozen=True, slots=True)
class PendingEntry(Generic[T]):
    """Refresh in flight. ``previous`` is the last good value, if any."""

    previous: CachedValue[T] | None
    refresh: asyncio.Task[RefreshOutcome[T]]

    state = "pending"


@dataclass(frozen=True, slots=True)
class CompletedEntry(Generic[T]):
    """Last refresh succeeded."""

    current: CachedValue[T]
    refresh: asyncio.Task[RefreshOutcome[T]]

    state = "completed"


@dataclass(frozen=True, slots=True)
class FailedEntry(Generic[T]):
    """Last refresh raised. ``previous`` keeps the last good value, if any."""

    previous: CachedValue[T] | None
    error: BaseException
    refresh: asyncio.Task[RefreshOutcome[T]]

    state = "failed"


CacheEntry = Union[PendingEntry[T], CompletedEntry[T], FailedEntry[T]]
