"""Canonical cache keys.

A key is the compact JSON encoding of the ordered positional arguments,
e.g. ``f("a", 1)`` -> ``'["a",1]'``. Keyword arguments, when present, are
appended as a name-sorted mapping: ``f("a", n=1)`` -> ``'[["a"],{"n":1}]'``.

Known limitation: tuples and lists encode identically, so ``f((1, 2))`` and
``f([1, 2])`` share an entry. Mapping key order inside an argument is
significant, and non-string mapping keys are stringified by JSON itself
(``{1: "a"}`` and ``{"1": "a"}`` collide).
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

from policy_cache.shared.exceptions import CacheKeyError


def _dumps(payload: Any) -> str:
    return json.dumps(
        payload,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def canonical_key(args: Sequence[Any], kwargs: Mapping[str, Any] | None = None) -> str:
    """
    Build the cache key for one call.

    Raises:
        CacheKeyError: an argument is not JSON-serializable (objects, sets,
            NaN/infinity and circular structures are rejected, never coerced)
    """
    payload: Any = list(args)
    if kwargs:
        payload = [payload, {name: kwargs[name] for name in sorted(kwargs)}]
    try:
        return _dumps(payload)
    except (TypeError, ValueError) as exc:
        raise CacheKeyError(f"Cannot derive cache key from arguments: {exc}") from exc
