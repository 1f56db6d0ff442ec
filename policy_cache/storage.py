"""Durable storage contract for `StoredCache`.

Storage backends only need two coroutines: ``get_item`` and ``set_item``.
Values are restricted to JSON-like data so any document store, key-value
store or file can hold them. The restriction is a typing contract only;
nothing is validated at runtime.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Dict, Generic, List, Optional, Protocol, TypeVar, Union

from policy_cache.entries import CacheMetadata

JsonLiteral = Union[str, int, float, bool, None]
Json = Union[JsonLiteral, Dict[str, "Json"], List["Json"]]

K = TypeVar("K")
K_contra = TypeVar("K_contra", contravariant=True)
J = TypeVar("J", bound=Json)


@dataclass(frozen=True, slots=True)
class StoredItem(Generic[J]):
    value: J
    metadata: CacheMetadata


class CacheStorage(Protocol[K_contra, J]):
    """Two-method storage collaborator."""

    async def get_item(self, key: K_contra) -> Optional[StoredItem[J]]:
        ...

    async def set_item(self, key: K_contra, value: J, metadata: CacheMetadata) -> None:
        ...


class MemoryStorage(Generic[K, J]):
    """
    In-process `CacheStorage` implementation.

    Keeps deep copies so callers mutating a returned value cannot change
    what is stored. Contents are lost with the process; useful for tests and
    as a template for real backends.
    """

    def __init__(self, items: Optional[Dict[K, StoredItem[J]]] = None) -> None:
        self._items: Dict[K, StoredItem[J]] = dict(items or {})

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    async def get_item(self, key: K) -> Optional[StoredItem[J]]:
        item = self._items.get(key)
        if item is None:
            return None
        return StoredItem(value=copy.deepcopy(item.value), metadata=item.metadata)

    async def set_item(self, key: K, value: J, metadata: CacheMetadata) -> None:
        self._items[key] = StoredItem(value=copy.deepcopy(value), metadata=metadata)
