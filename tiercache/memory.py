"""
In-process tier: a plain mapping from cache key to :class:`CacheEntry`.

Expiry is only judged by readers; nothing here sweeps stale entries.
Not thread-safe: concurrent mutation needs external synchronization.
"""

from typing import Dict, List, Optional

from tiercache.models import CacheEntry, CacheKey


class MemoryTier:
    """Mutable key -> entry mapping owned by one engine."""

    def __init__(self) -> None:
        self._store: Dict[CacheKey, CacheEntry] = {}

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        return self._store.get(key)

    def set(self, key: CacheKey, entry: CacheEntry) -> None:
        self._store[key] = entry

    def delete(self, key: CacheKey) -> bool:
        """Remove *key*.  Returns ``True`` if it was present."""
        return self._store.pop(key, None) is not None

    def keys(self) -> List[CacheKey]:
        return list(self._store)

    def items(self) -> List[tuple]:
        return list(self._store.items())

    def clear(self) -> int:
        """Remove every entry.  Returns the number removed."""
        count = len(self._store)
        self._store.clear()
        return count

    def __contains__(self, key: object) -> bool:
        return key in self._store

    def __len__(self) -> int:
        return len(self._store)
