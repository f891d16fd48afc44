"""
Tiered cache engine for tiercache.

:class:`PersistentCache` composes an in-memory tier and a file-per-key
durable tier behind one get/put/delete/keys API, in blocking and
``async`` forms.  Expiry is enforced lazily: readers treat a stale entry
as absent but leave it in storage until it is deleted, torn down, or
removed by an explicit :meth:`PersistentCache.compact`.

The memory tier keeps the payload in serialized form and every read
deserializes it, so a value read from memory is an independent copy just
like a value read from disk.
"""

import asyncio
import logging
import time
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, ValidationError

from tiercache.codec import JsonCodec
from tiercache.exceptions import (
    CacheIOError,
    ConfigurationError,
    InvalidKeyError,
    SerializationError,
)
from tiercache.memory import MemoryTier
from tiercache.models import CacheEntry, CacheKey, CacheOptions
from tiercache.persistent import PersistentTier

logger = logging.getLogger(__name__)


class CacheStats(BaseModel):
    """Aggregate lookup statistics for one engine instance.

    Attributes:
        hits: Lookups that returned a value.
        misses: Lookups that returned ``None`` (absent, expired or unreadable).
        hit_rate: Ratio of hits to total lookups (0.0 if no lookups).
        memory_entries: Entries currently held by the memory tier.
    """

    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0
    memory_entries: int = 0


class PersistentCache:
    """Key-value cache with optional TTL, memory tier and disk tier.

    Args:
        options: Engine configuration.  When omitted, built from
            *overrides* (``base``, ``name``, ``duration``, ``memory``,
            ``persist``).
        codec: Serialization codec.  Defaults to :class:`JsonCodec`.
        clock: Returns the current time in seconds.  Defaults to
            ``time.time``.
        **overrides: Option fields applied on top of *options*.

    Raises:
        ConfigurationError: If the options are invalid.
        CacheIOError: If persistence is enabled and the cache directory
            cannot be created.
    """

    def __init__(
        self,
        options: Optional[CacheOptions] = None,
        *,
        codec: Optional[JsonCodec] = None,
        clock: Optional[Callable[[], float]] = None,
        **overrides: Any,
    ) -> None:
        try:
            if options is None:
                options = CacheOptions(**overrides)
            elif overrides:
                options = CacheOptions(**{**options.model_dump(), **overrides})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid cache options: {e}") from e

        self._options = options
        self._codec = codec or JsonCodec()
        self._clock = clock or time.time
        self._memory: Optional[MemoryTier] = MemoryTier() if options.memory else None
        self._disk: Optional[PersistentTier] = (
            PersistentTier(options.directory) if options.persist else None
        )
        self._hits: int = 0
        self._misses: int = 0

        if not options.memory and not options.persist:
            logger.warning("Cache created with both tiers disabled; every get will miss")
        logger.info(
            "PersistentCache initialised",
            extra={
                "directory": str(options.directory) if options.persist else None,
                "duration": options.duration,
                "memory": options.memory,
                "persist": options.persist,
            },
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def options(self) -> CacheOptions:
        return self._options

    @property
    def directory(self):
        """The cache directory, or ``None`` when persistence is disabled."""
        return self._disk.directory if self._disk is not None else None

    @property
    def memory_enabled(self) -> bool:
        return self._memory is not None

    @property
    def persist_enabled(self) -> bool:
        return self._disk is not None

    # ------------------------------------------------------------------
    # Entry encoding
    # ------------------------------------------------------------------

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _build_entry(self, value: Any) -> CacheEntry:
        duration_ms = self._options.duration_ms
        cache_until = self._now_ms() + duration_ms if duration_ms is not None else None
        return CacheEntry(cache_until=cache_until, data=value)

    def _memory_key(self, key: CacheKey) -> CacheKey:
        """Memory-tier key: the file-name form when persistence is on.

        ``1`` and ``"1"`` then address one entry in both tiers.
        """
        return str(key) if self._disk is not None else key

    def _encode_for_disk(self, entry: CacheEntry) -> str:
        return self._codec.serialize(entry.model_dump(by_alias=True))

    def _store_in_memory(self, key: CacheKey, entry: CacheEntry) -> None:
        self._memory.set(
            self._memory_key(key),
            CacheEntry(
                cache_until=entry.cache_until,
                data=self._codec.serialize(entry.data),
            ),
        )

    def _decode_disk(self, key: CacheKey, content: str) -> Optional[CacheEntry]:
        try:
            return CacheEntry.model_validate(self._codec.deserialize(content))
        except (SerializationError, ValidationError) as e:
            logger.warning(
                "Unreadable cache file treated as miss",
                extra={"cache_key": str(key), "error": str(e)},
            )
            return None

    def _record(self, key: CacheKey, value: Any, source: str) -> Any:
        if value is None:
            self._misses += 1
            logger.debug("Cache miss", extra={"cache_key": str(key), "tier": source})
        else:
            self._hits += 1
            logger.debug("Cache hit", extra={"cache_key": str(key), "tier": source})
        return value

    # ------------------------------------------------------------------
    # Blocking API
    # ------------------------------------------------------------------

    def put(self, key: CacheKey, value: Any) -> None:
        """Store *value* under *key*, replacing any previous entry.

        Args:
            key: String or integer cache key.
            value: A JSON-serializable value.

        Raises:
            SerializationError: If *value* cannot be serialized.
            InvalidKeyError: If persistence is enabled and *key* cannot
                be used as a file name.
            CacheIOError: If the cache file cannot be written.
        """
        entry = self._build_entry(value)
        if self._disk is not None:
            self._disk.write(key, self._encode_for_disk(entry))
        if self._memory is not None:
            self._store_in_memory(key, entry)
        logger.debug(
            "Cache put",
            extra={"cache_key": str(key), "cache_until": entry.cache_until},
        )

    def get(self, key: CacheKey) -> Optional[Any]:
        """Return the value stored under *key*, or ``None``.

        The memory tier is consulted first.  When the key is not in
        memory the key's file is read.  Missing files, unreadable files,
        malformed content and expired entries all return ``None``; this
        method never raises for a read failure.
        """
        now_ms = self._now_ms()

        if self._memory is not None:
            entry = self._memory.get(self._memory_key(key))
            if entry is not None:
                if entry.is_expired(now_ms):
                    return self._record(key, None, "memory")
                try:
                    value = self._codec.deserialize(entry.data)
                except SerializationError as e:
                    logger.warning(
                        "Unreadable memory entry treated as miss",
                        extra={"cache_key": str(key), "error": str(e)},
                    )
                    value = None
                return self._record(key, value, "memory")

        if self._disk is None:
            return self._record(key, None, "none")

        try:
            content = self._disk.read(key)
        except (CacheIOError, InvalidKeyError) as e:
            logger.warning(
                "Cache file read failed, treated as miss",
                extra={"cache_key": str(key), "error": str(e)},
            )
            return self._record(key, None, "disk")
        if content is None:
            return self._record(key, None, "disk")

        disk_entry = self._decode_disk(key, content)
        if disk_entry is None or disk_entry.is_expired(now_ms):
            return self._record(key, None, "disk")
        return self._record(key, disk_entry.data, "disk")

    def delete(self, key: CacheKey) -> None:
        """Remove *key* from every enabled tier.

        A key that is not stored is not an error.

        Raises:
            CacheIOError: If the key's file exists but cannot be removed.
        """
        if self._memory is not None:
            self._memory.delete(self._memory_key(key))
        if self._disk is not None:
            self._disk.remove(key)
        logger.debug("Cache delete", extra={"cache_key": str(key)})

    def keys(self) -> List[CacheKey]:
        """Return every stored key, expired or not.

        With persistence enabled the directory listing is authoritative
        and keys come back as strings; a memory-only cache returns its
        keys with their original types.

        Raises:
            CacheIOError: If the cache directory cannot be listed.
        """
        if self._disk is not None:
            return list(self._disk.list_keys())
        if self._memory is not None:
            return self._memory.keys()
        return []

    def delete_with_prefix(self, prefix: str) -> int:
        """Delete every key whose string form starts with *prefix*.

        An empty prefix is a no-op.

        Returns:
            Number of keys deleted.
        """
        if not prefix:
            return 0
        matched = [key for key in self.keys() if str(key).startswith(prefix)]
        for key in matched:
            self.delete(key)
        if matched:
            logger.info(
                "Cache keys deleted by prefix",
                extra={"prefix": prefix, "count": len(matched)},
            )
        return len(matched)

    def flush(self) -> None:
        """Clear a memory-only cache.

        A cache with persistence enabled is left untouched; use
        :meth:`unlink` to tear down durable state.
        """
        if self._disk is not None:
            logger.debug("flush() is a no-op for a persistent cache")
            return
        if self._memory is not None:
            count = self._memory.clear()
            logger.info("Cache flushed", extra={"entries_removed": count})

    def values(self) -> List[Any]:
        """Return ``get(key)`` for every key, ``None`` for unreadable or expired ones."""
        return [self.get(key) for key in self.keys()]

    def unlink(self) -> None:
        """Tear down both tiers.

        Removes the cache directory tree when persistence is enabled and
        empties the memory tier.  Later writes to the persistent tier
        fail until a new engine recreates the directory.

        Raises:
            CacheIOError: If the directory tree cannot be removed.
        """
        if self._disk is not None:
            self._disk.destroy()
        if self._memory is not None:
            self._memory.clear()

    def compact(self) -> int:
        """Remove entries that can no longer be served.

        Out-of-band maintenance, never run implicitly.  Deletes expired
        entries from the memory tier, and expired or undecodable files
        from the persistent tier.

        Returns:
            Number of entries removed across both tiers.
        """
        now_ms = self._now_ms()
        removed = 0

        if self._memory is not None:
            for key, entry in self._memory.items():
                if entry.is_expired(now_ms):
                    self._memory.delete(key)
                    removed += 1

        if self._disk is not None:
            for key in self._disk.list_keys():
                try:
                    content = self._disk.read(key)
                except CacheIOError as e:
                    logger.warning(
                        "Skipping unreadable cache file during compaction",
                        extra={"cache_key": key, "error": str(e)},
                    )
                    continue
                if content is None:
                    continue
                entry = self._decode_disk(key, content)
                if entry is None or entry.is_expired(now_ms):
                    if self._disk.remove(key):
                        removed += 1

        logger.info("Cache compacted", extra={"entries_removed": removed})
        return removed

    def stats(self) -> CacheStats:
        """Return lookup statistics for this engine."""
        total = self._hits + self._misses
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            hit_rate=self._hits / total if total > 0 else 0.0,
            memory_entries=len(self._memory) if self._memory is not None else 0,
        )

    # ------------------------------------------------------------------
    # Async API
    # ------------------------------------------------------------------
    # Same semantics as the blocking methods.  Filesystem work runs in a
    # worker thread; memory-only paths complete without leaving the loop.

    async def aput(self, key: CacheKey, value: Any) -> None:
        """Async :meth:`put`."""
        entry = self._build_entry(value)
        if self._disk is not None:
            await asyncio.to_thread(self._disk.write, key, self._encode_for_disk(entry))
        if self._memory is not None:
            self._store_in_memory(key, entry)

    async def aget(self, key: CacheKey) -> Optional[Any]:
        """Async :meth:`get`."""
        if self._disk is None:
            return self.get(key)
        if self._memory is not None and self._memory_key(key) in self._memory:
            return self.get(key)
        return await asyncio.to_thread(self.get, key)

    async def adelete(self, key: CacheKey) -> None:
        """Async :meth:`delete`."""
        if self._memory is not None:
            self._memory.delete(self._memory_key(key))
        if self._disk is not None:
            await asyncio.to_thread(self._disk.remove, key)

    async def akeys(self) -> List[CacheKey]:
        """Async :meth:`keys`."""
        if self._disk is None:
            return self.keys()
        return await asyncio.to_thread(self.keys)

    async def adelete_with_prefix(self, prefix: str) -> int:
        """Async :meth:`delete_with_prefix`."""
        if not prefix:
            return 0
        matched = [key for key in await self.akeys() if str(key).startswith(prefix)]
        for key in matched:
            await self.adelete(key)
        return len(matched)

    async def avalues(self) -> List[Any]:
        """Async :meth:`values`."""
        return [await self.aget(key) for key in await self.akeys()]

    async def aunlink(self) -> None:
        """Async :meth:`unlink`."""
        if self._disk is not None:
            await asyncio.to_thread(self._disk.destroy)
        if self._memory is not None:
            self._memory.clear()

    async def acompact(self) -> int:
        """Async :meth:`compact`."""
        if self._disk is None:
            return self.compact()
        return await asyncio.to_thread(self.compact)
