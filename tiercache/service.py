"""
Get-or-compute facades over the cache backends.

``await service.get(key, producer)`` returns the cached value, or awaits
``producer()``, stores its result and returns it.  By default concurrent
misses on the same key each invoke the producer; with
``single_flight=True`` later callers await the computation already in
flight instead.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar, Union

from tiercache.config import Settings
from tiercache.engine import PersistentCache
from tiercache.expiring import ExpiringCache
from tiercache.models import CacheKey, CacheOptions

logger = logging.getLogger(__name__)

T = TypeVar("T")
Producer = Callable[[], Awaitable[T]]


class SingleFlight:
    """Registry of in-flight computations, one per key.

    The first caller for a key runs the computation; callers arriving
    while it runs await the same result.  If the computation raises,
    every waiter receives the exception.
    """

    def __init__(self) -> None:
        self._inflight: Dict[CacheKey, asyncio.Future] = {}

    def in_flight(self, key: CacheKey) -> bool:
        return key in self._inflight

    async def run(self, key: CacheKey, compute: Callable[[], Awaitable[T]]) -> T:
        pending = self._inflight.get(key)
        if pending is not None:
            logger.debug("Joining in-flight computation", extra={"cache_key": str(key)})
            return await asyncio.shield(pending)

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await compute()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unobserved failure does not log a warning.
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._inflight.pop(key, None)


class _ComputeCache(ABC):
    """Shared get-or-compute logic; subclasses provide lookup and store."""

    def __init__(self, single_flight: bool = False) -> None:
        self._flight: Optional[SingleFlight] = SingleFlight() if single_flight else None

    @property
    def single_flight(self) -> bool:
        return self._flight is not None

    @abstractmethod
    async def _lookup(self, key: CacheKey) -> Optional[Any]:
        ...

    @abstractmethod
    async def _store(self, key: CacheKey, value: Any) -> None:
        ...

    async def _compute(self, key: CacheKey, producer: Producer) -> Any:
        result = await producer()
        await self._store(key, result)
        logger.debug("Computed and cached", extra={"cache_key": str(key)})
        return result

    async def get(self, key: CacheKey, producer: Producer) -> Any:
        """Return the cached value for *key*, computing it on a miss.

        A cached ``None`` cannot be told apart from a miss, so a producer
        returning ``None`` is invoked again on the next call.

        Args:
            key: Cache key.
            producer: Zero-argument coroutine function producing the value.

        Returns:
            The cached or freshly computed value.
        """
        value = await self._lookup(key)
        if value is not None:
            return value
        if self._flight is not None:
            return await self._flight.run(key, lambda: self._compute(key, producer))
        return await self._compute(key, producer)


class CacheService(_ComputeCache):
    """Get-or-compute over a pure-memory :class:`ExpiringCache`.

    Args:
        ttl_seconds: Entry lifetime; ``0`` keeps entries until deleted.
        single_flight: Deduplicate concurrent misses on the same key.
    """

    def __init__(self, ttl_seconds: float = 0, single_flight: bool = False) -> None:
        super().__init__(single_flight=single_flight)
        self._cache = ExpiringCache(ttl_seconds=ttl_seconds)

    @property
    def cache(self) -> ExpiringCache:
        return self._cache

    async def _lookup(self, key: CacheKey) -> Optional[Any]:
        return self._cache.get(key)

    async def _store(self, key: CacheKey, value: Any) -> None:
        self._cache.set(key, value)

    def delete(self, keys: Union[CacheKey, Iterable[CacheKey]]) -> int:
        """Remove one or more keys.  Returns the number removed."""
        return self._cache.delete(keys)

    def delete_with_prefix(self, prefix: str = "") -> int:
        """Remove keys whose string form starts with *prefix*; empty is a no-op."""
        if not prefix:
            return 0
        return self._cache.delete(
            [key for key in self._cache.keys() if str(key).startswith(prefix)]
        )

    def flush(self) -> None:
        self._cache.flush()

    def close(self) -> None:
        """Stop the background expiry sweeper."""
        self._cache.close()


class PersistentCacheService(_ComputeCache):
    """Get-or-compute over a :class:`PersistentCache`.

    Args:
        ttl_seconds: Entry lifetime in seconds; ``None`` or ``0`` means
            entries never expire.
        name: Cache directory name (default ``"cache"``).
        base: Root above the ``cache/`` directory (default: working
            directory).
        single_flight: Deduplicate concurrent misses on the same key.
        cache: Use an existing engine instead of building one.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        name: Optional[str] = None,
        base: Optional[Union[str, Path]] = None,
        single_flight: bool = False,
        cache: Optional[PersistentCache] = None,
    ) -> None:
        super().__init__(single_flight=single_flight)
        if cache is None:
            values: Dict[str, Any] = {"duration": ttl_seconds or None}
            if name:
                values["name"] = name
            if base is not None:
                values["base"] = Path(base)
            cache = PersistentCache(**values)
        self._cache = cache

    @classmethod
    def from_options(
        cls, options: CacheOptions, single_flight: bool = False
    ) -> "PersistentCacheService":
        """Build a service around an engine configured by *options*."""
        return cls(cache=PersistentCache(options), single_flight=single_flight)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PersistentCacheService":
        """Build a service from the ``cache`` section of *settings*.

        Typically called as ``PersistentCacheService.from_settings(get_settings())``.
        """
        return cls.from_options(
            CacheOptions.from_settings(settings),
            single_flight=settings.cache.single_flight,
        )

    @property
    def cache(self) -> PersistentCache:
        return self._cache

    async def _lookup(self, key: CacheKey) -> Optional[Any]:
        return await self._cache.aget(key)

    async def _store(self, key: CacheKey, value: Any) -> None:
        await self._cache.aput(key, value)

    def delete(self, key: CacheKey) -> None:
        self._cache.delete(key)

    def delete_with_prefix(self, prefix: str = "") -> int:
        """Remove keys whose string form starts with *prefix*; empty is a no-op."""
        return self._cache.delete_with_prefix(prefix)

    def all(self) -> List[Any]:
        """Return every stored value (``None`` for expired or unreadable entries)."""
        return self._cache.values()

    def flush(self) -> None:
        """No-op for a persistent cache; see :meth:`PersistentCache.flush`."""
        self._cache.flush()
