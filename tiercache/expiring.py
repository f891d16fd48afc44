"""
Pure-memory TTL cache with active background eviction.

Unlike :class:`~tiercache.engine.PersistentCache`, entries here are
swept by a daemon thread every ``check_period`` seconds as well as being
checked on read.  Values are stored by reference, without copying.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from tiercache.models import CacheKey

logger = logging.getLogger(__name__)


class ExpiringCache:
    """Thread-safe in-memory cache whose entries expire after a fixed TTL.

    Args:
        ttl_seconds: Time-to-live applied by :meth:`set` when no per-call
            TTL is given.  ``0`` means entries never expire.
        check_period: Seconds between background sweeps.  Defaults to
            ``ttl_seconds * 0.2``.  ``0`` disables the sweeper.
        clock: Returns the current time in seconds.  Defaults to
            ``time.monotonic``.
    """

    def __init__(
        self,
        ttl_seconds: float = 0,
        check_period: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")
        self._ttl_seconds = ttl_seconds
        self._check_period = check_period if check_period is not None else ttl_seconds * 0.2
        self._clock = clock or time.monotonic
        # key -> (value, expires_at or None)
        self._store: Dict[CacheKey, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

        if self._check_period > 0:
            self._thread = threading.Thread(
                target=self._sweep_loop,
                name="tiercache-expiry-sweeper",
                daemon=True,
            )
            self._thread.start()

        logger.info(
            "ExpiringCache initialised",
            extra={"ttl_seconds": ttl_seconds, "check_period": self._check_period},
        )

    def _expired(self, expires_at: Optional[float], now: float) -> bool:
        return expires_at is not None and now >= expires_at

    def get(self, key: CacheKey) -> Optional[Any]:
        """Return the value for *key*, or ``None`` if absent or expired."""
        with self._lock:
            item = self._store.get(key)
            if item is None:
                return None
            value, expires_at = item
            if self._expired(expires_at, self._clock()):
                del self._store[key]
                return None
            return value

    def set(self, key: CacheKey, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Store *value* under *key*.

        Args:
            key: Cache key.
            value: Value to store (kept by reference).
            ttl_seconds: Override of the default TTL; ``0`` never expires.
        """
        ttl = self._ttl_seconds if ttl_seconds is None else ttl_seconds
        expires_at = self._clock() + ttl if ttl > 0 else None
        with self._lock:
            self._store[key] = (value, expires_at)

    def delete(self, keys: Union[CacheKey, Iterable[CacheKey]]) -> int:
        """Remove one key or a list of keys.

        Returns:
            Number of keys that were present and removed.
        """
        if isinstance(keys, (str, int)):
            keys = [keys]
        removed = 0
        with self._lock:
            for key in keys:
                if self._store.pop(key, None) is not None:
                    removed += 1
        return removed

    def keys(self) -> List[CacheKey]:
        """Return the keys of all unexpired entries."""
        now = self._clock()
        with self._lock:
            return [k for k, (_, exp) in self._store.items() if not self._expired(exp, now)]

    def flush(self) -> None:
        """Remove every entry."""
        with self._lock:
            count = len(self._store)
            self._store.clear()
        logger.info("ExpiringCache flushed", extra={"entries_removed": count})

    def purge_expired(self) -> int:
        """Remove expired entries now.  Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, exp) in self._store.items() if self._expired(exp, now)]
            for key in expired:
                del self._store[key]
        if expired:
            logger.debug("Expired entries swept", extra={"count": len(expired)})
        return len(expired)

    def close(self, timeout: float = 5.0) -> None:
        """Stop the background sweeper."""
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    @property
    def is_sweeping(self) -> bool:
        """Whether the background sweeper thread is active."""
        return self._thread is not None and self._thread.is_alive()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def _sweep_loop(self) -> None:
        while not self._stopped.wait(self._check_period):
            self.purge_expired()
