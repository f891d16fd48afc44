"""Key-value cache with lazy TTL expiry and optional one-file-per-key persistence."""

from tiercache.codec import JsonCodec
from tiercache.dirs import ensure_directory, remove_tree
from tiercache.engine import CacheStats, PersistentCache
from tiercache.exceptions import (
    CacheIOError,
    ConfigurationError,
    InvalidKeyError,
    SerializationError,
    TierCacheException,
)
from tiercache.expiring import ExpiringCache
from tiercache.models import CacheEntry, CacheKey, CacheOptions
from tiercache.service import CacheService, PersistentCacheService, SingleFlight

TTL_HOUR = 60 * 60
TTL_DAY = TTL_HOUR * 24

__all__ = [
    "CacheEntry",
    "CacheIOError",
    "CacheKey",
    "CacheOptions",
    "CacheService",
    "CacheStats",
    "ConfigurationError",
    "ExpiringCache",
    "InvalidKeyError",
    "JsonCodec",
    "PersistentCache",
    "PersistentCacheService",
    "SerializationError",
    "SingleFlight",
    "TTL_DAY",
    "TTL_HOUR",
    "TierCacheException",
    "ensure_directory",
    "remove_tree",
]
