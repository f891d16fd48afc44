"""
tiercache exception hierarchy.

All custom exceptions inherit from TierCacheException so callers can
catch a single base type when they want a broad safety net.
"""


class TierCacheException(Exception):
    """Base exception for all tiercache errors."""


class ConfigurationError(TierCacheException, ValueError):
    """Raised when cache options or settings are invalid."""


class CacheIOError(TierCacheException, OSError):
    """Raised when a file or directory operation on the persistent tier fails."""


class SerializationError(TierCacheException, ValueError):
    """Raised when a value cannot be encoded or stored content cannot be decoded."""


class InvalidKeyError(TierCacheException, ValueError):
    """Raised when a cache key cannot be mapped to a file name."""
