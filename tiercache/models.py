"""
Data model for tiercache.

:class:`CacheEntry` is the unit of storage in both tiers and
:class:`CacheOptions` is the immutable engine configuration.
"""

import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from tiercache.config import Settings

CacheKey = Union[str, int]

CACHE_ROOT_DIRNAME = "cache"
FILE_EXTENSION = ".json"


class CacheEntry(BaseModel):
    """A single stored value with its optional expiry.

    Serialized with the ``cacheUntil`` alias, so a file on disk reads
    ``{"cacheUntil": 1700000000000, "data": ...}``.

    Attributes:
        cache_until: Absolute expiry in epoch milliseconds, or ``None``
            when the entry never expires.
        data: The payload.  In the memory tier this is the serialized
            payload text; on disk it is the value itself.
    """

    model_config = ConfigDict(populate_by_name=True)

    cache_until: Optional[int] = Field(default=None, alias="cacheUntil")
    data: Any = None

    def is_expired(self, now_ms: int) -> bool:
        """Return ``True`` when the entry has an expiry and *now_ms* is past it."""
        return self.cache_until is not None and now_ms > self.cache_until


class CacheOptions(BaseModel):
    """Engine configuration, immutable after construction.

    Attributes:
        base: Root above the cache directory.  Defaults to the working
            directory at the time the options are created.
        name: Cache directory name.
        duration: Time-to-live in seconds; ``None`` means never expire.
        memory: Whether the in-memory tier is maintained.
        persist: Whether the on-disk tier is maintained.
    """

    model_config = ConfigDict(frozen=True)

    base: Path = Field(default_factory=Path.cwd)
    name: str = "cache"
    duration: Optional[float] = Field(default=None, gt=0)
    memory: bool = True
    persist: bool = True

    @field_validator("name")
    @classmethod
    def _name_is_single_component(cls, value: str) -> str:
        if not value or value in (".", "..") or os.sep in value or "/" in value:
            raise ValueError(f"Cache name must be a single path component, got {value!r}")
        return value

    @property
    def directory(self) -> Path:
        """``<base>/cache/<name>``: where one file per key is stored."""
        return Path(os.path.normpath(self.base / CACHE_ROOT_DIRNAME / self.name))

    @property
    def duration_ms(self) -> Optional[int]:
        """TTL in whole milliseconds, or ``None``."""
        if self.duration is None:
            return None
        return int(self.duration * 1000)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "CacheOptions":
        """Build options from the ``cache`` section of loaded settings.

        An empty ``base`` means the working directory and a zero
        ``duration_seconds`` means entries never expire.
        """
        section = settings.cache
        values: dict = {
            "name": section.name,
            "duration": section.duration_seconds or None,
            "memory": section.memory,
            "persist": section.persist,
        }
        if section.base:
            values["base"] = Path(section.base).expanduser()
        return cls(**values)
