"""
Durable tier: one JSON file per key inside a cache directory.

Writes go to a temporary file in the same directory which is then
``os.replace``-d over the target, so a concurrent reader sees either the
previous content or the complete new content, never a torn write.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from tiercache.dirs import PathLike, ensure_directory, remove_tree
from tiercache.exceptions import CacheIOError, InvalidKeyError
from tiercache.models import FILE_EXTENSION, CacheKey

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


class PersistentTier:
    """File-per-key storage rooted at *directory*.

    The directory (and its ancestors) is created on construction.

    Args:
        directory: Cache directory holding ``<key>.json`` files.

    Raises:
        CacheIOError: If the directory cannot be created.
    """

    def __init__(self, directory: PathLike) -> None:
        self._directory = ensure_directory(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: CacheKey) -> Path:
        """Return the file path that stores *key*.

        Raises:
            InvalidKeyError: If the key cannot be used as a file name.
        """
        name = str(key)
        if (
            not name
            or name in (".", "..")
            or "/" in name
            or os.sep in name
            or (os.altsep and os.altsep in name)
            or "\x00" in name
        ):
            raise InvalidKeyError(f"Key {key!r} cannot be mapped to a cache file")
        return self._directory / f"{name}{FILE_EXTENSION}"

    def write(self, key: CacheKey, content: str) -> Path:
        """Atomically replace the file for *key* with *content*.

        Raises:
            CacheIOError: If the file cannot be written.
        """
        target = self.path_for(key)
        tmp_name: Optional[str] = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=self._directory, prefix=".", suffix=TEMP_SUFFIX
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(content)
            os.replace(tmp_name, target)
        except OSError as e:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug("Temp file cleanup failed", extra={"path": tmp_name})
            logger.error(
                "Cache file write failed",
                extra={"cache_key": str(key), "path": str(target), "error": str(e)},
            )
            raise CacheIOError(e.errno, f"Cannot write cache file {target}: {e.strerror}") from e

        logger.debug("Cache file written", extra={"cache_key": str(key)})
        return target

    def read(self, key: CacheKey) -> Optional[str]:
        """Return the stored text for *key*, or ``None`` if there is no file.

        Raises:
            CacheIOError: If the file exists but cannot be read.
        """
        path = self.path_for(key)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                return fh.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise CacheIOError(
                getattr(e, "errno", None), f"Cannot read cache file {path}: {e}"
            ) from e

    def remove(self, key: CacheKey) -> bool:
        """Delete the file for *key*.

        Returns:
            ``True`` if a file was removed, ``False`` if none existed.

        Raises:
            CacheIOError: If the file exists but cannot be removed.
        """
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CacheIOError(e.errno, f"Cannot delete cache file {path}: {e.strerror}") from e
        logger.debug("Cache file removed", extra={"cache_key": str(key)})
        return True

    def list_keys(self) -> List[str]:
        """Return the keys of every stored file (extension stripped).

        Raises:
            CacheIOError: If the directory cannot be listed.
        """
        try:
            names = os.listdir(self._directory)
        except OSError as e:
            raise CacheIOError(
                e.errno, f"Cannot list cache directory {self._directory}: {e.strerror}"
            ) from e
        return [
            name[: -len(FILE_EXTENSION)]
            for name in names
            if name.endswith(FILE_EXTENSION) and len(name) > len(FILE_EXTENSION)
        ]

    def destroy(self) -> bool:
        """Remove the whole cache directory tree."""
        return remove_tree(self._directory)
