"""
Directory helpers for the persistent tier.

``ensure_directory`` creates a cache directory with its missing
ancestors; ``remove_tree`` tears a directory tree down.
"""

import errno
import logging
import os
import shutil
from pathlib import Path
from typing import Union

from tiercache.exceptions import CacheIOError

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


def ensure_directory(path: PathLike) -> Path:
    """Create *path* and any missing ancestors.

    Idempotent: succeeds when the directory already exists, including
    when another process creates it concurrently.

    Args:
        path: Directory to create.

    Returns:
        The absolute directory path.

    Raises:
        CacheIOError: If the path exists but is not a directory, or it
            cannot be created.
    """
    target = Path(path).resolve()
    try:
        target.mkdir(parents=True, exist_ok=True)
    except FileExistsError as e:
        # mkdir(exist_ok=True) only raises this when the path is not a directory
        raise CacheIOError(
            errno.ENOTDIR, f"Cache path exists and is not a directory: {target}"
        ) from e
    except OSError as e:
        if target.is_dir():
            return target
        logger.error(
            "Failed to create cache directory",
            extra={"directory": str(target), "error": str(e)},
        )
        raise CacheIOError(e.errno, f"Cannot create cache directory {target}: {e.strerror}") from e

    logger.debug("Cache directory ready", extra={"directory": str(target)})
    return target


def remove_tree(path: PathLike) -> bool:
    """Recursively delete *path*.

    Args:
        path: Directory tree to remove.

    Returns:
        ``True`` if a tree was removed, ``False`` if it did not exist.

    Raises:
        CacheIOError: If removal fails for any reason other than the
            path being absent.
    """
    target = Path(path)
    try:
        shutil.rmtree(target)
    except FileNotFoundError:
        return False
    except OSError as e:
        raise CacheIOError(e.errno, f"Cannot remove cache directory {target}: {e.strerror}") from e

    logger.info("Cache directory removed", extra={"directory": str(target)})
    return True
