# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Backing stores for the usage cache.

A backend holds two things: the serialized cache entry and the refresh
lease marker. The file backend is what both entry points use; the memory
backend lets two stores share state in tests the way two processes share
the cache file.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from ..core.constants import LEASE_SUFFIX
from ..core.errors import CacheCorruptError, CacheWriteError
from ..core.types import CacheEntry

lib_logger = logging.getLogger("tokengauge")


# =============================================================================
# SERIALIZATION
# =============================================================================


def serialize_entry(entry: CacheEntry) -> str:
    """Render a cache entry as the on-disk JSON document."""
    return json.dumps(entry.to_dict(), indent=2)


def deserialize_entry(text: str) -> CacheEntry:
    """
    Parse the on-disk JSON document.

    Raises:
        CacheCorruptError: If the text is not a well-formed cache entry
    """
    try:
        data = json.loads(text)
        return CacheEntry.from_dict(data)
    except (ValueError, TypeError, KeyError, AttributeError) as e:
        raise CacheCorruptError(f"cache entry is malformed: {e}") from e


# =============================================================================
# BACKENDS
# =============================================================================


class CacheBackend(ABC):
    """Storage for the cache document and the refresh lease marker."""

    @abstractmethod
    def read_cache(self) -> Optional[str]:
        """Return the cache document, or None if there is none."""

    @abstractmethod
    def write_cache(self, text: str) -> None:
        """
        Replace the cache document atomically.

        Raises:
            CacheWriteError: Nothing was replaced; the old document stands
        """

    @abstractmethod
    def read_marker(self) -> Optional[str]:
        """Return the lease marker, or None if no lease is recorded."""

    @abstractmethod
    def create_marker(self, text: str) -> bool:
        """Record a lease marker only if none exists. Returns True on success."""

    @abstractmethod
    def replace_marker(self, text: str) -> None:
        """Overwrite the lease marker unconditionally."""

    @abstractmethod
    def remove_marker(self) -> None:
        """Delete the lease marker if present."""

    def describe(self) -> str:
        return type(self).__name__


class FileCacheBackend(CacheBackend):
    """
    Cache file on the local filesystem.

    Writes go to a temporary file in the same directory followed by an
    atomic rename, so readers see either the old or the new document. The
    lease marker lives beside the cache as ``<cache>.lock``.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + LEASE_SUFFIX)

    def describe(self) -> str:
        return str(self.path)

    def _temp_path(self, target: Path) -> Path:
        return target.with_name(f".{target.name}.{os.getpid()}.tmp")

    def _read(self, path: Path) -> Optional[str]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None

    def read_cache(self) -> Optional[str]:
        try:
            return self._read(self.path)
        except (OSError, UnicodeDecodeError) as e:
            raise CacheCorruptError(f"failed to read cache file {self.path}: {e}") from e

    def write_cache(self, text: str) -> None:
        temp_path = self._temp_path(self.path)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            # Atomic rename
            os.replace(temp_path, self.path)
        except OSError as e:
            try:
                temp_path.unlink()
            except FileNotFoundError:
                pass
            except OSError as cleanup_error:
                lib_logger.debug(f"Could not remove {temp_path}: {cleanup_error}")
            raise CacheWriteError(f"failed to write cache {self.path}: {e}", e) from e

    def read_marker(self) -> Optional[str]:
        try:
            return self._read(self.lock_path)
        except (OSError, UnicodeDecodeError) as e:
            lib_logger.warning(f"Failed to read lease marker {self.lock_path}: {e}")
            return ""

    def _write_temp(self, target: Path, text: str) -> Path:
        temp_path = self._temp_path(target)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(text)
        except OSError as e:
            raise CacheWriteError(f"failed to write {temp_path}: {e}", e) from e
        return temp_path

    def create_marker(self, text: str) -> bool:
        temp_path = self._write_temp(self.lock_path, text)
        try:
            # link() refuses to overwrite, making create-with-content atomic
            os.link(temp_path, self.lock_path)
            return True
        except FileExistsError:
            return False
        except OSError:
            # Filesystems without hard links: exclusive create instead
            try:
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                return False
            except OSError as e:
                raise CacheWriteError(f"failed to create lease {self.lock_path}: {e}", e) from e
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            return True
        finally:
            temp_path.unlink(missing_ok=True)

    def replace_marker(self, text: str) -> None:
        temp_path = self._write_temp(self.lock_path, text)
        try:
            os.replace(temp_path, self.lock_path)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise CacheWriteError(f"failed to replace lease {self.lock_path}: {e}", e) from e

    def remove_marker(self) -> None:
        try:
            self.lock_path.unlink(missing_ok=True)
        except OSError as e:
            lib_logger.warning(f"Failed to remove lease {self.lock_path}: {e}")


class MemoryCacheBackend(CacheBackend):
    """
    In-memory backend.

    Share one instance between two stores to simulate two processes using
    the same cache file. ``write_error`` makes the next writes fail the way
    an interrupted rename would: the stored document is left untouched.
    """

    def __init__(self, text: Optional[str] = None):
        self.text = text
        self.marker: Optional[str] = None
        self.write_error: Optional[OSError] = None
        self.writes = 0

    def read_cache(self) -> Optional[str]:
        return self.text

    def write_cache(self, text: str) -> None:
        if self.write_error is not None:
            raise CacheWriteError(f"failed to write cache: {self.write_error}", self.write_error)
        self.text = text
        self.writes += 1

    def read_marker(self) -> Optional[str]:
        return self.marker

    def create_marker(self, text: str) -> bool:
        if self.marker is not None:
            return False
        self.marker = text
        return True

    def replace_marker(self, text: str) -> None:
        self.marker = text

    def remove_marker(self) -> None:
        self.marker = None
