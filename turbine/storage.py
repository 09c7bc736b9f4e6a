"""Persistent byte store.

The cache and the package registry never touch the filesystem directly;
they go through a ``Storage`` so tests (and embedders) can swap the
backend.  ``LocalStorage`` is the pathlib implementation used in
production.
"""

from __future__ import annotations

import shutil
from abc import ABC, abstractmethod
from pathlib import Path

from turbine.logging import get_logger

log = get_logger(__name__)


class Storage(ABC):
    """Byte-level store keyed by path."""

    #: Longest single path component the backend accepts.
    max_name_length: int = 255

    @abstractmethod
    def read(self, path: Path) -> bytes | None:
        """Return the file content, or None when it is missing or unreadable."""

    @abstractmethod
    def write(self, path: Path, data: bytes) -> bool:
        """Write *data* to *path*, creating parents.  Return False on failure."""

    @abstractmethod
    def delete(self, path: Path) -> None:
        """Remove a file or a whole directory tree.  Missing paths are ignored."""

    @abstractmethod
    def directory_exists(self, path: Path) -> bool: ...

    @abstractmethod
    def make_directory(self, path: Path) -> None:
        """Create *path* and any missing parents."""

    @abstractmethod
    def list_directory(self, path: Path) -> list[str]:
        """Return the names of the sub-directories of *path* (empty if missing)."""


class LocalStorage(Storage):
    """Storage on the local filesystem."""

    def read(self, path: Path) -> bytes | None:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            log.warning("storage_read_failed", path=str(path), error=str(exc))
            return None

    def write(self, path: Path, data: bytes) -> bool:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_name(path.name + ".tmp")
            tmp.write_bytes(data)
            tmp.replace(path)
            return True
        except OSError as exc:
            log.warning("storage_write_failed", path=str(path), error=str(exc))
            return False

    def delete(self, path: Path) -> None:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path, ignore_errors=True)
        else:
            path.unlink(missing_ok=True)

    def directory_exists(self, path: Path) -> bool:
        return path.is_dir()

    def make_directory(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    def list_directory(self, path: Path) -> list[str]:
        if not path.is_dir():
            return []
        return sorted(child.name for child in path.iterdir() if child.is_dir())
