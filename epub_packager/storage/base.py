"""Abstract storage backend for the archive staging area.

WHY: The assembler stages every file of the package in a scratch tree
before zipping it. Production builds stage on disk; tests and sandboxed
runs stage in memory. Both must look identical to the assembler.

HOW: Storage is an ABC over slash-separated paths relative to the
backend's root. Subclasses implement the primitive operations; the
posix path helpers live here so every backend normalizes the same way.

RULES:
- Paths are always "/"-separated and relative, never absolute
- walk() returns regular files only, sorted, relative to the walked path
- remove_all() on a missing path is a no-op
- mkdir() fails if the parent does not exist (no implicit parents)
"""

from __future__ import annotations

import posixpath
from abc import ABC, abstractmethod
from typing import List


def join(*parts: str) -> str:
    """Join path parts with "/" regardless of the host OS."""
    return posixpath.join(*parts)


def normalize(path: str) -> str:
    """Normalize a storage path and reject escapes above the root."""
    normalized = posixpath.normpath(path.replace("\\", "/")).lstrip("/")
    if normalized == ".." or normalized.startswith("../"):
        raise ValueError(f"Path escapes the storage root: {path!r}")
    return "" if normalized == "." else normalized


class Storage(ABC):
    """Abstract base for staging-area storage backends.

    To add a new backend:
    1. Subclass Storage
    2. Implement every abstract method
    3. Register it in STORAGE_BACKENDS in storage/__init__.py
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short backend name, e.g. 'local'."""

    @abstractmethod
    def mkdir(self, path: str) -> None:
        """Create a single directory. The parent must already exist."""

    @abstractmethod
    def write_file(self, path: str, data: bytes) -> None:
        """Create or truncate a file and write ``data`` to it."""

    @abstractmethod
    def read_file(self, path: str) -> bytes:
        """Return the full content of a file.

        Raises:
            FileNotFoundError: if the file does not exist.
        """

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Whether a file or directory exists at ``path``."""

    @abstractmethod
    def is_dir(self, path: str) -> bool:
        """Whether ``path`` is an existing directory."""

    @abstractmethod
    def remove_all(self, path: str) -> None:
        """Remove ``path`` and everything below it."""

    @abstractmethod
    def walk(self, path: str) -> List[str]:
        """List regular files under ``path``, sorted, relative to ``path``."""
