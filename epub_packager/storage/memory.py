"""In-memory staging storage.

WHY: Tests and sandboxed processes should be able to build an EPUB
without touching the disk at all.

HOW: Two structures under a threading.Lock: a set of directory paths
and a dict mapping file paths to their bytes. The root ("") always
exists.

RULES:
- mkdir() requires the parent directory, like os.mkdir
- write_file() requires the parent directory, like open(..., "wb")
- Files and directories cannot share a path
"""

from __future__ import annotations

import posixpath
import threading
from typing import Dict, List, Set

from epub_packager.storage.base import Storage, normalize


class MemoryStorage(Storage):
    """Dict-backed storage; nothing ever reaches the filesystem."""

    def __init__(self) -> None:
        self._dirs: Set[str] = {""}
        self._files: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "memory"

    def _require_parent(self, path: str) -> None:
        parent = posixpath.dirname(path)
        if parent not in self._dirs:
            raise FileNotFoundError(f"No such directory: {parent!r}")

    def mkdir(self, path: str) -> None:
        path = normalize(path)
        with self._lock:
            if path in self._dirs or path in self._files:
                raise FileExistsError(f"File exists: {path!r}")
            self._require_parent(path)
            self._dirs.add(path)

    def write_file(self, path: str, data: bytes) -> None:
        path = normalize(path)
        with self._lock:
            if path in self._dirs:
                raise IsADirectoryError(f"Is a directory: {path!r}")
            self._require_parent(path)
            self._files[path] = bytes(data)

    def read_file(self, path: str) -> bytes:
        path = normalize(path)
        with self._lock:
            try:
                return self._files[path]
            except KeyError:
                raise FileNotFoundError(f"No such file: {path!r}") from None

    def exists(self, path: str) -> bool:
        path = normalize(path)
        with self._lock:
            return path in self._dirs or path in self._files

    def is_dir(self, path: str) -> bool:
        path = normalize(path)
        with self._lock:
            return path in self._dirs

    def remove_all(self, path: str) -> None:
        path = normalize(path)
        with self._lock:
            if path == "":
                self._dirs = {""}
                self._files.clear()
                return
            prefix = path + "/"
            self._dirs = {d for d in self._dirs if d != path and not d.startswith(prefix)}
            for name in [f for f in self._files if f == path or f.startswith(prefix)]:
                del self._files[name]

    def walk(self, path: str) -> List[str]:
        path = normalize(path)
        prefix = path + "/" if path else ""
        with self._lock:
            return sorted(name[len(prefix):] for name in self._files if name.startswith(prefix))
