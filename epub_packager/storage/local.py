"""Filesystem-backed staging storage."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional, Union

from epub_packager import config
from epub_packager.storage.base import Storage, normalize

logger = logging.getLogger(__name__)


class LocalStorage(Storage):
    """Stage files in a real directory tree under ``root``.

    RULES:
    - root defaults to EPUB_PACKAGER_TEMP_DIR (the system temp dir)
    - Every relative path is resolved below root; escapes raise ValueError
    """

    def __init__(self, root: Optional[Union[str, os.PathLike]] = None) -> None:
        self._root = Path(root or config.TEMP_DIR)

    @property
    def name(self) -> str:
        return "local"

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, path: str) -> Path:
        return self._root / normalize(path)

    def mkdir(self, path: str) -> None:
        self._resolve(path).mkdir()

    def write_file(self, path: str, data: bytes) -> None:
        self._resolve(path).write_bytes(data)

    def read_file(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def is_dir(self, path: str) -> bool:
        return self._resolve(path).is_dir()

    def remove_all(self, path: str) -> None:
        target = self._resolve(path)
        if not target.exists():
            return
        if target.is_dir():
            shutil.rmtree(target)
        else:
            target.unlink()
        logger.debug("Removed %s", target)

    def walk(self, path: str) -> List[str]:
        base = self._resolve(path)
        files = [
            candidate.relative_to(base).as_posix()
            for candidate in base.rglob("*")
            if candidate.is_file()
        ]
        return sorted(files)
