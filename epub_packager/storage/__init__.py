"""Staging storage backends — pluggable scratch space for the assembler.

WHY: Serialization writes every package file to a scratch tree before
zipping it. Where that tree lives (disk or memory) is a deployment
choice, so the assembler only talks to the Storage interface.

HOW: STORAGE_BACKENDS maps names to backend *classes*. get_storage()
instantiates one, defaulting to EPUB_PACKAGER_STORAGE from config. Each
Epub receives its backend explicitly; there is no process-wide switch.

RULES:
- Keys are the values accepted by EPUB_PACKAGER_STORAGE
- Unknown names raise ValueError
"""

from __future__ import annotations

from typing import Dict, Optional, Type

from epub_packager import config
from epub_packager.storage.base import Storage
from epub_packager.storage.local import LocalStorage
from epub_packager.storage.memory import MemoryStorage

STORAGE_BACKENDS: Dict[str, Type[Storage]] = {
    "local": LocalStorage,
    "memory": MemoryStorage,
}


def get_storage(name: Optional[str] = None) -> Storage:
    """Instantiate the storage backend called ``name`` (default from config)."""
    key = (name or config.STORAGE_BACKEND).lower()
    try:
        backend = STORAGE_BACKENDS[key]
    except KeyError:
        raise ValueError(
            "Unknown storage backend {!r}; expected one of: {}".format(
                key, ", ".join(sorted(STORAGE_BACKENDS))
            )
        ) from None
    return backend()


__all__ = ["LocalStorage", "MemoryStorage", "Storage", "STORAGE_BACKENDS", "get_storage"]
