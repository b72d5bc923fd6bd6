"""epub_packager — build EPUB 3 books from XHTML sections and media.

WHY: An EPUB is a zip with a strict layout: a stored mimetype entry, a
container document, a package document listing every file, and two
tables of contents. Getting those to agree by hand is tedious and easy
to break. This package tracks what the caller adds and writes all of
the control files for them.

HOW: Four stages, leaves first: resource registry, section tree,
manifest/navigation builder, archive assembler. The Epub facade owns
one of each and serializes access with a lock.

RULES:
- Resource paths returned by add_* are relative to a section document
- Sources are checked when added and fetched when the book is written
- Every error raised to callers derives from EpubError
"""

from epub_packager.core.navigation import Cover
from epub_packager.epub import Epub
from epub_packager.errors import (
    EpubError,
    FileRetrievalError,
    FilenameAlreadyUsedError,
    ParentDoesNotExistError,
    UnableToCreateEpubError,
)

__version__ = "0.1.0"

__all__ = [
    "Cover",
    "Epub",
    "EpubError",
    "FileRetrievalError",
    "FilenameAlreadyUsedError",
    "ParentDoesNotExistError",
    "UnableToCreateEpubError",
]
