"""Typed exceptions raised by the public Epub API.

WHY: Callers need to tell "you reused a filename" apart from "the image
URL is dead" apart from "the output path is not writable" without parsing
messages. Each failure kind is its own class under one EpubError base.

HOW: Plain Exception subclasses that keep the offending filename, source
or path as attributes. Retrieval and creation errors also keep the
underlying cause (and chain it with ``raise ... from``).

RULES:
- Nothing in the package retries after raising one of these
- FilenameAlreadyUsedError is raised before any state is mutated
- Programmer errors (broken templates) are NOT wrapped here
"""

from __future__ import annotations


class EpubError(Exception):
    """Base class for all errors raised by epub_packager."""


class FilenameAlreadyUsedError(EpubError):
    """A filename is already registered in the relevant namespace.

    Resource namespaces are per media kind; the section namespace spans
    top-level sections and all of their subsections.
    """

    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(f"Filename already used: {filename}")


class ParentDoesNotExistError(EpubError):
    """add_subsection() referenced a parent that is not a top-level section."""

    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(f"Parent with the internal filename {filename} does not exist")


class FileRetrievalError(EpubError):
    """A resource source could not be checked or fetched."""

    def __init__(self, source: str, cause: BaseException) -> None:
        self.source = source
        self.cause = cause
        super().__init__(f"Error retrieving {_shorten(source)!r} from source: {cause}")


class UnableToCreateEpubError(EpubError):
    """The destination file could not be opened for writing."""

    def __init__(self, path: str, cause: BaseException) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Error creating EPUB at {path!r}: {cause}")


class MediaRetrievalError(Exception):
    """Low-level failure inside the media grabber.

    The registry and the assembler wrap this in FileRetrievalError so that
    callers only ever see the EpubError hierarchy.
    """


def _shorten(source: str, limit: int = 80) -> str:
    # data: URLs can be megabytes long
    if len(source) <= limit:
        return source
    return source[:limit] + "..."
