"""Resource registry — every style sheet, font, image, video and audio file.

WHY: Sections reference resources by relative path long before the
archive is written. The registry hands out those paths, guarantees that
no two resources of the same kind share a filename, and remembers where
each one must be fetched from at serialization time.

HOW: One insertion-ordered dict per MediaKind, mapping internal filename
to a frozen Resource. add() validates the source through the media
grabber, derives or generates a filename, and returns the path a section
document uses to reach the file ("../images/cover.png"). Bytes are not
fetched here; the assembler does that.

RULES:
- Filename namespaces are per kind; "a.png" may be both an image and a font
- No filename given: use the source's base name, or the kind's numbered
  template (len(kind) + 1) when the base name is unsafe or taken
- A filename already registered for the kind raises
  FilenameAlreadyUsedError and leaves the registry untouched
- Source failures raise FileRetrievalError before anything is registered
- Callers receive paths and frozen Resource snapshots, never the dicts
- Paths handed out are URLs: filenames are percent-encoded in them
"""

from __future__ import annotations

import enum
import posixpath
import unicodedata
from dataclasses import dataclass
from typing import Dict, Iterator, Tuple
from urllib.parse import quote

from epub_packager import config
from epub_packager.errors import FileRetrievalError, FilenameAlreadyUsedError, MediaRetrievalError
from epub_packager.media.grabber import MediaGrabber, source_basename, source_extension


class MediaKind(str, enum.Enum):
    """The resource categories an EPUB can embed.

    Inherits from str so kinds compare and log as plain strings.
    """

    CSS = "css"
    FONT = "font"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


@dataclass(frozen=True)
class MediaCategory:
    """Archive folder and generated-filename template for one MediaKind."""

    folder: str
    filename_format: str


CATEGORIES: Dict[MediaKind, MediaCategory] = {
    MediaKind.CSS: MediaCategory(folder="css", filename_format="css%04d%s"),
    MediaKind.FONT: MediaCategory(folder="fonts", filename_format="font%04d%s"),
    MediaKind.IMAGE: MediaCategory(folder="images", filename_format="image%04d%s"),
    MediaKind.VIDEO: MediaCategory(folder="videos", filename_format="video%04d%s"),
    MediaKind.AUDIO: MediaCategory(folder="audio", filename_format="audio%04d%s"),
}


@dataclass(frozen=True)
class Resource:
    """One registered asset: its internal filename and where to fetch it."""

    filename: str
    source: str


def fix_xml_id(name: str) -> str:
    """Turn a filename into a value usable as an XML id attribute.

    WHY: Manifest item ids must be XML names, but filenames may start with
    a digit or contain spaces ("01 intro.png").

    HOW: Drop colons and whitespace, then prefix "id" when the first
    character is a digit, punctuation, or symbol.

    RULES:
    - Only manifest ids use this; files keep their original names
    """
    cleaned = "".join(ch for ch in name if ch != ":" and not ch.isspace())
    if cleaned and unicodedata.category(cleaned[0])[0] in ("N", "P", "S"):
        cleaned = "id" + cleaned
    return cleaned


def is_safe_filename(name: str) -> bool:
    """Whether ``name`` can be used as-is for a file inside a category folder."""
    if not name or name in (".", "..") or len(name) > config.MAX_FILENAME_LENGTH:
        return False
    return not any(ch in "/\\" or ord(ch) < 0x20 or ch == "\x7f" for ch in name)


def relative_path(kind: MediaKind, filename: str) -> str:
    """Path from a section document (in xhtml/) to a resource file."""
    return posixpath.join("..", CATEGORIES[kind].folder, quote(filename))


def package_path(kind: MediaKind, filename: str) -> str:
    """Path from the package document (in the content folder) to a resource file."""
    return posixpath.join(CATEGORIES[kind].folder, quote(filename))


class ResourceRegistry:
    """Per-kind registry of resources awaiting retrieval.

    Not thread-safe on its own; the owning Epub serializes access.
    """

    def __init__(self, grabber: MediaGrabber) -> None:
        self._grabber = grabber
        self._resources: Dict[MediaKind, Dict[str, Resource]] = {kind: {} for kind in MediaKind}

    def __contains__(self, key: Tuple[MediaKind, str]) -> bool:
        kind, filename = key
        return filename in self._resources[MediaKind(kind)]

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._resources.values())

    def __iter__(self) -> Iterator[Tuple[MediaKind, Resource]]:
        for kind in MediaKind:
            for resource in self._resources[kind].values():
                yield kind, resource

    def count(self, kind: MediaKind) -> int:
        return len(self._resources[MediaKind(kind)])

    def resources(self, kind: MediaKind) -> Tuple[Resource, ...]:
        """Snapshot of the resources of one kind in insertion order."""
        return tuple(self._resources[MediaKind(kind)].values())

    def get(self, kind: MediaKind, filename: str) -> Resource:
        """Return the resource registered as ``filename``.

        Raises:
            KeyError: if no such resource exists for the kind.
        """
        return self._resources[MediaKind(kind)][filename]

    def check_source(self, source: str) -> None:
        """Validate a source through the grabber.

        Raises:
            FileRetrievalError: wrapping the grabber's failure.
        """
        try:
            self._grabber.check(source)
        except MediaRetrievalError as exc:
            raise FileRetrievalError(source, exc) from exc

    def pick_filename(
        self,
        kind: MediaKind,
        source: str,
        filename: str = "",
        released: str = "",
    ) -> str:
        """Compute the filename add() would register, without registering it.

        Args:
            kind: Resource kind (selects the namespace and template).
            source: Source the name may be derived from.
            filename: Requested filename; "" derives one from the source.
            released: A filename about to be removed, treated as free.

        Returns:
            The filename to register.

        Raises:
            FilenameAlreadyUsedError: if the requested or generated
                filename is already registered for the kind.
        """
        kind = MediaKind(kind)
        taken = set(self._resources[kind])
        taken.discard(released)

        if not filename:
            filename = source_basename(source)
            if not is_safe_filename(filename) or filename in taken:
                filename = CATEGORIES[kind].filename_format % (
                    len(taken) + 1,
                    source_extension(source),
                )

        if filename in taken:
            raise FilenameAlreadyUsedError(filename)
        return filename

    def register(self, kind: MediaKind, filename: str, source: str) -> str:
        """Record a resource whose filename and source were already validated.

        Returns:
            The path relative to a section document.
        """
        kind = MediaKind(kind)
        self._resources[kind][filename] = Resource(filename=filename, source=source)
        return relative_path(kind, filename)

    def add(self, kind: MediaKind, source: str, filename: str = "") -> str:
        """Register a resource and return its path relative to a section document.

        Raises:
            FileRetrievalError: if the source cannot be reached.
            FilenameAlreadyUsedError: if the filename is taken for the kind.
        """
        self.check_source(source)
        filename = self.pick_filename(kind, source, filename)
        return self.register(kind, filename, source)

    def remove(self, kind: MediaKind, filename: str) -> None:
        """Forget a resource. Missing filenames are ignored."""
        self._resources[MediaKind(kind)].pop(filename, None)
