"""The Epub facade — the public API for building one book.

WHY: Callers think in terms of "add this image, add this chapter, write
the book", not in terms of registries, trees and staging directories.
Epub owns one of each component and exposes the operations a caller
needs, returning the relative paths that section markup should use.

HOW: Every public mutator and both writers take a single threading.Lock
for their whole duration, so concurrent adds from several threads never
interleave and a write always sees a consistent book. Resource sources
are validated when added and fetched only when the book is written.

RULES:
- add_css/font/image/video/audio return "../<folder>/<filename>", ready
  to be used from a section body
- add_section/add_subsection return the section's internal filename
- set_cover() is all-or-nothing: a failure keeps the previous cover
- write_to()/write() may be called repeatedly; each call re-serializes
- Errors raised are EpubError subclasses (plus OSError from the stream)
"""

from __future__ import annotations

import base64
import logging
import os
import threading
from typing import BinaryIO, Dict, Optional, Union

from bs4 import BeautifulSoup

from epub_packager import config
from epub_packager.core.assembler import ArchiveAssembler, PackageJob
from epub_packager.core.navigation import Cover, PackageMetadata
from epub_packager.core.resources import MediaKind, ResourceRegistry
from epub_packager.core.sections import SectionTree
from epub_packager.errors import EpubError, FilenameAlreadyUsedError, UnableToCreateEpubError
from epub_packager.media.grabber import SOURCE_URL, MediaGrabber, source_extension, source_kind
from epub_packager.storage import get_storage
from epub_packager.storage.base import Storage

logger = logging.getLogger(__name__)

DEFAULT_COVER_CSS_SOURCE = "data:text/css;base64," + base64.b64encode(
    config.DEFAULT_COVER_CSS.encode("utf-8")
).decode("ascii")


class Epub:
    """An EPUB 3 publication under construction.

    Args:
        title: Book title (dc:title, NCX docTitle, cover page title).
        storage: Staging backend; defaults to get_storage().
        grabber: Media grabber; defaults to a new MediaGrabber that this
            Epub owns and closes in close().
    """

    def __init__(
        self,
        title: str,
        *,
        storage: Optional[Storage] = None,
        grabber: Optional[MediaGrabber] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._storage = storage if storage is not None else get_storage()
        self._owns_grabber = grabber is None
        self._grabber = grabber if grabber is not None else MediaGrabber()
        self._metadata = PackageMetadata(title=title)
        self._resources = ResourceRegistry(self._grabber)
        self._sections = SectionTree()
        self._cover: Optional[Cover] = None

    def __enter__(self) -> Epub:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()

    def close(self) -> None:
        """Release the HTTP client of an owned grabber."""
        if self._owns_grabber:
            self._grabber.close()

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def _add_resource(self, kind: MediaKind, source: str, filename: str) -> str:
        with self._lock:
            return self._resources.add(kind, source, filename)

    def add_css(self, source: str, filename: str = "") -> str:
        """Register a style sheet; returns its path relative to a section."""
        return self._add_resource(MediaKind.CSS, source, filename)

    def add_font(self, source: str, filename: str = "") -> str:
        return self._add_resource(MediaKind.FONT, source, filename)

    def add_image(self, source: str, filename: str = "") -> str:
        return self._add_resource(MediaKind.IMAGE, source, filename)

    def add_video(self, source: str, filename: str = "") -> str:
        return self._add_resource(MediaKind.VIDEO, source, filename)

    def add_audio(self, source: str, filename: str = "") -> str:
        return self._add_resource(MediaKind.AUDIO, source, filename)

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def add_section(
        self,
        body: str,
        title: str = "",
        filename: str = "",
        css_path: str = "",
    ) -> str:
        """Append a top-level section.

        Args:
            body: Inner XHTML of the <body> element, used verbatim.
            title: Table of contents label; "" keeps it out of the TOC.
            filename: Internal filename; "" generates section%04d.xhtml.
            css_path: Stylesheet path as returned by add_css(), or "".

        Returns:
            The section's internal filename.

        Raises:
            FilenameAlreadyUsedError: if ``filename`` is already used.
        """
        with self._lock:
            return self._sections.add(body, title=title, filename=filename, css_path=css_path)

    def add_subsection(
        self,
        parent: str,
        body: str,
        title: str = "",
        filename: str = "",
        css_path: str = "",
    ) -> str:
        """Append a subsection under the top-level section ``parent``.

        Raises:
            ParentDoesNotExistError: if ``parent`` is not a top-level section.
            FilenameAlreadyUsedError: if ``filename`` is already used.
        """
        with self._lock:
            return self._sections.add(
                body, title=title, filename=filename, css_path=css_path, parent=parent
            )

    # ------------------------------------------------------------------
    # Cover
    # ------------------------------------------------------------------

    def set_cover(self, image_source: str, css_source: str = "") -> None:
        """Set or replace the cover image, stylesheet and page.

        WHY: A reading system shows the cover first and uses the cover
        image as the book's thumbnail, so a book has at most one cover and
        replacing it must not leave orphans of the old one behind.

        HOW: Sources are checked and all three names are chosen while the
        old cover still exists (its names count as free). Only then are the
        old entries removed and the new ones registered.

        RULES:
        - Image name: cover<ext>, else the default image naming
        - CSS name: cover.css, else the default css naming; with no
          css_source a built-in stylesheet is used
        - Page name: cover.xhtml, else section%04d.xhtml
        - The cover page is first in the spine and absent from the TOC

        Raises:
            FileRetrievalError: if a source cannot be reached.
        """
        with self._lock:
            old = self._cover
            if not css_source:
                css_source = DEFAULT_COVER_CSS_SOURCE

            self._resources.check_source(image_source)
            self._resources.check_source(css_source)

            image_name = self._pick_cover_resource_name(
                MediaKind.IMAGE,
                image_source,
                config.COVER_IMAGE_FORMAT % source_extension(image_source),
                old.image_filename if old else "",
            )
            css_name = self._pick_cover_resource_name(
                MediaKind.CSS,
                css_source,
                config.COVER_CSS_FILENAME,
                old.css_filename if old else "",
            )
            released_section = old.section_filename if old else ""
            try:
                section_name = self._sections.pick_filename(
                    config.COVER_XHTML_FILENAME, released_section
                )
            except FilenameAlreadyUsedError:
                section_name = self._sections.pick_filename("", released_section)

            if old is not None:
                self._resources.remove(MediaKind.IMAGE, old.image_filename)
                self._resources.remove(MediaKind.CSS, old.css_filename)
                self._sections.remove(old.section_filename)

            image_path = self._resources.register(MediaKind.IMAGE, image_name, image_source)
            css_path = self._resources.register(MediaKind.CSS, css_name, css_source)
            self._sections.add(
                config.COVER_BODY_FORMAT % image_path,
                filename=section_name,
                css_path=css_path,
            )
            self._cover = Cover(
                image_filename=image_name,
                css_filename=css_name,
                section_filename=section_name,
            )
            logger.debug("Cover set to %s (%s, %s)", image_name, css_name, section_name)

    def _pick_cover_resource_name(
        self, kind: MediaKind, source: str, preferred: str, released: str
    ) -> str:
        try:
            return self._resources.pick_filename(kind, source, preferred, released)
        except FilenameAlreadyUsedError:
            return self._resources.pick_filename(kind, source, "", released)

    # ------------------------------------------------------------------
    # Remote images
    # ------------------------------------------------------------------

    def embed_images(self) -> int:
        """Register remote <img> sources as images and point the tags at them.

        The http(s) src of every <img> in a section or subsection body is
        added with add_image semantics and rewritten to the internal path.
        Bodies with nothing to rewrite are left byte-identical. A URL used
        more than once is registered once. A URL that cannot be reached is
        logged and its tag left unchanged.

        Returns:
            Number of distinct URLs embedded.
        """
        with self._lock:
            embedded: Dict[str, str] = {}
            failed = set()

            for section in self._sections.walk():
                soup = BeautifulSoup(section.body, "html.parser")
                changed = False
                for img in soup.find_all("img", src=True):
                    # BeautifulSoup has already decoded entities such as &amp;
                    src = img["src"].strip()
                    if source_kind(src) != SOURCE_URL or src in failed:
                        continue
                    if src not in embedded:
                        try:
                            embedded[src] = self._resources.add(MediaKind.IMAGE, src)
                        except EpubError as exc:
                            logger.warning("Could not embed image %s: %s", src, exc)
                            failed.add(src)
                            continue
                    img["src"] = embedded[src]
                    changed = True
                if changed:
                    section.body = str(soup)
            return len(embedded)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def set_title(self, title: str) -> None:
        with self._lock:
            self._metadata.title = title

    def set_author(self, author: str) -> None:
        with self._lock:
            self._metadata.author = author

    def set_lang(self, lang: str) -> None:
        with self._lock:
            self._metadata.language = lang

    def set_description(self, description: str) -> None:
        with self._lock:
            self._metadata.description = description

    def set_identifier(self, identifier: str) -> None:
        with self._lock:
            self._metadata.identifier = identifier

    def set_ppd(self, direction: str) -> None:
        """Set the spine's page-progression-direction ("ltr", "rtl", "default")."""
        with self._lock:
            self._metadata.ppd = direction

    @property
    def title(self) -> str:
        return self._metadata.title

    @property
    def author(self) -> str:
        return self._metadata.author

    @property
    def lang(self) -> str:
        return self._metadata.language

    @property
    def description(self) -> str:
        return self._metadata.description

    @property
    def identifier(self) -> str:
        return self._metadata.identifier

    @property
    def ppd(self) -> str:
        return self._metadata.ppd

    @property
    def cover(self) -> Optional[Cover]:
        return self._cover

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def write_to(self, dst: BinaryIO) -> int:
        """Serialize the book onto a writable binary stream.

        Returns:
            Number of bytes written.

        Raises:
            FileRetrievalError: if a resource cannot be fetched.
            OSError: if the stream or the staging storage fails. Any
                exception raised here carries ``bytes_written``.
        """
        with self._lock:
            return self._assemble(dst)

    def write(self, path: Union[str, os.PathLike]) -> int:
        """Serialize the book to a file, creating or truncating it.

        Raises:
            UnableToCreateEpubError: if the file cannot be opened.
        """
        with self._lock:
            try:
                handle = open(path, "wb")
            except OSError as exc:
                raise UnableToCreateEpubError(os.fspath(path), exc) from exc
            with handle:
                return self._assemble(handle)

    def _assemble(self, dst: BinaryIO) -> int:
        job = PackageJob(
            metadata=self._metadata,
            resources=self._resources,
            sections=self._sections,
            cover=self._cover,
        )
        return ArchiveAssembler(self._storage, self._grabber).assemble(job, dst)
