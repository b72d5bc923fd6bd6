"""Archive assembler — stage the package files and zip them into an EPUB.

WHY: Serialization has a strict order of dependencies. Resources must be
fetched before the manifest can state their media types, the manifest
must exist before package.opf, and the zip must begin with an
uncompressed mimetype entry. Keeping the whole sequence in one place
makes that order explicit and lets the staging area be cleaned up no
matter where it fails.

HOW: ArchiveAssembler.assemble() runs the phases against a Storage
backend in a uuid4-named staging directory:

  1. create the staging directory
  2. write mimetype
  3. create EPUB/, EPUB/xhtml/ and META-INF/
  4. write META-INF/container.xml
  5. fetch every resource into EPUB/<folder>/ and record its media type
  6. write every section into EPUB/xhtml/
  7. build the manifest plan, write nav.xhtml and toc.ncx
  8. write package.opf stamped with the current UTC time
  9. zip the staging tree into a spooled temporary file, then copy it to
     the destination through a CountingWriter
 10. remove the staging directory (always)

RULES:
- mimetype is the first zip entry and is ZIP_STORED; everything else is
  ZIP_DEFLATED in sorted path order; directories get no entries
- Resource fetch failures raise FileRetrievalError
- The byte count written to the destination is returned; an exception
  escaping assemble() carries it as ``bytes_written``
- Cleanup failures are logged, never raised
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import uuid
import zipfile
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import BinaryIO, Optional, Set

from epub_packager import config
from epub_packager.core.navigation import (
    Cover,
    MediaTypes,
    PackageMetadata,
    build_package,
    render_nav_document,
    render_ncx_document,
    render_package_document,
    table_of_contents,
)
from epub_packager.core.resources import CATEGORIES, MediaKind, ResourceRegistry
from epub_packager.core.sections import SectionTree, render_section
from epub_packager.core.templates import CONTAINER_TEMPLATE, render_template
from epub_packager.errors import FileRetrievalError, MediaRetrievalError
from epub_packager.media.grabber import MediaGrabber
from epub_packager.storage.base import Storage, join

logger = logging.getLogger(__name__)

# Archives up to this size are built in memory before spilling to disk
SPOOL_MAX_SIZE = 8 * 1024 * 1024
COPY_CHUNK_SIZE = 64 * 1024


@dataclass
class PackageJob:
    """Everything the assembler needs to serialize one book."""

    metadata: PackageMetadata
    resources: ResourceRegistry
    sections: SectionTree
    cover: Optional[Cover] = None


class CountingWriter:
    """Binary writer that forwards to ``dst`` and counts the bytes accepted."""

    def __init__(self, dst: BinaryIO) -> None:
        self._dst = dst
        self.bytes_written = 0

    def write(self, data: bytes) -> int:
        view = memoryview(data)
        while view:
            written = self._dst.write(view)
            # Raw streams may accept only part of the buffer
            if written is None:
                written = len(view)
            self.bytes_written += written
            view = view[written:]
        return len(data)

    def flush(self) -> None:
        flush = getattr(self._dst, "flush", None)
        if flush is not None:
            flush()


def render_container_document() -> str:
    return render_template(
        CONTAINER_TEMPLATE,
        full_path=join(config.CONTENT_FOLDER_NAME, config.PACKAGE_FILENAME),
        media_type=config.MEDIA_TYPE_OEBPS_PACKAGE,
    )


class ArchiveAssembler:
    """Turn a PackageJob into EPUB bytes on a binary stream.

    One assembler may serve many jobs; each assemble() call gets its own
    staging directory.
    """

    def __init__(self, storage: Storage, grabber: MediaGrabber) -> None:
        self._storage = storage
        self._grabber = grabber

    def assemble(self, job: PackageJob, dst: BinaryIO) -> int:
        """Write the EPUB for ``job`` to ``dst``.

        Returns:
            Number of bytes written to ``dst``.

        Raises:
            FileRetrievalError: if a resource cannot be fetched.
            OSError: on staging or destination I/O failures.
        """
        writer = CountingWriter(dst)
        staging = str(uuid.uuid4())
        try:
            self._storage.mkdir(staging)
            logger.info("Created staging directory %s in %s storage", staging, self._storage.name)
            try:
                self._stage(job, staging)
                self._write_archive(staging, writer)
            finally:
                self._cleanup(staging)
        except Exception as exc:
            exc.bytes_written = writer.bytes_written  # type: ignore[attr-defined]
            raise

        logger.info("Wrote EPUB %r (%d bytes)", job.metadata.title, writer.bytes_written)
        return writer.bytes_written

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def _stage(self, job: PackageJob, staging: str) -> None:
        content_dir = join(staging, config.CONTENT_FOLDER_NAME)
        xhtml_dir = join(content_dir, config.XHTML_FOLDER_NAME)
        meta_inf_dir = join(staging, config.META_INF_FOLDER_NAME)

        self._write(join(staging, config.MIMETYPE_FILENAME), config.MEDIA_TYPE_EPUB)

        self._storage.mkdir(content_dir)
        self._storage.mkdir(xhtml_dir)
        self._storage.mkdir(meta_inf_dir)

        self._write(join(meta_inf_dir, config.CONTAINER_FILENAME), render_container_document())

        media_types = self._stage_resources(job.resources, content_dir)

        cover_section = job.cover.section_filename if job.cover is not None else ""
        for section in job.sections.walk():
            title = job.metadata.title if section.filename == cover_section else None
            self._write(join(xhtml_dir, section.filename), render_section(section, title))

        plan = build_package(job.sections, job.resources, media_types, job.cover)
        contents = table_of_contents(plan, job.metadata.title)
        self._write(
            join(content_dir, config.NAV_FILENAME),
            render_nav_document(job.metadata.title, contents),
        )
        self._write(
            join(content_dir, config.NCX_FILENAME),
            render_ncx_document(job.metadata.identifier, job.metadata.title, contents),
        )

        modified = datetime.now(timezone.utc)
        self._write(
            join(content_dir, config.PACKAGE_FILENAME),
            render_package_document(job.metadata, plan, modified),
        )

    def _stage_resources(self, resources: ResourceRegistry, content_dir: str) -> MediaTypes:
        media_types: MediaTypes = {}
        created: Set[MediaKind] = set()
        for kind, resource in resources:
            folder = join(content_dir, CATEGORIES[kind].folder)
            if kind not in created:
                self._storage.mkdir(folder)
                created.add(kind)
            try:
                fetched = self._grabber.fetch(resource.source, resource.filename)
            except MediaRetrievalError as exc:
                raise FileRetrievalError(resource.source, exc) from exc
            self._storage.write_file(join(folder, resource.filename), fetched.data)
            media_types[(kind, resource.filename)] = fetched.media_type
            logger.debug("Staged %s %s (%s)", kind.value, resource.filename, fetched.media_type)
        return media_types

    def _write(self, path: str, text: str) -> None:
        self._storage.write_file(path, text.encode("utf-8"))
        logger.debug("Staged %s", path)

    # ------------------------------------------------------------------
    # Archiving
    # ------------------------------------------------------------------

    def _write_archive(self, staging: str, writer: CountingWriter) -> None:
        files = self._storage.walk(staging)
        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE) as spool:
            with zipfile.ZipFile(spool, "w") as archive:
                archive.writestr(
                    config.MIMETYPE_FILENAME,
                    self._storage.read_file(join(staging, config.MIMETYPE_FILENAME)),
                    compress_type=zipfile.ZIP_STORED,
                )
                for name in files:
                    if name == config.MIMETYPE_FILENAME:
                        continue
                    archive.writestr(
                        name,
                        self._storage.read_file(join(staging, name)),
                        compress_type=zipfile.ZIP_DEFLATED,
                    )
            spool.seek(0)
            shutil.copyfileobj(spool, writer, COPY_CHUNK_SIZE)
        writer.flush()

    def _cleanup(self, staging: str) -> None:
        try:
            self._storage.remove_all(staging)
        except Exception:
            logger.exception("Failed to remove staging directory %s", staging)
