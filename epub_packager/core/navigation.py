"""Manifest, spine and navigation builder.

WHY: The package document, the EPUB 3 navigation document and the
EPUB 2 NCX all describe the same book from different angles. Deriving
all three from one walk of the section tree keeps them consistent: the
same sections in the same order, the same titles, the same cover
exclusion.

HOW: build_package() turns the section tree, the resource registry and
the media types recorded while staging resources into a PackagePlan
(manifest items, spine idrefs, navigation entries). The three render_*
functions feed that plan to the Jinja2 templates in
epub_packager/templates/.

RULES:
- The cover section is always the first spine entry and never appears
  in navigation
- A section reaches navigation only when its title is non-empty; a
  subsection additionally needs its parent in navigation
- Every section and subsection is in the manifest and the spine, titled
  or not
- Without any titled section both tables of contents hold one entry:
  the book title, linking the first spine document
- Manifest order: sections (tree order), nav, ncx, then resources by
  kind (css, font, image, video, audio), each kind in insertion order
- Manifest ids are XML-safe and unique within the package
- navPoint ids count from 1 in document order, children included
"""

from __future__ import annotations

import mimetypes
import posixpath
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Set, Tuple
from urllib.parse import quote

from epub_packager import config
from epub_packager.core.resources import MediaKind, ResourceRegistry, fix_xml_id, package_path
from epub_packager.core.sections import SectionTree
from epub_packager.core.templates import (
    NAV_TEMPLATE,
    NCX_TEMPLATE,
    PACKAGE_TEMPLATE,
    render_template,
)

MediaTypes = Dict[Tuple[MediaKind, str], str]


def new_identifier() -> str:
    return config.URN_UUID_PREFIX + str(uuid.uuid4())


@dataclass
class PackageMetadata:
    """Publication metadata written to the package document.

    RULES:
    - title: always present (dc:title)
    - author: "" omits dc:creator and its role refinement
    - language: BCP 47 tag, defaults to EPUB_PACKAGER_DEFAULT_LANG
    - description: "" omits dc:description
    - identifier: unique id, defaults to a fresh urn:uuid
    - ppd: page-progression-direction ("ltr", "rtl", "default"), "" omits it
    """

    title: str
    author: str = ""
    language: str = field(default_factory=lambda: config.DEFAULT_LANG)
    description: str = ""
    identifier: str = field(default_factory=new_identifier)
    ppd: str = ""


@dataclass(frozen=True)
class Cover:
    """Internal filenames of the three parts of a cover."""

    image_filename: str
    css_filename: str
    section_filename: str


@dataclass(frozen=True)
class ManifestItem:
    id: str
    href: str
    media_type: str
    properties: str = ""


@dataclass(frozen=True)
class NavEntry:
    """One table-of-contents line; depth 0 for sections, 1 for subsections."""

    title: str
    href: str
    depth: int = 0


@dataclass
class NavNode:
    """A NavEntry placed in the two-level TOC tree with its navPoint index."""

    title: str
    href: str
    index: int
    children: List[NavNode] = field(default_factory=list)


@dataclass
class PackagePlan:
    manifest: List[ManifestItem] = field(default_factory=list)
    spine: List[str] = field(default_factory=list)
    navigation: List[NavEntry] = field(default_factory=list)
    cover_image_id: str = ""
    start_href: str = config.NAV_FILENAME


def section_href(filename: str) -> str:
    """Path from the content folder to a section document."""
    return posixpath.join(config.XHTML_FOLDER_NAME, quote(filename))


def walk_navigation(tree: SectionTree, cover: Optional[Cover] = None) -> Iterator[NavEntry]:
    """Yield the table of contents in reading order.

    The cover section and untitled sections are skipped. Children of a
    skipped section are skipped too, since they have no parent line to
    hang from.
    """
    cover_section = cover.section_filename if cover is not None else ""
    for section in tree:
        if section.filename == cover_section or not section.title:
            continue
        yield NavEntry(title=section.title, href=section_href(section.filename), depth=0)
        for child in section.children:
            if child.title:
                yield NavEntry(title=child.title, href=section_href(child.filename), depth=1)


def nest_navigation(entries: List[NavEntry]) -> List[NavNode]:
    """Group depth-1 entries under the preceding depth-0 entry and number them."""
    nodes: List[NavNode] = []
    for index, entry in enumerate(entries, start=1):
        node = NavNode(title=entry.title, href=entry.href, index=index)
        if entry.depth > 0 and nodes:
            nodes[-1].children.append(node)
        else:
            nodes.append(node)
    return nodes


def _unique_id(name: str, used: Set[str]) -> str:
    base = fix_xml_id(name)
    candidate = base
    suffix = 2
    while candidate in used:
        candidate = "%s-%d" % (base, suffix)
        suffix += 1
    used.add(candidate)
    return candidate


def build_package(
    tree: SectionTree,
    resources: ResourceRegistry,
    media_types: MediaTypes,
    cover: Optional[Cover] = None,
) -> PackagePlan:
    """Compute manifest, spine and navigation for the current book.

    Args:
        tree: Sections in reading order.
        resources: Registered resources.
        media_types: Media type of each staged resource, keyed by
            (kind, filename). Resources missing here are typed by extension.
        cover: The active cover, if any.

    Returns:
        A PackagePlan ready for the render_* functions.
    """
    plan = PackagePlan()
    used_ids: Set[str] = {config.NAV_ITEM_ID, config.NCX_ITEM_ID}
    cover_section = cover.section_filename if cover is not None else ""
    cover_spine_id = ""
    first_href = ""

    for section in tree.walk():
        item_id = _unique_id(section.filename, used_ids)
        plan.manifest.append(
            ManifestItem(
                id=item_id,
                href=section_href(section.filename),
                media_type=config.MEDIA_TYPE_XHTML,
            )
        )
        if section.filename == cover_section:
            cover_spine_id = item_id
        else:
            plan.spine.append(item_id)
            if not first_href:
                first_href = section_href(section.filename)

    if cover_spine_id:
        plan.spine.insert(0, cover_spine_id)
        first_href = section_href(cover_section)
    if first_href:
        plan.start_href = first_href

    plan.manifest.append(
        ManifestItem(
            id=config.NAV_ITEM_ID,
            href=config.NAV_FILENAME,
            media_type=config.MEDIA_TYPE_XHTML,
            properties=config.NAV_ITEM_PROPERTIES,
        )
    )
    plan.manifest.append(
        ManifestItem(id=config.NCX_ITEM_ID, href=config.NCX_FILENAME, media_type=config.MEDIA_TYPE_NCX)
    )

    for kind, resource in resources:
        item_id = _unique_id(resource.filename, used_ids)
        properties = ""
        if (
            cover is not None
            and kind == MediaKind.IMAGE
            and resource.filename == cover.image_filename
        ):
            properties = config.COVER_IMAGE_PROPERTIES
            plan.cover_image_id = item_id
        media_type = media_types.get((kind, resource.filename))
        if media_type is None:
            media_type = _guess_media_type(resource.filename)
        plan.manifest.append(
            ManifestItem(
                id=item_id,
                href=package_path(kind, resource.filename),
                media_type=media_type,
                properties=properties,
            )
        )

    plan.navigation = list(walk_navigation(tree, cover))
    return plan


def _guess_media_type(filename: str) -> str:
    guessed, _ = mimetypes.guess_type(filename, strict=False)
    return guessed or "application/octet-stream"


def table_of_contents(plan: PackagePlan, title: str) -> List[NavEntry]:
    """Entries for nav.xhtml and toc.ncx, never empty.

    Both formats require at least one entry, so a book without titled
    sections gets a single line labelled with the book title that points
    at the start of the reading order.
    """
    if plan.navigation:
        return list(plan.navigation)
    return [NavEntry(title=title, href=plan.start_href, depth=0)]


def render_nav_document(title: str, navigation: List[NavEntry]) -> str:
    """Render nav.xhtml, the EPUB 3 navigation document."""
    return render_template(NAV_TEMPLATE, title=title, nodes=nest_navigation(navigation))


def render_ncx_document(identifier: str, title: str, navigation: List[NavEntry]) -> str:
    """Render toc.ncx for EPUB 2 reading systems."""
    return render_template(
        NCX_TEMPLATE,
        identifier=identifier,
        title=title,
        nodes=nest_navigation(navigation),
    )


def render_package_document(
    metadata: PackageMetadata,
    plan: PackagePlan,
    modified: Optional[datetime] = None,
) -> str:
    """Render package.opf.

    ``modified`` becomes dcterms:modified, converted to UTC; it defaults
    to the current time.
    """
    if modified is None:
        modified = datetime.now(timezone.utc)
    elif modified.tzinfo is not None:
        modified = modified.astimezone(timezone.utc)
    return render_template(
        PACKAGE_TEMPLATE,
        metadata=metadata,
        modified=modified.strftime(config.MODIFIED_TIMESTAMP_FORMAT),
        manifest=plan.manifest,
        spine=plan.spine,
        cover_image_id=plan.cover_image_id,
    )
