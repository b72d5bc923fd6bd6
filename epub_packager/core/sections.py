"""Section tree — the book's XHTML documents in reading order.

WHY: An EPUB's reading order and table of contents come from the
sections the caller adds. Sections can have one level of subsections,
and every section file shares one namespace inside the xhtml/ folder, so
filename uniqueness must be checked across the whole tree.

HOW: A list of top-level Section objects, each holding a list of
children. Lookups walk the two levels; the tree is small enough that
indexes are not worth keeping in sync with the cover transition.

RULES:
- Filenames are unique across top-level sections AND all children
- Generated names follow section%04d.xhtml, starting at 1 and counting
  up until the name is free
- Only top-level sections can be parents (depth is at most two)
- Bodies are stored and emitted verbatim; markup is never validated
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from epub_packager import config
from epub_packager.core.templates import SECTION_TEMPLATE, render_template
from epub_packager.errors import FilenameAlreadyUsedError, ParentDoesNotExistError


@dataclass
class Section:
    """One XHTML document of the book.

    RULES:
    - filename: name inside the xhtml/ folder, e.g. "section0001.xhtml"
    - title: navigation label; "" keeps the section out of the TOC
    - body: inner XHTML of <body>, inserted unmodified
    - css_path: stylesheet href relative to the section, "" for none
    - children: subsections (always empty for a subsection)
    """

    filename: str
    title: str
    body: str
    css_path: str = ""
    children: List[Section] = field(default_factory=list)


class SectionTree:
    """Two-level, insertion-ordered collection of sections."""

    def __init__(self) -> None:
        self._sections: List[Section] = []

    def __iter__(self) -> Iterator[Section]:
        return iter(list(self._sections))

    def __len__(self) -> int:
        return len(self._sections)

    def __contains__(self, filename: str) -> bool:
        return self.find(filename) is not None

    def walk(self) -> Iterator[Section]:
        """Yield every section depth-first: each parent, then its children."""
        for section in list(self._sections):
            yield section
            yield from list(section.children)

    def filenames(self) -> List[str]:
        return [section.filename for section in self.walk()]

    def find(self, filename: str) -> Optional[Section]:
        for section in self.walk():
            if section.filename == filename:
                return section
        return None

    def pick_filename(self, filename: str = "", released: str = "") -> str:
        """Compute the filename add() would use, without adding anything.

        Args:
            filename: Requested filename; "" generates section%04d.xhtml.
            released: A filename about to be removed, treated as free.

        Raises:
            FilenameAlreadyUsedError: if ``filename`` is already in use.
        """
        taken = set(self.filenames())
        taken.discard(released)

        if filename:
            if filename in taken:
                raise FilenameAlreadyUsedError(filename)
            return filename

        index = 1
        while config.SECTION_FILE_FORMAT % index in taken:
            index += 1
        return config.SECTION_FILE_FORMAT % index

    def add(
        self,
        body: str,
        title: str = "",
        filename: str = "",
        css_path: str = "",
        parent: str = "",
    ) -> str:
        """Append a section, or a subsection when ``parent`` is given.

        Returns:
            The internal filename of the new section.

        Raises:
            ParentDoesNotExistError: if ``parent`` is not a top-level section.
            FilenameAlreadyUsedError: if ``filename`` is already in use.
        """
        parent_section = None
        if parent:
            parent_section = self._top_level(parent)
            if parent_section is None:
                raise ParentDoesNotExistError(parent)

        filename = self.pick_filename(filename)
        section = Section(filename=filename, title=title, body=body, css_path=css_path)
        if parent_section is None:
            self._sections.append(section)
        else:
            parent_section.children.append(section)
        return filename

    def remove(self, filename: str) -> None:
        """Remove a section (and its children) or a subsection. Missing names are ignored."""
        for index, section in enumerate(self._sections):
            if section.filename == filename:
                del self._sections[index]
                return
            for child_index, child in enumerate(section.children):
                if child.filename == filename:
                    del section.children[child_index]
                    return

    def _top_level(self, filename: str) -> Optional[Section]:
        for section in self._sections:
            if section.filename == filename:
                return section
        return None


def render_section(section: Section, title: Optional[str] = None) -> str:
    """Render a section as a complete XHTML document.

    ``title`` overrides the section's own title in <title>; the cover
    section uses it to carry the book title.
    """
    return render_template(
        SECTION_TEMPLATE,
        title=section.title if title is None else title,
        css_path=section.css_path,
        body=section.body,
    )
