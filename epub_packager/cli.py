"""Command-line interface for building an EPUB from XHTML files.

WHY: Packaging a handful of chapter files, a stylesheet and a cover
should not require writing Python. The CLI wires the Epub facade behind
a single command.

HOW: argparse collects the output path, the section files and the
metadata flags. Resources are added first so their paths can be linked
from every section, then the sections, then the book is written. Status
messages go to stderr.

RULES:
- Positional arguments: output file, then one or more section files
- A section file's <body> content (or the whole file when it has no
  <body>) becomes the section body
- A section's title is the text of its first <h1>, else the file stem
- --css is linked from every section
- Exit code 1 on EpubError or OSError, with the message on stderr
- Python 3.9 compatible: no match/case, no X | Y unions
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from bs4 import BeautifulSoup

from epub_packager import config
from epub_packager.epub import Epub
from epub_packager.errors import EpubError
from epub_packager.storage import MemoryStorage


def _status(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


def section_title(markup: str, fallback: str) -> str:
    """Plain text of the first <h1> in ``markup``, or ``fallback``."""
    heading = BeautifulSoup(markup, "html.parser").find("h1")
    if heading is not None:
        text = " ".join(heading.get_text().split())
        if text:
            return text
    return fallback


def section_body(markup: str) -> str:
    """Inner content of <body> when ``markup`` is a full document."""
    body = BeautifulSoup(markup, "html.parser").body
    if body is not None:
        return body.decode_contents().strip("\n")
    return markup


def _build(args: argparse.Namespace) -> int:
    output = Path(args.output)
    storage = MemoryStorage() if args.memory else None

    with Epub(args.title or output.stem, storage=storage) as book:
        if args.author:
            book.set_author(args.author)
        if args.lang:
            book.set_lang(args.lang)
        if args.description:
            book.set_description(args.description)
        if args.identifier:
            book.set_identifier(args.identifier)
        if args.ppd:
            book.set_ppd(args.ppd)

        css_path = ""
        if args.css:
            css_path = book.add_css(str(Path(args.css).resolve()))
        for font in args.font or []:
            book.add_font(str(Path(font).resolve()))
        for image in args.image or []:
            book.add_image(str(Path(image).resolve()))
        if args.cover:
            book.set_cover(str(Path(args.cover).resolve()))

        for section_file in args.sections:
            path = Path(section_file)
            markup = path.read_text(encoding="utf-8")
            title = section_title(markup, path.stem)
            filename = book.add_section(section_body(markup), title=title, css_path=css_path)
            _status("  Added {} as {}".format(path.name, filename))

        if args.embed_images:
            embedded = book.embed_images()
            _status("  Embedded {} remote image(s)".format(embedded))

        return book.write(output)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="epub-packager",
        description="Package XHTML section files, styles, fonts and images into an EPUB 3 file.",
    )
    parser.add_argument("output", help="Path of the .epub file to write.")
    parser.add_argument(
        "sections",
        nargs="+",
        help="XHTML files, one section each, in reading order.",
    )
    parser.add_argument("--title", default=None, help="Book title (default: output file stem).")
    parser.add_argument("--author", default=None, help="Author name.")
    parser.add_argument(
        "--lang",
        default=None,
        help="Book language (default: {}).".format(config.DEFAULT_LANG),
    )
    parser.add_argument("--description", default=None, help="Book description.")
    parser.add_argument(
        "--identifier",
        default=None,
        help="Unique identifier (default: a random urn:uuid).",
    )
    parser.add_argument(
        "--ppd",
        choices=["ltr", "rtl", "default"],
        default=None,
        help="Page progression direction.",
    )
    parser.add_argument("--cover", default=None, help="Cover image file.")
    parser.add_argument("--css", default=None, help="Stylesheet linked from every section.")
    parser.add_argument(
        "--font",
        action="append",
        default=None,
        help="Font file to embed. Can be specified multiple times.",
    )
    parser.add_argument(
        "--image",
        action="append",
        default=None,
        help="Image file to embed. Can be specified multiple times.",
    )
    parser.add_argument(
        "--embed-images",
        action="store_true",
        help="Download remote <img> sources into the book.",
    )
    parser.add_argument(
        "--memory",
        action="store_true",
        help="Stage files in memory instead of the temp directory.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for ``epub-packager`` and ``python -m epub_packager``.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.LOG_LEVEL,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    _status("Building {}...".format(args.output))
    try:
        size = _build(args)
    except (EpubError, OSError) as e:
        print("Error: {}".format(e), file=sys.stderr)
        sys.exit(1)

    _status("Done! Wrote {} bytes to {}".format(size, args.output))


if __name__ == "__main__":
    main()
