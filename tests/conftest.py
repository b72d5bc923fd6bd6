"""Shared test fixtures for the epub_packager test suite.

WHY: Nearly every test needs the same building blocks: small but real
media files (so magic-number sniffing sees genuine signatures), a media
grabber that never touches the network, and a staging backend that
never touches the disk.

HOW: Sample bytes are module constants; the ``assets`` fixture writes
them under tmp_path. The ``grabber`` fixture wraps an httpx.Client on an
httpx.MockTransport serving REMOTE_ROUTES, and records every request so
tests can assert on traffic.

RULES:
- No test reaches the real network
- Remote URLs live under REMOTE_BASE; unknown paths answer 404
- Helper functions parse archives with zipfile and documents with lxml
"""

from __future__ import annotations

import base64
import io
import zipfile
from types import SimpleNamespace
from typing import Dict, List, Tuple

import httpx
import pytest
from lxml import etree

from epub_packager.epub import Epub
from epub_packager.media.grabber import MediaGrabber
from epub_packager.storage import MemoryStorage


# ---------------------------------------------------------------------------
# Sample media
# ---------------------------------------------------------------------------

# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00" + b"\x00" * 32
# TrueType sfnt version header followed by an empty table directory
TTF_BYTES = b"\x00\x01\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00" + b"\x00" * 20
WAV_BYTES = (
    b"RIFF\x24\x00\x00\x00WAVEfmt \x10\x00\x00\x00\x01\x00\x01\x00"
    b"\x44\xac\x00\x00\x88\x58\x01\x00\x02\x00\x10\x00data\x00\x00\x00\x00"
)
CSS_TEXT = "body { font-family: serif; }\n"

PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")
CSS_DATA_URL = "data:text/css;base64," + base64.b64encode(CSS_TEXT.encode("utf-8")).decode("ascii")


# ---------------------------------------------------------------------------
# Mock HTTP server
# ---------------------------------------------------------------------------

REMOTE_BASE = "https://media.example.com"

REMOTE_ROUTES: Dict[str, Tuple[int, bytes]] = {
    "/images/remote.png": (200, PNG_BYTES),
    "/images/photo.jpg": (200, JPEG_BYTES),
    "/css/remote.css": (200, CSS_TEXT.encode("utf-8")),
    "/fonts/remote.ttf": (200, TTF_BYTES),
    "/images/gone.png": (404, b"not found"),
}

# Servers that refuse HEAD but serve GET
HEAD_NOT_ALLOWED = {"/images/nohead.png": PNG_BYTES}


def remote(path: str) -> str:
    return REMOTE_BASE + path


@pytest.fixture
def http_requests() -> List[httpx.Request]:
    """Every request the mock transport received, in order."""
    return []


@pytest.fixture
def transport(http_requests):
    def handler(request: httpx.Request) -> httpx.Response:
        http_requests.append(request)
        path = request.url.path
        if path in HEAD_NOT_ALLOWED:
            if request.method == "HEAD":
                return httpx.Response(405)
            return httpx.Response(200, content=HEAD_NOT_ALLOWED[path])
        status, body = REMOTE_ROUTES.get(path, (404, b"not found"))
        if request.method == "HEAD":
            return httpx.Response(status)
        return httpx.Response(status, content=body)

    return httpx.MockTransport(handler)


@pytest.fixture
def grabber(transport):
    client = httpx.Client(transport=transport)
    media_grabber = MediaGrabber(client=client)
    yield media_grabber
    client.close()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def book(storage, grabber):
    return Epub("My EPUB", storage=storage, grabber=grabber)


@pytest.fixture
def assets(tmp_path):
    """Sample media written to disk; attributes are path strings."""
    files = {
        "cover": ("cover.png", PNG_BYTES),
        "photo": ("photo.png", PNG_BYTES),
        "other_photo": ("other/photo.png", PNG_BYTES),
        "jpeg": ("picture.JPG", JPEG_BYTES),
        "font": ("serif.ttf", TTF_BYTES),
        "audio": ("clip.wav", WAV_BYTES),
        "css": ("style.css", CSS_TEXT.encode("utf-8")),
        "other_css": ("other/style.css", b"p { margin: 0; }\n"),
    }
    paths = {}
    for key, (name, data) in files.items():
        path = tmp_path / "assets" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        paths[key] = str(path)
    return SimpleNamespace(**paths)


# ---------------------------------------------------------------------------
# Archive helpers
# ---------------------------------------------------------------------------

OPF_NS = {"opf": "http://www.idpf.org/2007/opf", "dc": "http://purl.org/dc/elements/1.1/"}
XHTML_NS = {"x": "http://www.w3.org/1999/xhtml", "epub": "http://www.idpf.org/2007/ops"}
NCX_NS = {"ncx": "http://www.daisy.org/z3986/2005/ncx/"}


def write_book(epub: Epub) -> bytes:
    buffer = io.BytesIO()
    epub.write_to(buffer)
    return buffer.getvalue()


def open_archive(data: bytes) -> zipfile.ZipFile:
    return zipfile.ZipFile(io.BytesIO(data))


def parse_member(archive: zipfile.ZipFile, name: str):
    return etree.fromstring(archive.read(name))


def manifest_items(archive: zipfile.ZipFile) -> List[dict]:
    opf = parse_member(archive, "EPUB/package.opf")
    return [dict(item.attrib) for item in opf.findall("opf:manifest/opf:item", OPF_NS)]


def spine_idrefs(archive: zipfile.ZipFile) -> List[str]:
    opf = parse_member(archive, "EPUB/package.opf")
    return [ref.get("idref") for ref in opf.findall("opf:spine/opf:itemref", OPF_NS)]


def nav_links(archive: zipfile.ZipFile) -> List[Tuple[str, str]]:
    nav = parse_member(archive, "EPUB/nav.xhtml")
    return [(a.text, a.get("href")) for a in nav.iterfind(".//x:nav//x:a", XHTML_NS)]


def ncx_points(archive: zipfile.ZipFile) -> List[Tuple[str, str, str]]:
    ncx = parse_member(archive, "EPUB/toc.ncx")
    return [
        (
            point.get("id"),
            point.findtext("ncx:navLabel/ncx:text", namespaces=NCX_NS),
            point.find("ncx:content", NCX_NS).get("src"),
        )
        for point in ncx.iterfind(".//ncx:navPoint", NCX_NS)
    ]
