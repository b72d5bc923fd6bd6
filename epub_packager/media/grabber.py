"""Media grabber — resolve resource sources to bytes and a media type.

WHY: A resource source may be an HTTP(S) URL, a local path, or an
RFC 2397 data URL. The registry needs to know early whether a source is
reachable, and the assembler needs the bytes plus an IANA media type for
the package manifest. This module is the only place that knows how to
talk to each kind of source.

HOW: MediaGrabber wraps a synchronous httpx.Client (created lazily, or
injected so tests can use httpx.MockTransport). check() does a cheap
reachability test (HEAD, stat, decode); fetch() downloads the content
and sniffs its media type with filetype, falling back to text/extension
heuristics for content that has no magic number (CSS, SVG).

RULES:
- Source kind is decided by prefix: http:// and https:// are URLs,
  data: is a data URL, anything else is a local path
- HTTP error statuses (>= 400) are failures; HEAD 405 falls back to GET
- A single attempt is made; nothing is retried
- Every failure raises MediaRetrievalError with the cause chained
- Plain text named *.css is reclassified as text/css
"""

from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import unquote, unquote_to_bytes, urlsplit

import filetype
import httpx

from epub_packager import config
from epub_packager.errors import MediaRetrievalError

logger = logging.getLogger(__name__)

SOURCE_URL = "url"
SOURCE_DATA = "data"
SOURCE_LOCAL = "local"

_TEXT_PLAIN = "text/plain"
_OCTET_STREAM = "application/octet-stream"

# filetype reports legacy names for some formats; EPUB core media types differ.
_MEDIA_TYPE_ALIASES = {
    "audio/x-wav": "audio/wav",
    "audio/x-flac": "audio/flac",
}


@dataclass
class FetchedMedia:
    """Content retrieved from a source together with its sniffed media type."""

    data: bytes
    media_type: str


def source_kind(source: str) -> str:
    """Classify a source string as SOURCE_URL, SOURCE_DATA, or SOURCE_LOCAL."""
    lowered = source[:8].lower()
    if lowered.startswith(("http://", "https://")):
        return SOURCE_URL
    if lowered.startswith("data:"):
        return SOURCE_DATA
    return SOURCE_LOCAL


def source_basename(source: str) -> str:
    """Return the file name a source would naturally be stored under.

    URLs use the last segment of their path (query and fragment dropped);
    local paths use their final component. Data URLs have no name and
    return "".
    """
    kind = source_kind(source)
    if kind == SOURCE_DATA:
        return ""
    if kind == SOURCE_URL:
        return unquote(posixpath.basename(urlsplit(source).path))
    return Path(source).name


def source_extension(source: str) -> str:
    """Return the lower-cased extension (with dot) implied by a source."""
    if source_kind(source) == SOURCE_DATA:
        media_type, _ = _split_data_url(source)
        return (mimetypes.guess_extension(media_type) or "") if media_type else ""
    return posixpath.splitext(source_basename(source))[1].lower()


def _split_data_url(source: str) -> Tuple[str, str]:
    """Split a data URL into (declared media type, raw header)."""
    header, _, _ = source[len("data:"):].partition(",")
    media_type = header.split(";", 1)[0].strip().lower()
    return media_type, header


def decode_data_url(source: str) -> Tuple[bytes, str]:
    """Decode an RFC 2397 data URL into (payload, declared media type).

    Raises:
        MediaRetrievalError: if the URL has no "," or invalid base64.
    """
    header, sep, payload = source[len("data:"):].partition(",")
    if not sep:
        raise MediaRetrievalError("Malformed data URL: missing ',' separator")

    params = [p.strip() for p in header.split(";")]
    is_base64 = len(params) > 1 and params[-1].lower() == "base64"
    if is_base64:
        params.pop()
    media_type = params[0].lower() if params and params[0] else _TEXT_PLAIN

    if is_base64:
        try:
            data = base64.b64decode(unquote(payload), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise MediaRetrievalError(f"Malformed data URL: {exc}") from exc
    else:
        data = unquote_to_bytes(payload)
    return data, media_type


_SNIFF_WINDOW = 8192


def _looks_like_text(data: bytes) -> bool:
    window = data[:_SNIFF_WINDOW]
    if b"\x00" in window:
        return False
    try:
        window.decode("utf-8")
    except UnicodeDecodeError as exc:
        # A multi-byte character cut at the sniffing window is still text
        return len(data) > _SNIFF_WINDOW and exc.start >= _SNIFF_WINDOW - 3
    return True


def detect_media_type(data: bytes, *names: str) -> str:
    """Sniff the IANA media type of ``data``.

    WHY: Sources rarely carry trustworthy type information (local files
    have none, servers mislabel), and the manifest must state the real
    type of every file.

    HOW: Magic-number detection first. Content with no signature is
    treated as text when it decodes as UTF-8; the file names then refine
    text/plain into text/css or image/svg+xml. Anything else is guessed
    from the names, then defaults to application/octet-stream.

    RULES:
    - names are checked in order; the first matching extension wins
    - Font types are normalized to font/<ext>
    """
    kind = filetype.guess(data)
    if kind is not None:
        mime = kind.mime
        if mime.startswith(("application/font-", "application/x-font-")):
            return "font/" + kind.extension
        return _MEDIA_TYPE_ALIASES.get(mime, mime)

    extensions = [posixpath.splitext(name)[1].lower() for name in names if name]

    if _looks_like_text(data):
        if ".css" in extensions:
            return config.MEDIA_TYPE_CSS
        if ".svg" in extensions and b"<svg" in data:
            return "image/svg+xml"
        return _TEXT_PLAIN

    for name in names:
        if not name:
            continue
        guessed, _ = mimetypes.guess_type(name, strict=False)
        if guessed:
            return guessed
    return _OCTET_STREAM


class MediaGrabber:
    """Check and fetch resource sources.

    WHY: Keeps network, filesystem, and data-URL handling out of the
    registry and the assembler, and gives tests a single seam to mock.

    HOW: Owns an httpx.Client unless one is passed in. The owned client is
    created on first use with the configured timeout and User-Agent and
    follows redirects.

    RULES:
    - Usable as a context manager; close() only closes an owned client
    - timeout defaults to EPUB_PACKAGER_HTTP_TIMEOUT from config
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout if timeout is not None else config.HTTP_TIMEOUT_S

    def __enter__(self) -> MediaGrabber:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def _ensure_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self._timeout),
                headers={"User-Agent": config.USER_AGENT},
                follow_redirects=True,
            )
        return self._client

    # ------------------------------------------------------------------
    # Reachability
    # ------------------------------------------------------------------

    def check(self, source: str) -> None:
        """Verify that ``source`` can be retrieved, without keeping its content.

        Raises:
            MediaRetrievalError: if the source is unreachable or malformed.
        """
        kind = source_kind(source)
        if kind == SOURCE_URL:
            self._check_url(source)
        elif kind == SOURCE_DATA:
            decode_data_url(source)
        else:
            path = Path(source)
            if not path.is_file():
                raise MediaRetrievalError(f"No such file: {source}")

    def _check_url(self, url: str) -> None:
        client = self._ensure_client()
        try:
            resp = client.head(url)
            if resp.status_code == 405:
                # Some servers refuse HEAD; ask for the body but do not read it
                with client.stream("GET", url) as streamed:
                    self._raise_for_status(url, streamed)
                return
        except httpx.HTTPError as exc:
            raise MediaRetrievalError(f"Unable to reach {url}: {exc}") from exc
        self._raise_for_status(url, resp)

    @staticmethod
    def _raise_for_status(url: str, resp: httpx.Response) -> None:
        if resp.status_code >= 400:
            raise MediaRetrievalError(f"Cannot get {url}: HTTP {resp.status_code}")

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def fetch(self, source: str, filename: str = "") -> FetchedMedia:
        """Retrieve ``source`` and sniff its media type.

        Args:
            source: URL, local path, or data URL.
            filename: Internal filename the content will be stored under;
                its extension takes part in media type detection.

        Returns:
            FetchedMedia with the raw bytes and the detected media type.

        Raises:
            MediaRetrievalError: on any retrieval failure.
        """
        kind = source_kind(source)
        if kind == SOURCE_URL:
            data = self._fetch_url(source)
            names = (filename, source_basename(source))
        elif kind == SOURCE_DATA:
            data, _ = decode_data_url(source)
            names = (filename, "data" + source_extension(source))
        else:
            try:
                data = Path(source).read_bytes()
            except OSError as exc:
                raise MediaRetrievalError(f"Unable to read {source}: {exc}") from exc
            names = (filename, source)

        media_type = detect_media_type(data, *names)
        logger.debug("Fetched %d bytes (%s) from %s source", len(data), media_type, kind)
        return FetchedMedia(data=data, media_type=media_type)

    def _fetch_url(self, url: str) -> bytes:
        client = self._ensure_client()
        try:
            resp = client.get(url)
        except httpx.HTTPError as exc:
            raise MediaRetrievalError(f"Unable to download {url}: {exc}") from exc
        self._raise_for_status(url, resp)
        return resp.content
