"""Configuration constants, format constants, and .env loading.

WHY: Centralizes every fixed value the EPUB layout depends on (folder
names, media types, filename templates) alongside the handful of values
a deployment may want to override (HTTP timeout, staging backend, default
language). Keeping them as plain data makes the archive layout easy to
audit against the EPUB standard.

HOW: python-dotenv loads the .env file on import. Overridable values are
read from the environment with a default; format constants are plain
module-level strings and dicts.

RULES:
- Folder names and filename templates are part of the archive format and
  are NOT overridable
- All overridable defaults use the EPUB_PACKAGER_ prefix
- HTTP_TIMEOUT_S falls back to 30 seconds on a malformed value
"""

from __future__ import annotations

import os
import tempfile

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Archive layout
# ---------------------------------------------------------------------------

CONTENT_FOLDER_NAME = "EPUB"
XHTML_FOLDER_NAME = "xhtml"
META_INF_FOLDER_NAME = "META-INF"

MIMETYPE_FILENAME = "mimetype"
CONTAINER_FILENAME = "container.xml"
PACKAGE_FILENAME = "package.opf"
NAV_FILENAME = "nav.xhtml"
NCX_FILENAME = "toc.ncx"

NAV_ITEM_ID = "nav"
NAV_ITEM_PROPERTIES = "nav"
NCX_ITEM_ID = "ncx"
COVER_IMAGE_PROPERTIES = "cover-image"

SECTION_FILE_FORMAT = "section%04d.xhtml"

# ---------------------------------------------------------------------------
# Media types
# ---------------------------------------------------------------------------

MEDIA_TYPE_EPUB = "application/epub+zip"
MEDIA_TYPE_XHTML = "application/xhtml+xml"
MEDIA_TYPE_NCX = "application/x-dtbncx+xml"
MEDIA_TYPE_OEBPS_PACKAGE = "application/oebps-package+xml"
MEDIA_TYPE_CSS = "text/css"

# ---------------------------------------------------------------------------
# Cover defaults
# ---------------------------------------------------------------------------

COVER_IMAGE_FORMAT = "cover%s"
COVER_CSS_FILENAME = "cover.css"
COVER_XHTML_FILENAME = "cover.xhtml"
COVER_BODY_FORMAT = '<img src="%s" alt="Cover Image" />'
DEFAULT_COVER_CSS = """body {
  background-color: #FFFFFF;
  margin-bottom: 0px;
  margin-left: 0px;
  margin-right: 0px;
  margin-top: 0px;
  text-align: center;
}

img {
  max-height: 100%;
  max-width: 100%;
}
"""

URN_UUID_PREFIX = "urn:uuid:"
MODIFIED_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Longest resource filename derived from a source before falling back to
# the numbered template.
MAX_FILENAME_LENGTH = 255

# ---------------------------------------------------------------------------
# Overridable defaults
# ---------------------------------------------------------------------------

DEFAULT_LANG = os.getenv("EPUB_PACKAGER_DEFAULT_LANG", "en")
USER_AGENT = os.getenv("EPUB_PACKAGER_USER_AGENT", "epub-packager/0.1")
STORAGE_BACKEND = os.getenv("EPUB_PACKAGER_STORAGE", "local").lower()
TEMP_DIR = os.getenv("EPUB_PACKAGER_TEMP_DIR", tempfile.gettempdir())
LOG_LEVEL = os.getenv("EPUB_PACKAGER_LOG_LEVEL", "WARNING").upper()


def _float_env(name: str, default: float) -> float:
    """Read a float from the environment, ignoring malformed values."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


HTTP_TIMEOUT_S = _float_env("EPUB_PACKAGER_HTTP_TIMEOUT", 30.0)
