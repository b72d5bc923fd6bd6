"""Media retrieval package — the only code that touches resource sources.

WHY: Resources are declared by source (URL, path, data URL) and fetched
later during serialization. Isolating retrieval keeps the registry and
assembler free of HTTP and filesystem details.

RULES:
- All HTTP calls go through MediaGrabber (no direct httpx usage elsewhere)
- Media type detection lives next to retrieval so every fetch is typed
"""

from epub_packager.media.grabber import (
    FetchedMedia,
    MediaGrabber,
    detect_media_type,
    source_basename,
    source_extension,
)

__all__ = [
    "FetchedMedia",
    "MediaGrabber",
    "detect_media_type",
    "source_basename",
    "source_extension",
]
