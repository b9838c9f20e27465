"""Media-type sniffing for raw image bytes.

The decoded header is trusted first (Pillow), then a handful of magic-byte
signatures.  Nothing in here raises: unknown content is reported as
``application/octet-stream``.
"""
from __future__ import annotations

import io

from PIL import Image

OCTET_STREAM = "application/octet-stream"

SUPPORTED_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
})

_PIL_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG":  "image/png",
    "WEBP": "image/webp",
    "GIF":  "image/gif",
}


def sniff_mime_type(data: bytes) -> str:
    """Return the best-effort media type of *data*."""
    fmt = _pil_format(data)
    if fmt in _PIL_FORMATS:
        return _PIL_FORMATS[fmt]
    return _sniff_signature(data)


def is_supported_mime(mime_type: str) -> bool:
    return mime_type in SUPPORTED_MIME_TYPES


def _pil_format(data: bytes) -> str | None:
    if not data:
        return None
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.format
    except Exception:  # noqa: BLE001
        return None


def _sniff_signature(data: bytes) -> str:
    if len(data) < 4:
        return OCTET_STREAM
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG"):
        return "image/png"
    if data.startswith(b"GIF8"):
        return "image/gif"
    if data.startswith(b"RIFF") and data[8:12] == b"WEBP":
        return "image/webp"
    return OCTET_STREAM
