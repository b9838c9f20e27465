"""Image ingestion: turn a file path, URL, or base64 payload into one shape.

Every input variant ends up as a :class:`NormalizedImage` (base64 payload,
media type, decoded byte size) so the analysis side never needs to know
where the pixels came from.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import httpx

from .errors import ImageProcessingError, ToolInputError
from .mime import sniff_mime_type

log = logging.getLogger(__name__)

USER_AGENT = "visionmcp/1.0"
FETCH_TIMEOUT = 30.0
# Payloads whose decoded size is estimated above this only get a warning.
LARGE_PAYLOAD_BYTES = 10 * 1024 * 1024

INPUT_KINDS = ("file", "url", "base64")

_DATA_URL_PREFIX_RE = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")


@dataclass(frozen=True)
class FileInput:
    path: str


@dataclass(frozen=True)
class UrlInput:
    url: str


@dataclass(frozen=True)
class Base64Input:
    payload: str
    declared_mime: str | None = None


ImageInput = Union[FileInput, UrlInput, Base64Input]


@dataclass(frozen=True)
class NormalizedImage:
    base64_data: str
    mime_type: str
    byte_size: int

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64_data}"


def parse_image_input(kind: object, data: object, mime_type: object = None) -> ImageInput:
    """Build an :data:`ImageInput` from raw tool arguments."""
    if not kind:
        raise ToolInputError("Missing required argument: type")
    if data is None or data == "":
        raise ToolInputError("Missing required argument: data")
    if not isinstance(data, str):
        raise ToolInputError("Argument 'data' must be a string")
    if kind == "file":
        return FileInput(path=data)
    if kind == "url":
        return UrlInput(url=data)
    if kind == "base64":
        declared = mime_type.strip() if isinstance(mime_type, str) and mime_type.strip() else None
        return Base64Input(payload=data, declared_mime=declared)
    raise ToolInputError(
        f"Unsupported image input type: {kind} (expected one of: {', '.join(INPUT_KINDS)})"
    )


class ImageNormalizer:
    """Acquire image bytes from any :data:`ImageInput` variant.

    Parameters
    ----------
    http_client:
        Shared client used for URL downloads.  It must not carry upstream
        credentials since it talks to arbitrary hosts.  When omitted a
        private client is created and closed by :meth:`aclose`.
    fetch_timeout:
        Seconds allowed for a single image download.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        fetch_timeout: float = FETCH_TIMEOUT,
    ) -> None:
        self.fetch_timeout = fetch_timeout
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=fetch_timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def normalize(self, image: ImageInput) -> NormalizedImage:
        if isinstance(image, Base64Input):
            return await self._from_base64(image)
        if isinstance(image, FileInput):
            return await self._from_file(image)
        if isinstance(image, UrlInput):
            return await self._from_url(image)
        raise ImageProcessingError(f"Unsupported image input: {type(image).__name__}")

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------

    async def _from_base64(self, image: Base64Input) -> NormalizedImage:
        payload = _DATA_URL_PREFIX_RE.sub("", image.payload.strip(), count=1)
        payload = "".join(payload.split())
        estimated = math.ceil(len(payload) * 0.75)
        if estimated > LARGE_PAYLOAD_BYTES:
            log.warning(
                "Large base64 image payload (~%d bytes decoded); continuing anyway", estimated
            )
        if len(payload) % 4:
            payload += "=" * (-len(payload) % 4)
        raw, mime_type = await asyncio.to_thread(_decode_base64, payload, image.declared_mime)
        log.debug("Processed base64 image, size: %d, type: %s", len(raw), mime_type)
        return NormalizedImage(base64_data=payload, mime_type=mime_type, byte_size=len(raw))

    async def _from_file(self, image: FileInput) -> NormalizedImage:
        path = Path(image.path).expanduser()
        try:
            raw = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            reason = exc.strerror or str(exc)
            raise ImageProcessingError(
                f"Failed to read file {image.path}: {reason}", source=image.path
            ) from exc
        if not raw:
            raise ImageProcessingError(f"Failed to read file {image.path}: file is empty", source=image.path)
        mime_type = sniff_mime_type(raw)
        log.debug("Processed file image: %s, size: %d, type: %s", image.path, len(raw), mime_type)
        return _encode(raw, mime_type)

    async def _from_url(self, image: UrlInput) -> NormalizedImage:
        url = image.url
        log.debug("Fetching image from URL: %s", url)
        try:
            response = await self._client.get(
                url,
                headers={"User-Agent": USER_AGENT},
                timeout=self.fetch_timeout,
                follow_redirects=True,
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise ImageProcessingError(
                f"Failed to fetch image from URL {url}: timed out after {self.fetch_timeout:g}s",
                source=url,
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise ImageProcessingError(
                f"Failed to fetch image from URL {url}: HTTP {exc.response.status_code}",
                source=url,
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ImageProcessingError(
                f"Failed to fetch image from URL {url}: {exc}", source=url
            ) from exc
        raw = response.content
        if not raw:
            raise ImageProcessingError(f"Failed to fetch image from URL {url}: empty response body", source=url)
        mime_type = _content_type(response) or sniff_mime_type(raw)
        log.debug("Processed URL image: %s, size: %d, type: %s", url, len(raw), mime_type)
        return _encode(raw, mime_type)


def _encode(raw: bytes, mime_type: str) -> NormalizedImage:
    return NormalizedImage(
        base64_data=base64.b64encode(raw).decode("ascii"),
        mime_type=mime_type,
        byte_size=len(raw),
    )


def _content_type(response: httpx.Response) -> str | None:
    header = response.headers.get("content-type", "")
    mime_type = header.split(";", 1)[0].strip().lower()
    return mime_type or None


def _decode_base64(payload: str, declared_mime: str | None) -> tuple[bytes, str]:
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageProcessingError(f"Invalid base64 image data: {exc}") from exc
    if not raw:
        raise ImageProcessingError("Decoded image data is empty")
    return raw, declared_mime or sniff_mime_type(raw)
