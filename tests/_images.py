"""Test image factories (Pillow-rendered, tiny)."""
from __future__ import annotations

import base64
import io

from PIL import Image


def make_image(fmt: str = "PNG", size: tuple[int, int] = (8, 8), color: tuple[int, int, int] = (200, 30, 30)) -> bytes:
    img = Image.new("RGB", size, color=color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
