import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from _images import make_image
from visionmcp.mime import OCTET_STREAM, SUPPORTED_MIME_TYPES, is_supported_mime, sniff_mime_type


class TestSniffDecodedHeader(unittest.TestCase):
    def test_real_images(self) -> None:
        cases = {
            "JPEG": "image/jpeg",
            "PNG": "image/png",
            "GIF": "image/gif",
            "WEBP": "image/webp",
        }
        for fmt, expected in cases.items():
            with self.subTest(fmt=fmt):
                self.assertEqual(sniff_mime_type(make_image(fmt)), expected)

    def test_other_decodable_format_is_octet_stream(self) -> None:
        # BMP decodes fine but is outside the supported set and has no signature rule.
        self.assertEqual(sniff_mime_type(make_image("BMP")), OCTET_STREAM)


class TestSniffSignatureFallback(unittest.TestCase):
    """Truncated headers that Pillow cannot open still match on magic bytes."""

    def test_signatures(self) -> None:
        cases = [
            (b"\xff\xd8\xff\xe0" + b"\x00" * 8, "image/jpeg"),
            (b"\xff\xd8\xff", OCTET_STREAM),  # under 4 bytes
            (b"\x89PNG\r\n\x1a\n", "image/png"),
            (b"\x89PNG", "image/png"),
            (b"GIF89a", "image/gif"),
            (b"GIF87a" + b"\x00" * 4, "image/gif"),
            (b"RIFF\x00\x00\x00\x00WEBP", "image/webp"),
            (b"RIFF\x00\x00\x00\x00WAVE", OCTET_STREAM),
            (b"RIFF\x00\x00\x00\x00WE", OCTET_STREAM),
            (b"%PDF-1.7", OCTET_STREAM),
            (b"hello world", OCTET_STREAM),
        ]
        for data, expected in cases:
            with self.subTest(data=data):
                self.assertEqual(sniff_mime_type(data), expected)

    def test_short_and_empty_buffers(self) -> None:
        for data in (b"", b"\x89", b"\x89P", b"GIF"):
            with self.subTest(data=data):
                self.assertEqual(sniff_mime_type(data), OCTET_STREAM)

    def test_never_raises_on_garbage(self) -> None:
        self.assertEqual(sniff_mime_type(bytes(range(256)) * 4), OCTET_STREAM)


class TestSupportedMime(unittest.TestCase):
    def test_exact_membership(self) -> None:
        for mime in ("image/jpeg", "image/png", "image/webp", "image/gif"):
            self.assertTrue(is_supported_mime(mime))
        self.assertEqual(len(SUPPORTED_MIME_TYPES), 4)

    def test_rejects_everything_else(self) -> None:
        for mime in ("", "image/jpg", "IMAGE/PNG", "image/png ", "image/bmp", "image/svg+xml",
                     "application/octet-stream", "text/plain"):
            with self.subTest(mime=mime):
                self.assertFalse(is_supported_mime(mime))
