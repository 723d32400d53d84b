"""Tests for QR rendering."""

import base64

from tests.fakes import TEST_QR
from wacli.qr import QrRenderer

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


class TestQrRenderer:
    """Tests for QrRenderer."""

    def test_png_bytes(self):
        """Produces a PNG image."""
        png = QrRenderer(TEST_QR).to_png_bytes()

        assert png.startswith(PNG_MAGIC)

    def test_data_uri(self):
        """Data URI wraps the base64 PNG."""
        uri = QrRenderer(TEST_QR).to_data_uri()

        assert uri.startswith("data:image/png;base64,")
        decoded = base64.b64decode(uri.split(",", 1)[1])
        assert decoded.startswith(PNG_MAGIC)

    def test_larger_box_size_makes_larger_image(self):
        small = QrRenderer(TEST_QR, box_size=2).to_png_bytes()
        large = QrRenderer(TEST_QR, box_size=10).to_png_bytes()

        assert len(large) > len(small)

    def test_terminal_output(self):
        """Terminal rendering is multi-line block art."""
        text = QrRenderer(TEST_QR).to_terminal()

        assert len(text.splitlines()) > 10
