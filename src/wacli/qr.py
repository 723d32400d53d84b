"""QR code rendering for pairing codes.

The platform hands out an opaque pairing string. It is rendered as a PNG
data URI for HTTP clients and as block characters for the terminal.
"""

import base64
import io

import qrcode
from qrcode.main import QRCode


class QrRenderer:
    """Render a pairing code as a scannable QR image."""

    def __init__(self, code: str, box_size: int = 8, border: int = 4):
        """Initialize QR renderer.

        Args:
            code: Pairing string from the platform.
            box_size: Pixels per module in PNG output.
            border: Quiet zone width in modules.
        """
        self.code = code
        self.box_size = box_size
        self.border = border

    def _create_qr(self) -> QRCode:
        qr = qrcode.QRCode(
            version=None,  # Auto-size
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=self.box_size,
            border=self.border,
        )
        qr.add_data(self.code)
        qr.make(fit=True)
        return qr

    def to_png_bytes(self) -> bytes:
        """Encode the QR code as PNG."""
        img = self._create_qr().make_image(fill_color="black", back_color="white")
        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        return buffer.getvalue()

    def to_data_uri(self) -> str:
        """PNG as a data URI, ready for an <img src>."""
        encoded = base64.b64encode(self.to_png_bytes()).decode("ascii")
        return f"data:image/png;base64,{encoded}"

    def to_terminal(self) -> str:
        """ASCII art for terminal display."""
        output = io.StringIO()
        self._create_qr().print_ascii(out=output, invert=True)
        return output.getvalue()
