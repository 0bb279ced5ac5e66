"""QR code rendering for scan urls.

Renders a redemption url as a PNG data URL for display in the browser, or
as text for the terminal.
"""

import base64
import io
from typing import Protocol

import qrcode
from qrcode.main import QRCode

from scanlink.errors import RenderError


class Renderer(Protocol):
    """Protocol for QR renderers used by the code issuer."""

    def render(self, url: str) -> str:
        """Render a url into a displayable representation."""
        ...


class QrRenderer:
    """Render urls as QR codes.

    Stateless; one instance may be shared by concurrent requests.
    """

    def __init__(self, box_size: int = 10, border: int = 4):
        """Initialize QR renderer.

        Args:
            box_size: Pixels per QR module in PNG output.
            border: Quiet zone width, in modules.
        """
        self.box_size = box_size
        self.border = border

    def _create_qr(self, url: str) -> QRCode:
        if not url:
            raise RenderError("Cannot render an empty url")

        qr = qrcode.QRCode(
            version=None,  # Auto-size
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=self.box_size,
            border=self.border,
        )
        qr.add_data(url)
        try:
            qr.make(fit=True)
        except Exception as e:
            raise RenderError(f"Could not encode url: {e}") from e
        return qr

    def to_png(self, url: str) -> bytes:
        """Render a url as PNG bytes."""
        qr = self._create_qr(url)
        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        return buffer.getvalue()

    def render(self, url: str) -> str:
        """Render a url as a ``data:image/png;base64,...`` URL."""
        png_b64 = base64.b64encode(self.to_png(url)).decode("ascii")
        return f"data:image/png;base64,{png_b64}"

    def to_terminal(self, url: str) -> str:
        """Render a url as text using block characters."""
        qr = self._create_qr(url)

        output = io.StringIO()
        qr.print_ascii(out=output, invert=True)
        return output.getvalue()
