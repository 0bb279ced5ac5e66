"""Issue scan codes for display devices."""

import asyncio
import logging
from dataclasses import dataclass

from scanlink.connection_registry import is_valid_connection_id
from scanlink.errors import InvalidRequestError, RenderError
from scanlink.qr_renderer import Renderer
from scanlink.scan_sessions import ScanSessionStore

logger = logging.getLogger(__name__)

CONFIRM_PATH = "/scan/confirm/"


@dataclass(frozen=True)
class IssuedCode:
    """Result of issuing a scan code.

    Attributes:
        scan_id: Id of the scan session backing the code.
        url: Redemption url encoded in the code.
        rendered_code: Rendered QR representation of ``url``.
    """

    scan_id: str
    url: str
    rendered_code: str


def build_confirm_url(base_url: str, scan_id: str) -> str:
    """Build the redemption url for a scan id."""
    return f"{base_url.rstrip('/')}{CONFIRM_PATH}{scan_id}"


class CodeIssuer:
    """Create scan sessions and render their redemption urls."""

    def __init__(self, store: ScanSessionStore, renderer: Renderer, base_url: str):
        self.store = store
        self.renderer = renderer
        self.base_url = base_url

    async def issue(self, target: str, origin_connection_id: str) -> IssuedCode:
        """Issue a scan code for a target on behalf of a connection.

        The origin only has to be well formed. A connection that has gone
        away is detected when the code is redeemed.

        Args:
            target: Content reference the origin should navigate to.
            origin_connection_id: Connection id echoed back by the device.

        Returns:
            The issued code.

        Raises:
            InvalidRequestError: If the target is empty or the origin id is
                malformed.
            RenderError: If rendering failed. The session created for this
                request is left behind and can never be redeemed.
        """
        if not isinstance(target, str) or not target.strip():
            raise InvalidRequestError("target must be a non-empty string")
        if not is_valid_connection_id(origin_connection_id):
            raise InvalidRequestError("clientId is not a valid connection id")

        scan_id = await self.store.create(origin_connection_id, target)
        url = build_confirm_url(self.base_url, scan_id)

        try:
            rendered = await asyncio.to_thread(self.renderer.render, url)
        except RenderError:
            logger.error(f"QR rendering failed for scan {scan_id[:8]}...")
            raise
        except Exception as e:
            logger.error(f"QR rendering failed for scan {scan_id[:8]}...: {e!r}")
            raise RenderError("Could not generate QR code.") from e

        logger.info(
            f"Scan code issued: {scan_id[:8]}... "
            f"for {origin_connection_id[:8]}..."
        )
        return IssuedCode(scan_id=scan_id, url=url, rendered_code=rendered)
