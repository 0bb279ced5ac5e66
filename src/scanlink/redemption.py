"""Redeem scan codes and navigate the originating device."""

import logging
from typing import Callable
from urllib.parse import quote

from scanlink.connection_registry import ConnectionRegistry
from scanlink.errors import InvalidSessionError, OriginUnavailableError
from scanlink.message import NavigateMessage
from scanlink.scan_sessions import ScanSessionStore

logger = logging.getLogger(__name__)


def town_path(target: str) -> str:
    """Resolve a town name to the page the display device should open."""
    return f"/town/{quote(target, safe='')}"


class Redeemer:
    """Consume scan sessions and push navigation to their origin.

    The session is always consumed before the origin is looked up, so two
    concurrent redemptions of one code can never both navigate. Once
    consumed, a session is gone even if the push then fails.
    """

    def __init__(
        self,
        store: ScanSessionStore,
        registry: ConnectionRegistry,
        resolve_target: Callable[[str], str] = town_path,
    ):
        self.store = store
        self.registry = registry
        self.resolve_target = resolve_target

    async def redeem(self, scan_id: str) -> str:
        """Redeem a scan id.

        Args:
            scan_id: Id presented by the redeeming device.

        Returns:
            The url the origin device was told to open.

        Raises:
            InvalidSessionError: Unknown, already redeemed, or expired id.
            OriginUnavailableError: The origin connection is gone or the
                push failed.
        """
        session = await self.store.consume(scan_id)
        if session is None:
            logger.warning(f"Redemption of invalid scan {scan_id[:8]}...")
            raise InvalidSessionError("Invalid or expired scan session")

        url = self.resolve_target(session.target)
        delivered = await self.registry.push(
            session.origin_connection_id, NavigateMessage(url=url)
        )
        if not delivered:
            logger.warning(
                f"Scan {scan_id[:8]}... consumed but origin "
                f"{session.origin_connection_id[:8]}... unavailable"
            )
            raise OriginUnavailableError("Origin connection unavailable")

        logger.info(
            f"Scan {scan_id[:8]}... redeemed, navigated "
            f"{session.origin_connection_id[:8]}... to {url}"
        )
        return url
