"""HTTP and WebSocket server for scan pairing.

Single aiohttp server handling all routes:
- /health - Health check
- /ws - WebSocket for display devices (receives init + navigate)
- /api/scan - Issue a scan code (for display device)
- /scan/confirm/{scan_id} - Redeem a scan code (for phone)
"""

import logging
from typing import Optional

from aiohttp import WSMsgType, web

from scanlink.config import Config
from scanlink.connection_registry import ConnectionEvent, ConnectionRegistry
from scanlink.errors import (
    InvalidRequestError,
    MessageError,
    RedemptionError,
    RenderError,
    TransportError,
)
from scanlink.issuer import CodeIssuer
from scanlink.message import decode_message
from scanlink.qr_renderer import QrRenderer, Renderer
from scanlink.redemption import Redeemer
from scanlink.scan_sessions import ScanSessionStore

logger = logging.getLogger(__name__)

RENDER_FAILED_MESSAGE = "Could not generate QR code."

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>{title}</title>
    <style>
        body {{
            font-family: system-ui, sans-serif;
            text-align: center;
            margin-top: 20vh;
        }}
        p {{ color: #555; }}
    </style>
</head>
<body>
    <h1>{title}</h1>
    <p>{detail}</p>
</body>
</html>
"""

SUCCESS_PAGE = _PAGE_TEMPLATE.format(
    title="Scan successful!",
    detail="The page has been opened on your computer.",
)

# Served for every redemption failure so responses never reveal which
# scan ids were once valid.
FAILURE_PAGE = _PAGE_TEMPLATE.format(
    title="Invalid or expired scan session.",
    detail="Please scan a fresh code on the map.",
)


class PairingServer:
    """HTTP server tying the connection registry, scan store and issuer."""

    def __init__(
        self,
        config: Optional[Config] = None,
        renderer: Optional[Renderer] = None,
    ):
        """Initialize pairing server.

        Args:
            config: Server configuration. Defaults to Config().
            renderer: QR renderer. Defaults to QrRenderer().
        """
        self.config = config or Config()
        self.registry = ConnectionRegistry(
            send_timeout=self.config.connections.send_timeout,
        )
        self.store = ScanSessionStore(ttl_seconds=self.config.sessions.ttl_seconds)
        self.issuer = CodeIssuer(
            store=self.store,
            renderer=renderer or QrRenderer(),
            base_url=self.config.base_url,
        )
        self.redeemer = Redeemer(store=self.store, registry=self.registry)

        self.app = web.Application()
        self._setup_routes()
        self.app.on_startup.append(self._on_startup)
        self.app.on_shutdown.append(self._on_shutdown)
        self.app.on_cleanup.append(self._on_cleanup)

        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._port: int = 0

    def _setup_routes(self) -> None:
        """Set up all HTTP routes."""
        self.app.router.add_get("/health", self._handle_health)
        self.app.router.add_get("/ws", self._handle_websocket)
        self.app.router.add_post("/api/scan", self._handle_issue)
        self.app.router.add_get("/scan/confirm/{scan_id}", self._handle_confirm)

    # =========================================================================
    # Health
    # =========================================================================

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.Response(text="OK")

    # =========================================================================
    # Display device channel
    # =========================================================================

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Handle a display device's WebSocket.

        The connection is registered and bootstrapped on open, and
        deregistered when the socket closes or errors.
        """
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        try:
            connection_id = await self.registry.register(ws)
        except TransportError:
            if not ws.closed:
                await ws.close()
            return ws

        event = ConnectionEvent.CLOSE
        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await self._on_client_message(connection_id, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(
                        f"WebSocket error for {connection_id[:8]}...: {ws.exception()!r}"
                    )
                    event = ConnectionEvent.ERROR
                    break
        except Exception as e:
            logger.error(f"WebSocket handler error for {connection_id[:8]}...: {e!r}")
            event = ConnectionEvent.ERROR
        finally:
            await self.registry.handle_event(connection_id, event)

        return ws

    async def _on_client_message(self, connection_id: str, data: str) -> None:
        """Log and drop a text frame sent by a display device.

        Devices only listen on this channel, so nothing they send is acted on.
        """
        try:
            message = decode_message(data)
        except MessageError as e:
            logger.debug(f"Ignoring frame from {connection_id[:8]}...: {e}")
            return

        logger.debug(f"Ignoring {message.type} message from {connection_id[:8]}...")

    # =========================================================================
    # Scan codes
    # =========================================================================

    async def _handle_issue(self, request: web.Request) -> web.Response:
        """Issue a scan code.

        Body: ``{"target": str, "clientId": str}``. ``townName`` is
        accepted in place of ``target``.
        """
        try:
            body = await request.json()
        except ValueError:
            return web.json_response({"error": "Invalid JSON body"}, status=400)

        if not isinstance(body, dict):
            return web.json_response({"error": "Invalid JSON body"}, status=400)

        target = body.get("target", body.get("townName"))
        client_id = body.get("clientId")

        try:
            issued = await self.issuer.issue(target, client_id)
        except InvalidRequestError as e:
            return web.json_response({"error": str(e)}, status=400)
        except RenderError:
            return web.json_response({"error": RENDER_FAILED_MESSAGE}, status=500)

        return web.json_response({
            "id": issued.scan_id,
            "dataUrl": issued.rendered_code,
        })

    async def _handle_confirm(self, request: web.Request) -> web.Response:
        """Redeem a scan code from the phone."""
        scan_id = request.match_info["scan_id"]

        try:
            await self.redeemer.redeem(scan_id)
        except RedemptionError:
            return web.Response(
                status=404, text=FAILURE_PAGE, content_type="text/html"
            )

        return web.Response(text=SUCCESS_PAGE, content_type="text/html")

    # =========================================================================
    # Server lifecycle
    # =========================================================================

    async def _on_startup(self, app: web.Application) -> None:
        self.store.start_sweeper(self.config.sessions.sweep_interval)

    async def _on_shutdown(self, app: web.Application) -> None:
        await self.registry.close_all()

    async def _on_cleanup(self, app: web.Application) -> None:
        await self.store.stop_sweeper()

    async def start(self, host: str, port: int) -> web.AppRunner:
        """Start the server.

        Args:
            host: Host to bind to.
            port: Port to bind to (0 for random).

        Returns:
            App runner for cleanup.
        """
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, host, port)
        await self._site.start()

        # Get actual port
        if self._site._server and self._site._server.sockets:
            self._port = self._site._server.sockets[0].getsockname()[1]
        else:
            self._port = port

        logger.info(f"Pairing server started on {host}:{self._port}")
        return self._runner

    def get_port(self) -> int:
        """Get the actual bound port."""
        return self._port

    async def close(self) -> None:
        """Close all connections and stop server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        logger.info("Pairing server closed")
