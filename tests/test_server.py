"""Tests for the pairing HTTP/WebSocket server."""

import asyncio
import uuid

from aiohttp.test_utils import AioHTTPTestCase

from scanlink.config import Config
from scanlink.errors import RenderError
from scanlink.server import FAILURE_PAGE, SUCCESS_PAGE, PairingServer


class RecordingRenderer:
    """Renderer that records urls instead of drawing them."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.urls = []

    def render(self, url: str) -> str:
        if self.fail:
            raise RenderError("renderer unavailable")
        self.urls.append(url)
        return "data:image/png;base64,AAAA"


class ServerTestCase(AioHTTPTestCase):
    """Base class wiring a PairingServer into the aiohttp test client."""

    renderer_fails = False

    async def get_application(self):
        self.renderer = RecordingRenderer(fail=self.renderer_fails)
        self.pairing_server = PairingServer(
            config=Config(base_url="http://maps.test"),
            renderer=self.renderer,
        )
        return self.pairing_server.app

    async def open_display(self):
        """Open a display WebSocket and return it with its client id."""
        ws = await self.client.ws_connect("/ws")
        init = await ws.receive_json(timeout=2)
        assert init["type"] == "init"
        return ws, init["clientId"]

    async def issue(self, target: str, client_id):
        resp = await self.client.post(
            "/api/scan", json={"target": target, "clientId": client_id}
        )
        return resp

    async def next_frame_after_scan(self, ws, client_id, target: str):
        """Issue and redeem a fresh code, then return the next frame on ws.

        Anything the server sent earlier would show up here instead of the
        navigate for ``target``.
        """
        scan_id = (await (await self.issue(target, client_id)).json())["id"]
        resp = await self.client.get(f"/scan/confirm/{scan_id}")
        assert resp.status == 200
        return await ws.receive_json(timeout=2)

    async def wait_until(self, predicate, timeout: float = 2.0):
        deadline = asyncio.get_running_loop().time() + timeout
        while not predicate():
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.01)


class TestHealth(ServerTestCase):
    async def test_health(self):
        resp = await self.client.get("/health")
        assert resp.status == 200
        assert await resp.text() == "OK"


class TestWebSocket(ServerTestCase):
    """Tests for the display device channel."""

    async def test_connect_receives_init(self):
        ws, client_id = await self.open_display()

        assert self.pairing_server.registry.is_registered(client_id)
        await ws.close()

    async def test_each_connection_gets_own_id(self):
        ws1, id1 = await self.open_display()
        ws2, id2 = await self.open_display()

        assert id1 != id2
        assert len(self.pairing_server.registry) == 2
        await ws1.close()
        await ws2.close()

    async def test_close_deregisters(self):
        ws, client_id = await self.open_display()

        await ws.close()

        await self.wait_until(lambda: not self.pairing_server.registry.is_registered(client_id))

    async def test_inbound_frames_get_no_reply(self):
        """Device frames, well-formed or not, are dropped without a reply."""
        ws, client_id = await self.open_display()

        await ws.send_str("hello?")
        await ws.send_json({"type": "ping"})
        await ws.send_json({"type": "navigate", "url": "/evil"})
        await ws.send_json({"type": "init", "clientId": client_id})

        assert await self.next_frame_after_scan(ws, client_id, "Opuwo") == {
            "type": "navigate",
            "url": "/town/Opuwo",
        }
        assert self.pairing_server.registry.is_registered(client_id)
        await ws.close()


class TestIssueEndpoint(ServerTestCase):
    """Tests for POST /api/scan."""

    async def test_issue_returns_id_and_data_url(self):
        ws, client_id = await self.open_display()

        resp = await self.issue("Windhoek", client_id)

        assert resp.status == 200
        body = await resp.json()
        assert body["dataUrl"].startswith("data:image/png;base64,")
        assert self.renderer.urls == [f"http://maps.test/scan/confirm/{body['id']}"]
        await ws.close()

    async def test_issue_accepts_town_name_alias(self):
        resp = await self.client.post(
            "/api/scan",
            json={"townName": "Keetmanshoop", "clientId": str(uuid.uuid4())},
        )

        assert resp.status == 200

    async def test_issue_rejects_malformed_client_id(self):
        resp = await self.issue("Windhoek", "c1")

        assert resp.status == 400
        assert "error" in await resp.json()

    async def test_issue_rejects_missing_target(self):
        resp = await self.client.post("/api/scan", json={"clientId": str(uuid.uuid4())})

        assert resp.status == 400

    async def test_issue_rejects_invalid_json(self):
        resp = await self.client.post(
            "/api/scan", data="{not json", headers={"Content-Type": "application/json"}
        )

        assert resp.status == 400

    async def test_issue_rejects_non_object_json(self):
        resp = await self.client.post("/api/scan", json=["Windhoek"])

        assert resp.status == 400


class TestIssueRenderFailure(ServerTestCase):
    renderer_fails = True

    async def test_render_failure_is_500(self):
        resp = await self.issue("Windhoek", str(uuid.uuid4()))

        assert resp.status == 500
        assert await resp.json() == {"error": "Could not generate QR code."}


class TestPairingFlow(ServerTestCase):
    """End-to-end pairing scenarios."""

    async def test_scan_navigates_display(self):
        """Redeeming a code sends navigate to the display that asked for it."""
        ws, client_id = await self.open_display()
        scan_id = (await (await self.issue("Windhoek", client_id)).json())["id"]

        resp = await self.client.get(f"/scan/confirm/{scan_id}")

        assert resp.status == 200
        assert await resp.text() == SUCCESS_PAGE
        assert await ws.receive_json(timeout=2) == {
            "type": "navigate",
            "url": "/town/Windhoek",
        }
        await ws.close()

    async def test_second_scan_is_rejected(self):
        ws, client_id = await self.open_display()
        scan_id = (await (await self.issue("Windhoek", client_id)).json())["id"]
        await self.client.get(f"/scan/confirm/{scan_id}")
        await ws.receive_json(timeout=2)

        resp = await self.client.get(f"/scan/confirm/{scan_id}")

        assert resp.status == 404
        assert await resp.text() == FAILURE_PAGE
        assert (await self.next_frame_after_scan(ws, client_id, "Lüderitz"))["url"] == (
            "/town/L%C3%BCderitz"
        )
        await ws.close()

    async def test_unknown_origin_gets_generic_failure(self):
        """A code for a display that never connected fails like a bad id."""
        scan_id = (await (await self.issue("Rundu", str(uuid.uuid4()))).json())["id"]

        origin_resp = await self.client.get(f"/scan/confirm/{scan_id}")
        bogus_resp = await self.client.get("/scan/confirm/never-issued")

        assert origin_resp.status == bogus_resp.status == 404
        assert await origin_resp.text() == await bogus_resp.text() == FAILURE_PAGE

    async def test_display_disconnected_before_scan(self):
        ws, client_id = await self.open_display()
        scan_id = (await (await self.issue("Gobabis", client_id)).json())["id"]
        await ws.close()
        await self.wait_until(lambda: not self.pairing_server.registry.is_registered(client_id))

        resp = await self.client.get(f"/scan/confirm/{scan_id}")

        assert resp.status == 404
        assert await resp.text() == FAILURE_PAGE

    async def test_codes_are_independent(self):
        """Two codes for the same town each navigate once."""
        ws, client_id = await self.open_display()
        first = (await (await self.issue("Tsumeb", client_id)).json())["id"]
        second = (await (await self.issue("Tsumeb", client_id)).json())["id"]

        assert first != second
        for scan_id in (first, second):
            resp = await self.client.get(f"/scan/confirm/{scan_id}")
            assert resp.status == 200
            assert (await ws.receive_json(timeout=2))["url"] == "/town/Tsumeb"
        await ws.close()

    async def test_concurrent_scans_single_success(self):
        """Two simultaneous redemptions yield one success and one failure."""
        ws, client_id = await self.open_display()
        scan_id = (await (await self.issue("Oshakati", client_id)).json())["id"]

        responses = await asyncio.gather(
            self.client.get(f"/scan/confirm/{scan_id}"),
            self.client.get(f"/scan/confirm/{scan_id}"),
        )

        assert sorted(r.status for r in responses) == [200, 404]
        assert (await ws.receive_json(timeout=2))["url"] == "/town/Oshakati"
        assert (await self.next_frame_after_scan(ws, client_id, "Ondangwa"))["url"] == (
            "/town/Ondangwa"
        )
        await ws.close()
