"""Tests for hook delivery against a real local HTTP server."""

import logging

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp import test_utils

from x402watch.notifier import HookNotifier
from x402watch.sampler import PaymentEvent

from conftest import ALPHA


def _event() -> PaymentEvent:
    return PaymentEvent(
        router_address=ALPHA,
        router_name="Alpha",
        previous_balance="10.00",
        new_balance="15.00",
        increase="5.00",
        detected_at="2025-01-15T12:00:00.000Z",
    )


class HookGateway:
    """Records hook POSTs and answers with a configurable status."""

    def __init__(self):
        self.status = 200
        self.requests: list[dict] = []
        self.server = None

    async def handle(self, request: web.Request) -> web.Response:
        self.requests.append({
            "body": await request.json(),
            "headers": dict(request.headers),
        })
        return web.json_response({"ok": self.status < 300}, status=self.status)

    @property
    def port(self) -> int:
        return self.server.port


@pytest_asyncio.fixture
async def gateway():
    gw = HookGateway()
    app = web.Application()
    app.router.add_post("/hooks/agent", gw.handle)
    gw.server = test_utils.TestServer(app, host="127.0.0.1")
    await gw.server.start_server()
    yield gw
    await gw.server.close()


class TestDeliver:
    @pytest.mark.asyncio
    async def test_posts_envelope(self, gateway):
        notifier = HookNotifier(gateway.port)
        try:
            assert await notifier.deliver(_event()) is True
        finally:
            await notifier.close()

        assert len(gateway.requests) == 1
        assert gateway.requests[0]["body"] == {
            "name": "x402-payment",
            "wakeMode": "now",
            "data": {
                "routerAddress": ALPHA,
                "routerName": "Alpha",
                "previousBalance": "10.00",
                "newBalance": "15.00",
                "increase": "5.00",
                "detectedAt": "2025-01-15T12:00:00.000Z",
            },
        }
        assert "Authorization" not in gateway.requests[0]["headers"]

    @pytest.mark.asyncio
    async def test_bearer_token_when_configured(self, gateway):
        notifier = HookNotifier(gateway.port, hooks_token="s3cret")
        try:
            await notifier.deliver(_event())
        finally:
            await notifier.close()

        assert gateway.requests[0]["headers"]["Authorization"] == "Bearer s3cret"

    @pytest.mark.asyncio
    async def test_server_error_is_logged_not_raised(self, gateway, caplog):
        gateway.status = 500
        notifier = HookNotifier(gateway.port)
        try:
            with caplog.at_level(logging.WARNING, logger="x402.notifier"):
                assert await notifier.deliver(_event()) is False
        finally:
            await notifier.close()

        assert len(gateway.requests) == 1
        assert "Hook POST failed for Alpha: 500" in caplog.text

    @pytest.mark.asyncio
    async def test_no_retry_within_a_call(self, gateway):
        gateway.status = 503
        notifier = HookNotifier(gateway.port)
        try:
            await notifier.deliver(_event())
        finally:
            await notifier.close()
        assert len(gateway.requests) == 1

    @pytest.mark.asyncio
    async def test_connection_refused(self, caplog):
        notifier = HookNotifier(test_utils.unused_port(), timeout=2)
        try:
            with caplog.at_level(logging.WARNING, logger="x402.notifier"):
                assert await notifier.deliver(_event()) is False
        finally:
            await notifier.close()
        assert "Hook POST error for Alpha" in caplog.text

    @pytest.mark.asyncio
    @pytest.mark.parametrize("port", [0, -1])
    async def test_non_positive_port_disables_delivery(self, port):
        notifier = HookNotifier(port)
        assert notifier.enabled is False
        assert await notifier.deliver(_event()) is False
        assert notifier._session is None


class TestHookUrl:
    def test_local_gateway_url(self):
        assert HookNotifier(18789).hook_url == "http://127.0.0.1:18789/hooks/agent"
