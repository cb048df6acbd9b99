"""
Shared fixtures: an in-process fake Gateway served by aiohttp.
"""

import json
from collections import deque
from typing import Any, Deque, Dict, List

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from flightplan.runner.config import GatewayConfig
from flightplan.runner.transport import SIGNATURE_HEADER, SignedTransport, verify_signature

SECRET = "test-webhook-secret"
MISSION_ID = "4f1c2b7e-9a55-4c1e-8d3b-2f6a0c9e7d11"


class FakeGateway:
    """
    Records everything the agent process sends.

    ``fail_events`` makes the next N event posts answer 500.
    ``batches`` are served one per queue fetch; an empty deque serves ``[]``.
    """

    def __init__(self, secret: str = SECRET, mission_id: str = MISSION_ID):
        self.secret = secret
        self.mission_id = mission_id
        self.url = ""

        self.events: List[Dict[str, Any]] = []
        self.event_attempts = 0
        self.fail_events = 0

        self.batches: Deque[List[Dict[str, Any]]] = deque()
        self.queue_status = 200
        self.queue_fetches = 0
        self.acks: List[tuple] = []

        self.bad_signatures = 0

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/missions/{mission_id}/events", self.handle_event)
        app.router.add_get("/missions/{mission_id}/queue", self.handle_queue)
        app.router.add_post("/missions/{mission_id}/queue/{message_id}", self.handle_ack)
        return app

    def _check(self, request: web.Request, body: bytes) -> bool:
        if not verify_signature(self.secret, body, request.headers.get(SIGNATURE_HEADER, "")):
            self.bad_signatures += 1
            return False
        return request.match_info["mission_id"] == self.mission_id

    async def handle_event(self, request: web.Request) -> web.Response:
        body = await request.read()
        if not self._check(request, body):
            return web.Response(status=401)
        self.event_attempts += 1
        if self.fail_events > 0:
            self.fail_events -= 1
            return web.Response(status=500, text="boom")
        self.events.append(json.loads(body))
        return web.json_response({"ok": True})

    async def handle_queue(self, request: web.Request) -> web.Response:
        if not self._check(request, self.mission_id.encode("utf-8")):
            return web.Response(status=401)
        self.queue_fetches += 1
        if self.queue_status != 200:
            return web.Response(status=self.queue_status, text="unavailable")
        messages = self.batches.popleft() if self.batches else []
        return web.json_response({"messages": messages})

    async def handle_ack(self, request: web.Request) -> web.Response:
        body = await request.read()
        if not self._check(request, body):
            return web.Response(status=401)
        self.acks.append((request.match_info["message_id"], json.loads(body)["status"]))
        return web.json_response({"ok": True})

    def event_types(self) -> List[str]:
        return [event["type"] for event in self.events]


def queued(message_id: str, text: str, behavior: str = "followUp", sender: str = "user-2") -> Dict[str, Any]:
    return {
        "id": message_id,
        "text": text,
        "behavior": behavior,
        "senderId": sender,
        "senderName": f"Name {sender}",
        "createdAt": "2026-01-01T00:00:00Z",
    }


@pytest_asyncio.fixture
async def gateway():
    """Start a fake Gateway on a random local port"""
    fake = FakeGateway()
    server = TestServer(fake.app())
    await server.start_server()
    fake.url = f"http://{server.host}:{server.port}"
    yield fake
    await server.close()


@pytest.fixture
def gateway_config(gateway):
    return GatewayConfig(gateway_url=gateway.url, webhook_secret=SECRET, mission_id=MISSION_ID)


@pytest_asyncio.fixture
async def transport():
    transport = SignedTransport(SECRET, timeout=5)
    yield transport
    await transport.close()


@pytest.fixture
def make_message():
    """Factory for Gateway-shaped queue messages"""
    return queued
