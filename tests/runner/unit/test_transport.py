"""
Unit tests for SignedTransport
"""

import hashlib
import hmac
import json

import aiohttp
import pytest

from flightplan.runner.transport import SignedTransport, sign_payload, verify_signature


def test_sign_payload_format():
    """Test signature is sha256=<hex hmac of body>"""
    body = json.dumps({"type": "agent:start"})
    expected = hmac.new(b"secret", body.encode("utf-8"), hashlib.sha256).hexdigest()

    assert sign_payload("secret", body) == f"sha256={expected}"
    assert sign_payload("secret", body.encode("utf-8")) == f"sha256={expected}"


def test_verify_signature():
    """Test signature verification rejects other secrets and bodies"""
    signature = sign_payload("secret", "payload")

    assert verify_signature("secret", "payload", signature)
    assert not verify_signature("other", "payload", signature)
    assert not verify_signature("secret", "payload2", signature)
    assert not verify_signature("secret", "payload", "")


@pytest.mark.asyncio
async def test_post_is_signed(gateway, gateway_config, transport):
    """Test POST bodies carry a valid signature"""
    response = await transport.post_json(gateway_config.mission_url("events"), {"type": "agent:start"})

    assert response.ok
    assert response.json() == {"ok": True}
    assert gateway.bad_signatures == 0
    assert gateway.events == [{"type": "agent:start"}]


@pytest.mark.asyncio
async def test_get_signs_mission_id(gateway, gateway_config, transport):
    """Test GET requests sign the mission id as their body"""
    response = await transport.send("GET", gateway_config.mission_url("queue"), gateway_config.mission_id)

    assert response.status == 200
    assert response.json() == {"messages": []}
    assert gateway.bad_signatures == 0


@pytest.mark.asyncio
async def test_wrong_secret_is_rejected(gateway, gateway_config):
    """Test the transport does not interpret status codes"""
    async with SignedTransport("wrong-secret") as transport:
        response = await transport.post_json(gateway_config.mission_url("events"), {"type": "agent:start"})

    assert response.status == 401
    assert not response.ok
    assert gateway.bad_signatures == 1


@pytest.mark.asyncio
async def test_connection_errors_surface():
    """Test transport errors are raised, not retried"""
    async with SignedTransport("secret", timeout=2) as transport:
        with pytest.raises(aiohttp.ClientError):
            await transport.post_json("http://127.0.0.1:9/missions/x/events", {})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
