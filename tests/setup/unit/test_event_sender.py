"""
Unit tests for SetupEventSender
"""

import pytest

from flightplan.runner.config import GatewayConfig
from flightplan.runner.transport import SignedTransport
from flightplan.setup.event_sender import SetupEventSender
from flightplan.setup.status_store import DevServerInfo, ServiceInstance, SetupState, SetupStatus


@pytest.mark.asyncio
async def test_sends_setup_status(gateway, gateway_config):
    """Test progress is mirrored as a signed setup:status event"""
    sender = SetupEventSender(gateway_config)
    try:
        ok = await sender.send(
            SetupStatus(
                status=SetupState.READY,
                services=[ServiceInstance("postgres", "postgres://localhost:5432/app", 5432)],
                dev_server=DevServerInfo(port=3000, pid=12),
            )
        )
    finally:
        await sender.close()

    assert ok
    assert gateway.bad_signatures == 0
    event = gateway.events[0]
    assert event["type"] == "setup:status"
    assert event["status"] == "ready"
    assert event["missionId"] == gateway_config.mission_id
    assert event["devServer"] == {"port": 3000, "pid": 12}
    assert event["services"][0]["name"] == "postgres"
    assert "step" not in event


@pytest.mark.asyncio
async def test_unconfigured_sender_is_noop():
    sender = SetupEventSender.from_env({"GATEWAY_URL": "http://gateway"})

    assert not sender.configured
    assert await sender.send(SetupStatus(step="initializing")) is False
    await sender.close()


@pytest.mark.asyncio
async def test_failures_are_swallowed(gateway, gateway_config):
    """Test rejected and unreachable deliveries return False"""
    gateway.fail_events = 1
    async with SignedTransport(gateway_config.webhook_secret) as transport:
        sender = SetupEventSender(gateway_config, transport)
        assert await sender.send(SetupStatus(step="initializing")) is False

    unreachable = SetupEventSender(GatewayConfig("http://127.0.0.1:9", "s", gateway_config.mission_id))
    try:
        assert await unreachable.send(SetupStatus(step="initializing")) is False
    finally:
        await unreachable.close()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
