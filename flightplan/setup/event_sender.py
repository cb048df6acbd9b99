"""
Setup Event Sender

Mirrors setup progress to the Gateway as ``setup:status`` events. Only
active when the Gateway triple is present in the environment; every
failure is logged and swallowed so that reporting can never break
provisioning.
"""

import asyncio
import uuid
from typing import Mapping, Optional

import aiohttp

from ..runner.config import GatewayConfig
from ..runner.transport import SignedTransport
from ..runner.types import SetupStatusEvent, StampedEvent, utc_timestamp
from ..utils.logger import get_logger
from .status_store import SetupStatus

logger = get_logger(__name__)


class SetupEventSender:
    """Best-effort, fire-and-wait delivery of setup status events."""

    def __init__(self, gateway: Optional[GatewayConfig], transport: Optional[SignedTransport] = None):
        self._gateway = gateway
        self._transport = transport
        if gateway is not None and transport is None:
            self._transport = SignedTransport(gateway.webhook_secret)
        self.sent_count = 0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "SetupEventSender":
        gateway = GatewayConfig.from_env_optional(env)
        if gateway is None:
            logger.info("Gateway not configured, setup events will not be sent")
        return cls(gateway)

    @property
    def configured(self) -> bool:
        return self._gateway is not None

    async def send(self, status: SetupStatus) -> bool:
        """
        Post one ``setup:status`` event for ``status``.

        Returns:
            True if the Gateway accepted the event
        """
        if self._gateway is None:
            return False

        event = SetupStatusEvent(
            status=status.status.value,
            step=status.step,
            error=status.error,
            services=[service.to_dict() for service in status.services] or None,
            dev_server=status.dev_server.to_dict() if status.dev_server else None,
        )
        stamped = StampedEvent(
            event=event,
            event_id=str(uuid.uuid4()),
            mission_id=self._gateway.mission_id,
            timestamp=utc_timestamp(),
        )

        try:
            response = await self._transport.post_json(self._gateway.mission_url("events"), stamped.to_dict())
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Failed to send setup event", error=str(e) or type(e).__name__)
            return False

        if not response.ok:
            logger.warning("Setup event rejected", http_status=response.status, reason=response.reason)
            return False

        self.sent_count += 1
        return True

    async def close(self) -> None:
        if self._transport is not None:
            await self._transport.close()


__all__ = ["SetupEventSender"]
