"""
Gateway Queue Client

Pulls pending work items for the mission and acknowledges them. Every
failure degrades to an empty result or a False flag: an unavailable Gateway
means "nothing to do right now", never a crashed mission.
"""

import asyncio
import json
from typing import List, Set

import aiohttp

from .config import GatewayConfig
from .transport import SignedTransport
from .types import AckStatus, QueuedMessage
from ..utils.logger import get_logger

logger = get_logger(__name__)


class QueueClient:
    """Client for ``/missions/{id}/queue``."""

    def __init__(self, transport: SignedTransport, gateway: GatewayConfig):
        self._transport = transport
        self._gateway = gateway
        self._delivered: Set[str] = set()

    async def fetch_pending_messages(self) -> List[QueuedMessage]:
        """
        Fetch pending messages in Gateway order.

        The request is a GET whose signed body is the mission id. Malformed
        entries are skipped; any other failure returns ``[]``.
        """
        url = self._gateway.mission_url("queue")
        try:
            response = await self._transport.send("GET", url, self._gateway.mission_id)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Queue fetch failed", error=str(e) or type(e).__name__)
            return []

        if not response.ok:
            logger.warning("Queue fetch rejected", status=response.status, reason=response.reason)
            return []

        try:
            raw_messages = response.json().get("messages", [])
        except (ValueError, AttributeError) as e:
            logger.warning("Queue response is not a JSON object", error=str(e))
            return []

        if not isinstance(raw_messages, list):
            logger.warning("Queue response has no message list")
            return []

        messages = []
        for raw in raw_messages:
            try:
                messages.append(QueuedMessage.from_dict(raw))
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                logger.warning("Skipping malformed queue message", error=str(e), raw=json.dumps(raw)[:200])

        if messages:
            logger.info("Fetched queue messages", count=len(messages))
        return messages

    async def mark_delivered(self, message_id: str) -> bool:
        self._delivered.add(message_id)
        return await self._acknowledge(message_id, AckStatus.DELIVERED)

    async def mark_processed(self, message_id: str) -> bool:
        """
        Acknowledge that the session finished acting on a message.

        Refused (returns False) for ids this client never marked delivered.
        The id is forgotten once the acknowledgment has been attempted.
        """
        if message_id not in self._delivered:
            logger.error("Refusing to mark undelivered message processed", message_id=message_id)
            return False
        self._delivered.discard(message_id)
        return await self._acknowledge(message_id, AckStatus.PROCESSED)

    async def _acknowledge(self, message_id: str, status: AckStatus) -> bool:
        url = self._gateway.mission_url("queue", message_id)
        try:
            response = await self._transport.post_json(url, {"status": status.value})
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "Queue acknowledgment failed",
                message_id=message_id,
                status=status.value,
                error=str(e) or type(e).__name__,
            )
            return False

        if not response.ok:
            logger.warning(
                "Queue acknowledgment rejected",
                message_id=message_id,
                status=status.value,
                http_status=response.status,
            )
            return False

        logger.debug("Queue message acknowledged", message_id=message_id, status=status.value)
        return True


__all__ = ["QueueClient"]
