"""
Event Reporter

Ordered, retrying delivery of agent events to the Gateway.

Events are stamped (id, timestamp, mission id) when they are reported and
kept in an in-process FIFO. A single delivery pass pops the head, posts it,
and on any failure pushes it back to the head and ends the pass, so a later
event can never overtake an earlier one. Delivery is at-least-once: the
Gateway deduplicates retried events by their id.
"""

import asyncio
import uuid
from collections import deque
from typing import Deque, List, Optional

import aiohttp

from .config import GatewayConfig
from .transport import SignedTransport
from .types import AgentEvent, StampedEvent, utc_timestamp
from ..utils.logger import get_logger

logger = get_logger(__name__)


class EventReporter:
    """
    FIFO event queue drained to ``POST /missions/{id}/events``.

    ``report()`` is the only mutation entry point. It must be called from
    the event loop thread; queue push/pop and the flushing flag are only
    touched synchronously, so no lock is needed.
    """

    def __init__(
        self,
        transport: SignedTransport,
        gateway: GatewayConfig,
        retry_delay: float = 1.0,
        poll_interval: float = 0.1,
    ):
        self._transport = transport
        self._gateway = gateway
        self._retry_delay = retry_delay
        self._poll_interval = poll_interval

        self._queue: Deque[StampedEvent] = deque()
        self._flushing = False
        self._flush_task: Optional[asyncio.Task] = None
        self._last_failure: Optional[float] = None

        self.delivered_count = 0
        self.failed_attempts = 0
        self.dropped_count = 0

    @property
    def events_url(self) -> str:
        return self._gateway.mission_url("events")

    @property
    def pending(self) -> List[StampedEvent]:
        """Snapshot of undelivered events, head first."""
        return list(self._queue)

    @property
    def is_idle(self) -> bool:
        return not self._queue and not self._flushing

    # ============================================
    # Public API
    # ============================================

    def report(self, event: AgentEvent) -> StampedEvent:
        """
        Stamp and enqueue an event, starting a delivery pass if none is running.

        Must be called while the event loop is running.
        """
        stamped = StampedEvent(
            event=event,
            event_id=str(uuid.uuid4()),
            mission_id=self._gateway.mission_id,
            timestamp=utc_timestamp(),
        )
        self._queue.append(stamped)
        logger.debug("Event queued", event_type=stamped.type.value, pending=len(self._queue))

        if not self._flushing:
            self._start_pass()
        return stamped

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the queue is empty and no delivery pass is running.

        While waiting, failed events are retried every ``retry_delay``
        seconds. Returns False if ``timeout`` elapsed with events left.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while not self.is_idle:
            if not self._flushing and self._retry_due(loop.time()):
                self._start_pass()

            if deadline is not None and loop.time() >= deadline:
                logger.error(
                    "Drain timed out with undelivered events",
                    pending=len(self._queue),
                    event_types=",".join(e.type.value for e in self._queue),
                )
                return False

            await asyncio.sleep(self._poll_interval)

        return True

    # ============================================
    # Delivery
    # ============================================

    def _retry_due(self, now: float) -> bool:
        return self._last_failure is None or now - self._last_failure >= self._retry_delay

    def _start_pass(self) -> None:
        self._flushing = True
        self._flush_task = asyncio.get_running_loop().create_task(self._flush())

    async def _flush(self) -> None:
        try:
            while self._queue:
                stamped = self._queue.popleft()
                try:
                    delivered = await self._deliver(stamped)
                except asyncio.CancelledError:
                    self._queue.appendleft(stamped)
                    raise
                except Exception:
                    # Not a transport failure, so not retryable
                    logger.exception(
                        "Dropping undeliverable event",
                        event_type=stamped.type.value,
                        event_id=stamped.event_id,
                    )
                    self.dropped_count += 1
                    continue

                if not delivered:
                    self._queue.appendleft(stamped)
                    self._last_failure = asyncio.get_running_loop().time()
                    self.failed_attempts += 1
                    break

                self.delivered_count += 1
        finally:
            self._flushing = False

    async def _deliver(self, stamped: StampedEvent) -> bool:
        try:
            response = await self._transport.post_json(self.events_url, stamped.to_dict())
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "Event delivery failed",
                event_type=stamped.type.value,
                event_id=stamped.event_id,
                error=str(e) or type(e).__name__,
            )
            return False

        if not response.ok:
            logger.warning(
                "Gateway rejected event",
                event_type=stamped.type.value,
                event_id=stamped.event_id,
                status=response.status,
                reason=response.reason,
            )
            return False

        logger.debug("Event delivered", event_type=stamped.type.value, event_id=stamped.event_id)
        return True


__all__ = ["EventReporter"]
