"""
Mission Coordinator

The agent process's main loop. It pulls work from the Gateway queue, drives
the agent session with it, forwards session events through the reporter,
and cancels in-flight work when an abort arrives.

State machine per mission:

    fetch-initial -> run-initial-prompt -> poll-loop -> idle

Behaviors: a ``steer`` cancels the running prompt and starts at once, a
``followUp`` waits in a local queue until the session is free, and an
``abort`` cancels the running prompt and drops queued follow-ups. The queue
keeps being polled while a prompt runs.

Acknowledgments: a message is marked ``delivered`` when it is taken from
the queue. The messages of one fetched batch are marked ``processed`` as
soon as every one of them has run (a steered-away prompt counts as run), so
``processed`` always follows ``delivered`` for the same id.

Cancellation: the queue ``abort`` behavior and the abort signal file both
call :meth:`Coordinator.request_abort`. The first caller wins; later calls
are logged no-ops.
"""

import asyncio
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Set, Tuple

from .abort_watcher import AbortWatcher
from .context import Contributor, MissionContext
from .queue_client import QueueClient
from .reporter import EventReporter
from .session import AgentSession
from .types import (
    AgentEnd,
    AgentError,
    AgentStart,
    Behavior,
    MessageDelta,
    MessageEnd,
    MessageStart,
    QueuedMessage,
    SessionEvent,
    SessionEventType,
    SystemCompaction,
    ToolEnd,
    ToolStart,
    ToolUpdate,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

ABORT_SOURCE_SIGNAL = "signal"
ABORT_SOURCE_QUEUE = "queue"


def format_prompt(sender_name: str, text: str) -> str:
    """Attribute a prompt to its sender: ``[name]: text``."""
    return f"[{sender_name}]: {text}"


@dataclass
class _Batch:
    """Ids fetched together; acknowledged once all of them have run."""

    ids: List[str] = field(default_factory=list)
    finished: Set[str] = field(default_factory=set)
    sealed: bool = False

    @property
    def complete(self) -> bool:
        return self.sealed and self.finished.issuperset(self.ids)


@dataclass
class _Drive:
    task: asyncio.Task
    batch: _Batch
    message_ids: List[str]


class Coordinator:
    """Runs one mission from the initial prompt until the queue is empty."""

    def __init__(
        self,
        session: AgentSession,
        reporter: EventReporter,
        queue: QueueClient,
        watcher: AbortWatcher,
        context: MissionContext,
        initial_prompt: Optional[str] = None,
        initial_sender: Optional[Contributor] = None,
        poll_interval: float = 1.0,
        drain_timeout: Optional[float] = None,
    ):
        self._session = session
        self._reporter = reporter
        self._queue = queue
        self._watcher = watcher
        self._context = context
        self._initial_prompt = initial_prompt
        self._initial_sender = initial_sender or context.creator
        self._poll_interval = poll_interval
        self._drain_timeout = drain_timeout

        self._abort_source: Optional[str] = None
        self._current: Optional[_Drive] = None
        self._follow_ups: Deque[Tuple[QueuedMessage, _Batch]] = deque()
        self._open_batches: List[_Batch] = []

        # Current assistant message
        self._message_id: Optional[str] = None
        self._message_content = ""
        self._message_sequence = 0

        self.input_tokens = 0
        self.output_tokens = 0
        self.prompts_run = 0

    @property
    def aborted(self) -> bool:
        return self._abort_source is not None or self._watcher.was_aborted

    @property
    def abort_source(self) -> Optional[str]:
        return self._abort_source

    @property
    def is_driving(self) -> bool:
        return self._current is not None and not self._current.task.done()

    @property
    def queued_follow_ups(self) -> int:
        return len(self._follow_ups)

    # ============================================
    # Main loop
    # ============================================

    async def run(self) -> None:
        """
        Run the mission.

        Reports ``agent:start`` and ``agent:end`` (or ``agent:error`` before
        re-raising). The reporter is drained on every exit path.
        """
        self._reporter.report(AgentStart(model=self._session.model))
        self._watcher.start(self._on_abort_signal)

        try:
            await self._run_initial()
            if not self.aborted:
                await self._poll_loop()
            await self._settle()

            self._reporter.report(
                AgentEnd(
                    input_tokens=self.input_tokens,
                    output_tokens=self.output_tokens,
                    aborted=self.aborted,
                )
            )
            logger.info(
                "Mission finished",
                prompts=self.prompts_run,
                aborted=self.aborted,
                abort_source=self._abort_source,
            )

        except Exception as e:
            logger.error("Mission failed", exc_info=True)
            self._reporter.report(AgentError(error=str(e) or type(e).__name__))
            raise

        finally:
            self._watcher.stop()
            await self._cancel_drive()
            try:
                await self._session.dispose()
            finally:
                await self._reporter.drain(timeout=self._drain_timeout)

    async def _run_initial(self) -> None:
        messages = await self._queue.fetch_pending_messages()

        parts = []
        if self._initial_prompt:
            self._context.add_contributor(self._initial_sender)
            parts.append(format_prompt(self._initial_sender.name, self._initial_prompt))

        delivered: List[str] = []
        for message in messages:
            await self._queue.mark_delivered(message.id)
            self._add_sender(message)

            if message.behavior is Behavior.ABORT:
                await self.request_abort(ABORT_SOURCE_QUEUE)
                await self._queue.mark_processed(message.id)
                return
            delivered.append(message.id)
            parts.append(format_prompt(message.sender_name, message.text))

        if self.aborted:
            return
        if not parts:
            logger.info("No initial prompt and no queued messages")
            return

        logger.info("Running initial prompt", queued_messages=len(delivered))
        batch = self._open_batch()
        batch.ids.extend(delivered)
        batch.sealed = True
        await self._start_drive("\n\n".join(parts), batch, delivered)
        await self._wait_for_drive()
        await self._reap()

    async def _poll_loop(self) -> None:
        while not self.aborted:
            await self._advance()
            if self.aborted:
                break

            messages = await self._queue.fetch_pending_messages()
            if messages:
                await self._dispatch(messages)
                continue

            if self.is_driving:
                await self._wait_for_drive(timeout=self._poll_interval)
                continue
            if self._follow_ups:
                continue

            logger.info("Queue empty, session idle")
            break

    async def _dispatch(self, messages: List[QueuedMessage]) -> None:
        batch = self._open_batch()
        await self._hand_over(messages, batch)
        batch.sealed = True
        await self._acknowledge_finished()

    async def _hand_over(self, messages: List[QueuedMessage], batch: _Batch) -> None:
        """Apply each message's behavior in fetch order."""
        for message in messages:
            if self.aborted:
                logger.info("Abort requested, skipping rest of batch", message_id=message.id)
                return

            await self._queue.mark_delivered(message.id)
            self._add_sender(message)
            logger.info("Dispatching message", message_id=message.id, behavior=message.behavior.value)

            if message.behavior is Behavior.ABORT:
                await self.request_abort(ABORT_SOURCE_QUEUE)
                await self._queue.mark_processed(message.id)
                return

            batch.ids.append(message.id)
            prompt = format_prompt(message.sender_name, message.text)

            if message.behavior is Behavior.STEER:
                await self._interrupt()
                if self.aborted:
                    return
                await self._start_drive(prompt, batch, [message.id])
            elif self.is_driving or self._follow_ups:
                self._follow_ups.append((message, batch))
                logger.debug("Follow-up queued", message_id=message.id, queued=len(self._follow_ups))
            else:
                await self._start_drive(prompt, batch, [message.id])

    async def _advance(self) -> None:
        """Retire a finished prompt and start the next queued follow-up."""
        await self._reap()
        if self.is_driving or self.aborted or not self._follow_ups:
            return

        message, batch = self._follow_ups.popleft()
        logger.info("Running queued follow-up", message_id=message.id, remaining=len(self._follow_ups))
        await self._start_drive(format_prompt(message.sender_name, message.text), batch, [message.id])

    async def _settle(self) -> None:
        """Wait for the session to go idle and acknowledge what ran."""
        await self._wait_for_drive()
        await self._reap()

        if self._follow_ups:
            logger.info("Dropping queued follow-ups", count=len(self._follow_ups))
            self._follow_ups.clear()

        # Batches cut short by an abort: only the messages that reached the session
        unfinished, self._open_batches = self._open_batches, []
        for batch in unfinished:
            for message_id in batch.ids:
                if message_id in batch.finished:
                    await self._queue.mark_processed(message_id)

    def _open_batch(self) -> _Batch:
        batch = _Batch()
        self._open_batches.append(batch)
        return batch

    async def _acknowledge_finished(self) -> None:
        done = [batch for batch in self._open_batches if batch.complete]
        for batch in done:
            self._open_batches.remove(batch)
        for batch in done:
            for message_id in batch.ids:
                await self._queue.mark_processed(message_id)

    def _add_sender(self, message: QueuedMessage) -> None:
        if message.sender_id:
            self._context.add_contributor(Contributor(id=message.sender_id, name=message.sender_name))

    # ============================================
    # Cancellation
    # ============================================

    async def request_abort(self, source: str) -> bool:
        """
        Abort the mission. Idempotent: only the first call has any effect.

        Returns:
            True if this call triggered the abort
        """
        if self._abort_source is not None:
            logger.info("Abort already requested", source=source, first_source=self._abort_source)
            return False

        self._abort_source = source
        logger.warning("Abort requested", source=source)
        self._watcher.stop()
        await self._interrupt()
        return True

    async def _on_abort_signal(self) -> None:
        await self.request_abort(ABORT_SOURCE_SIGNAL)

    async def _interrupt(self) -> None:
        """Cancel the running prompt, if any, and wait for it to unwind."""
        current = self._current
        if current is None:
            return

        if not current.task.done():
            await self._session.abort()
            current.task.cancel()
            await asyncio.wait({current.task})
        await self._reap()

    async def _cancel_drive(self) -> None:
        current, self._current = self._current, None
        if current is not None and not current.task.done():
            current.task.cancel()
            await asyncio.wait({current.task})

    # ============================================
    # Driving the session
    # ============================================

    async def _start_drive(self, text: str, batch: _Batch, message_ids: List[str]) -> None:
        await self._reap()
        self.prompts_run += 1
        task = asyncio.get_running_loop().create_task(self._drive(text))
        self._current = _Drive(task=task, batch=batch, message_ids=list(message_ids))
        # Let the prompt reach the session before anything can cancel it
        await asyncio.sleep(0)

    async def _wait_for_drive(self, timeout: Optional[float] = None) -> None:
        current = self._current
        if current is not None and not current.task.done():
            await asyncio.wait({current.task}, timeout=timeout)

    async def _reap(self) -> None:
        """Retire a finished prompt and acknowledge any batch it completed."""
        current = self._current
        if current is None or not current.task.done():
            return

        self._current = None
        self._raise_drive_failure(current.task)
        current.batch.finished.update(current.message_ids)
        await self._acknowledge_finished()

    @staticmethod
    def _raise_drive_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            raise error

    async def _drive(self, text: str) -> None:
        try:
            async for event in self._session.prompt(text):
                self._forward(event)
        except asyncio.CancelledError:
            self._close_message()
            logger.info("Prompt cancelled")
            raise

    def _forward(self, event: SessionEvent) -> None:
        """Translate a session event into Gateway events."""
        data = event.data

        if event.type is SessionEventType.MESSAGE_START:
            self._close_message()
            self._message_id = f"msg_{uuid.uuid4().hex[:16]}"
            self._message_content = ""
            self._message_sequence = 0
            self._reporter.report(MessageStart(message_id=self._message_id))

        elif event.type is SessionEventType.TEXT_DELTA:
            if self._message_id is None:
                return
            delta = data.get("text", "")
            self._message_content += delta
            self._reporter.report(
                MessageDelta(message_id=self._message_id, delta=delta, sequence=self._message_sequence)
            )
            self._message_sequence += 1

        elif event.type is SessionEventType.MESSAGE_END:
            self._close_message()

        elif event.type is SessionEventType.TOOL_EXECUTION_START:
            self._reporter.report(
                ToolStart(
                    tool_call_id=data["tool_call_id"],
                    tool_name=data["tool_name"],
                    input=data.get("args") or {},
                )
            )

        elif event.type is SessionEventType.TOOL_EXECUTION_UPDATE:
            self._reporter.report(ToolUpdate(tool_call_id=data["tool_call_id"], delta=data.get("text", "")))

        elif event.type is SessionEventType.TOOL_EXECUTION_END:
            self._reporter.report(
                ToolEnd(
                    tool_call_id=data["tool_call_id"],
                    output=data.get("output", ""),
                    is_error=bool(data.get("is_error", False)),
                )
            )

        elif event.type is SessionEventType.AUTO_COMPACTION_END:
            if data.get("summary"):
                self._reporter.report(SystemCompaction(summary=data["summary"]))

        elif event.type is SessionEventType.AGENT_END:
            self.input_tokens += data.get("input_tokens") or 0
            self.output_tokens += data.get("output_tokens") or 0

    def _close_message(self) -> None:
        if self._message_id is None:
            return
        self._reporter.report(MessageEnd(message_id=self._message_id, content=self._message_content))
        self._message_id = None
        self._message_content = ""
        self._message_sequence = 0
