"""
Abort Watcher

The Gateway cancels a running mission by creating a signal file inside the
sandbox. The file carries no payload; its existence is the signal. The
watcher polls for it, fires its callback exactly once, and deletes it.
"""

import asyncio
import inspect
import os
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from .config import DEFAULT_ABORT_FILE
from ..utils.logger import get_logger

logger = get_logger(__name__)

AbortCallback = Callable[[], Union[None, Awaitable[None]]]


class WatcherState(str, Enum):
    IDLE = "idle"
    WATCHING = "watching"
    TRIGGERED = "triggered"
    STOPPED = "stopped"


class AbortWatcher:
    """
    Polls ``path`` every ``interval`` seconds.

    States: idle -> watching -> (triggered | stopped). The check-and-set of
    the triggered state is synchronous, so a file recreated within the same
    poll window cannot fire the callback twice.
    """

    def __init__(self, path: str = DEFAULT_ABORT_FILE, interval: float = 1.0):
        self.path = path
        self.interval = interval
        self._state = WatcherState.IDLE
        self._on_abort: Optional[AbortCallback] = None
        self._task: Optional[asyncio.Task] = None
        self._aborted = False

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def was_aborted(self) -> bool:
        return self._aborted

    def start(self, on_abort: AbortCallback) -> None:
        """Begin polling. No-op while watching or once triggered."""
        if self._state in (WatcherState.WATCHING, WatcherState.TRIGGERED):
            logger.debug("Abort watcher already started", state=self._state.value)
            return

        self._on_abort = on_abort
        self._state = WatcherState.WATCHING
        self._task = asyncio.get_running_loop().create_task(self._poll())
        logger.info("Watching for abort signal", path=self.path, interval=self.interval)

    def stop(self) -> None:
        """Halt polling. Safe to call from any state, any number of times."""
        if self._state == WatcherState.WATCHING:
            self._state = WatcherState.STOPPED

        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def check(self) -> bool:
        """
        Run one poll step.

        Returns:
            True if this call detected the signal and fired the callback
        """
        if self._state != WatcherState.WATCHING:
            return False
        if not os.path.exists(self.path):
            return False

        self._state = WatcherState.TRIGGERED
        self._aborted = True
        logger.warning("Abort signal detected", path=self.path)

        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove abort signal file", path=self.path, error=str(e))

        self.stop()

        callback = self._on_abort
        if callback is not None:
            result = callback()
            if inspect.isawaitable(result):
                await result
        return True

    async def _poll(self) -> None:
        try:
            while self._state == WatcherState.WATCHING:
                if await self.check():
                    return
                await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.error("Abort callback failed", exc_info=True)


__all__ = ["AbortWatcher", "WatcherState", "AbortCallback"]
