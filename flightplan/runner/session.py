"""
Agent Session Boundary

The LLM agent loop is consumed as an opaque session: it accepts a prompt
and yields a finite stream of :class:`SessionEvent` ending when the agent
goes idle.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator

from .types import SessionEvent


class AgentSession(ABC):
    """Handle for running prompts against a workspace."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Resolved ``provider/model`` name reported in ``agent:start``."""
        pass

    @abstractmethod
    def prompt(self, text: str) -> AsyncIterator[SessionEvent]:
        """
        Run one prompt.

        The returned iterator is finite and terminates once the agent is
        idle. Cancelling the consuming task aborts the prompt.

        Raises:
            SessionError: unrecoverable failure of the session
        """
        pass

    @abstractmethod
    async def abort(self) -> None:
        """Request cancellation of the in-flight prompt, if any."""
        pass

    async def dispose(self) -> None:
        """Release resources. Called once when the mission ends."""
        return None
