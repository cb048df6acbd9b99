"""
Flightplan exception hierarchy.

Transport failures are not wrapped: callers see ``aiohttp.ClientError`` and
``asyncio.TimeoutError`` directly and apply their own retry policy.
"""

from typing import List, Optional


class FlightplanError(Exception):
    """Base class for all flightplan errors."""


class ConfigError(FlightplanError, ValueError):
    """Invalid or missing configuration."""

    def __init__(self, message: str, problems: Optional[List[str]] = None):
        self.problems = problems or []
        if self.problems:
            message = message + ":\n" + "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(message)


class SetupError(FlightplanError):
    """A setup step failed."""

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.step = step


class SessionError(FlightplanError):
    """Unrecoverable failure of the underlying agent session."""


class GitError(FlightplanError):
    """A git subprocess exited non-zero."""

    def __init__(self, command: str, returncode: int, stderr: str = ""):
        super().__init__(f"git {command} failed with code {returncode}: {stderr.strip()}")
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class GitHubError(FlightplanError):
    """GitHub API returned a non-success response."""

    def __init__(self, status: int, body: str):
        super().__init__(f"GitHub API error: {status} {body}")
        self.status = status
        self.body = body
