"""
Flightplan Runner

Coordination substrate for Flightplan missions running inside a sandbox:
event delivery to the Gateway, the Gateway work queue, out-of-band abort
signals, and the setup status handshake between the setup process and the
agent.
"""

__version__ = "0.4.0"

from .errors import (
    FlightplanError,
    ConfigError,
    SetupError,
    SessionError,
    GitError,
    GitHubError,
)

__all__ = [
    "FlightplanError",
    "ConfigError",
    "SetupError",
    "SessionError",
    "GitError",
    "GitHubError",
    "__version__",
]
