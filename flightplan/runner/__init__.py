"""
Flightplan Runner - agent process

Core Components:
- SignedTransport: HMAC-signed HTTP calls to the Gateway
- EventReporter: ordered, retrying event delivery
- QueueClient: pull-based work queue with delivered/processed acks
- AbortWatcher: file-based cancellation signal
- Coordinator: drives the agent session from the queue
"""

from .abort_watcher import AbortWatcher, WatcherState
from .config import GatewayConfig, RunnerConfig, resolve_model
from .context import Contributor, MissionContext, PullRequestInfo
from .coordinator import Coordinator, format_prompt
from .queue_client import QueueClient
from .reporter import EventReporter
from .session import AgentSession
from .transport import GatewayResponse, SignedTransport, sign_payload, verify_signature
from .types import (
    AgentEvent,
    AckStatus,
    Behavior,
    EventType,
    QueuedMessage,
    SessionEvent,
    SessionEventType,
    StampedEvent,
)

__all__ = [
    "AbortWatcher",
    "WatcherState",
    "GatewayConfig",
    "RunnerConfig",
    "resolve_model",
    "Contributor",
    "MissionContext",
    "PullRequestInfo",
    "Coordinator",
    "format_prompt",
    "QueueClient",
    "EventReporter",
    "AgentSession",
    "GatewayResponse",
    "SignedTransport",
    "sign_payload",
    "verify_signature",
    "AgentEvent",
    "AckStatus",
    "Behavior",
    "EventType",
    "QueuedMessage",
    "SessionEvent",
    "SessionEventType",
    "StampedEvent",
]
