"""
Flightplan Runner Type Definitions

Gateway events (agent -> Gateway), queued messages (Gateway -> agent) and
the session events produced by the agent runtime.

Event Architecture:
    SessionEvent: emitted by the agent session while a prompt runs
    AgentEvent:   immutable payload reported to the Gateway
    StampedEvent: AgentEvent + id/timestamp/missionId, assigned at enqueue
"""

import re
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ============================================
# Enums
# ============================================


class EventType(str, Enum):
    """Kinds of events reported to the Gateway."""

    AGENT_START = "agent:start"
    AGENT_END = "agent:end"
    AGENT_ERROR = "agent:error"
    MESSAGE_START = "message:start"
    MESSAGE_DELTA = "message:delta"
    MESSAGE_END = "message:end"
    TOOL_START = "tool:start"
    TOOL_UPDATE = "tool:update"
    TOOL_END = "tool:end"
    SYSTEM_COMPACTION = "system:compaction"
    PR_CREATED = "pr:created"
    PR_STATUS = "pr:status"
    SETUP_STATUS = "setup:status"


class Behavior(str, Enum):
    """How a queued message interacts with in-flight work."""

    STEER = "steer"
    FOLLOW_UP = "followUp"
    ABORT = "abort"


class AckStatus(str, Enum):
    """Acknowledgment states of a queued message."""

    DELIVERED = "delivered"
    PROCESSED = "processed"


class PrStatusAction(str, Enum):
    PUSHED = "pushed"
    UPDATED = "updated"
    READY_FOR_REVIEW = "ready_for_review"
    CHANGES_REQUESTED = "changes_requested"
    CI_FIX = "ci_fix"
    CONFLICT_RESOLVED = "conflict_resolved"


# ============================================
# Gateway Events
# ============================================


@dataclass(frozen=True)
class AgentEvent:
    """Base event payload. Subclasses set ``type``."""

    type: ClassVar[EventType]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.value}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, Enum):
                value = value.value
            data[_camel(f.name)] = value
        return data


@dataclass(frozen=True)
class AgentStart(AgentEvent):
    type: ClassVar[EventType] = EventType.AGENT_START
    model: str


@dataclass(frozen=True)
class AgentEnd(AgentEvent):
    type: ClassVar[EventType] = EventType.AGENT_END
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    aborted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.value}
        if self.input_tokens is not None or self.output_tokens is not None:
            data["usage"] = {
                "inputTokens": self.input_tokens or 0,
                "outputTokens": self.output_tokens or 0,
            }
        if self.aborted:
            data["aborted"] = True
        return data


@dataclass(frozen=True)
class AgentError(AgentEvent):
    type: ClassVar[EventType] = EventType.AGENT_ERROR
    error: str


@dataclass(frozen=True)
class MessageStart(AgentEvent):
    type: ClassVar[EventType] = EventType.MESSAGE_START
    message_id: str
    role: str = "assistant"


@dataclass(frozen=True)
class MessageDelta(AgentEvent):
    type: ClassVar[EventType] = EventType.MESSAGE_DELTA
    message_id: str
    delta: str
    sequence: int


@dataclass(frozen=True)
class MessageEnd(AgentEvent):
    type: ClassVar[EventType] = EventType.MESSAGE_END
    message_id: str
    content: str


@dataclass(frozen=True)
class ToolStart(AgentEvent):
    type: ClassVar[EventType] = EventType.TOOL_START
    tool_call_id: str
    tool_name: str
    input: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolUpdate(AgentEvent):
    type: ClassVar[EventType] = EventType.TOOL_UPDATE
    tool_call_id: str
    delta: str


@dataclass(frozen=True)
class ToolEnd(AgentEvent):
    type: ClassVar[EventType] = EventType.TOOL_END
    tool_call_id: str
    output: str
    is_error: bool = False


@dataclass(frozen=True)
class SystemCompaction(AgentEvent):
    type: ClassVar[EventType] = EventType.SYSTEM_COMPACTION
    summary: str


@dataclass(frozen=True)
class PrCreated(AgentEvent):
    type: ClassVar[EventType] = EventType.PR_CREATED
    pr_number: int
    pr_url: str


@dataclass(frozen=True)
class PrStatus(AgentEvent):
    type: ClassVar[EventType] = EventType.PR_STATUS
    action: PrStatusAction
    message: str
    pr_number: Optional[int] = None
    pr_url: Optional[str] = None


@dataclass(frozen=True)
class SetupStatusEvent(AgentEvent):
    """Setup progress mirrored to the Gateway by the setup process."""

    type: ClassVar[EventType] = EventType.SETUP_STATUS
    status: str
    step: Optional[str] = None
    error: Optional[str] = None
    services: Optional[List[Dict[str, Any]]] = None
    dev_server: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class StampedEvent:
    """An event as owned by the reporter queue: payload plus delivery stamp."""

    event: AgentEvent
    event_id: str
    mission_id: str
    timestamp: str

    @property
    def type(self) -> EventType:
        return self.event.type

    def to_dict(self) -> Dict[str, Any]:
        data = self.event.to_dict()
        data["id"] = self.event_id
        data["missionId"] = self.mission_id
        data["timestamp"] = self.timestamp
        return data


# ============================================
# Queue Messages
# ============================================


@dataclass(frozen=True)
class QueuedMessage:
    """A unit of work supplied by the Gateway queue."""

    id: str
    text: str
    behavior: Behavior
    sender_id: str
    sender_name: str
    created_at: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueuedMessage":
        """
        Build from the Gateway's camelCase JSON.

        Raises:
            KeyError, ValueError: on a malformed message
        """
        values = {_snake(key): value for key, value in data.items()}
        return cls(
            id=str(values["id"]),
            text=str(values["text"]),
            behavior=Behavior(values.get("behavior", Behavior.FOLLOW_UP.value)),
            sender_id=str(values.get("sender_id", "")),
            sender_name=str(values.get("sender_name", "")),
            created_at=str(values.get("created_at", "")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "behavior": self.behavior.value,
            "senderId": self.sender_id,
            "senderName": self.sender_name,
            "createdAt": self.created_at,
        }


# ============================================
# Session Events
# ============================================


class SessionEventType(str, Enum):
    """Events emitted by an agent session while a prompt runs."""

    AGENT_START = "agent_start"
    AGENT_END = "agent_end"
    MESSAGE_START = "message_start"
    TEXT_DELTA = "text_delta"
    MESSAGE_END = "message_end"
    TOOL_EXECUTION_START = "tool_execution_start"
    TOOL_EXECUTION_UPDATE = "tool_execution_update"
    TOOL_EXECUTION_END = "tool_execution_end"
    AUTO_COMPACTION_END = "auto_compaction_end"


@dataclass(frozen=True)
class SessionEvent:
    """
    Lightweight session event.

    ``data`` keys by type:
        text_delta: text
        tool_execution_start: tool_call_id, tool_name, args
        tool_execution_update: tool_call_id, text
        tool_execution_end: tool_call_id, output, is_error
        auto_compaction_end: summary
        agent_end: input_tokens, output_tokens
    """

    type: SessionEventType
    data: Dict[str, Any] = field(default_factory=dict)
