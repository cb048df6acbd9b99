"""
Setup Status Store

The setup process publishes its progress as a JSON document inside the
workspace. Every write replaces the whole file atomically (temp file +
rename), so readers polling from other processes never observe a partial
document.

Lifecycle of the document:

    running (step updates ...) -> ready | failed

Once a terminal status has been written, the store refuses further writes.
"""

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..runner.types import utc_timestamp
from ..utils.logger import get_logger

logger = get_logger(__name__)

STATUS_FILE_NAME = ".flightplan-status.json"


class SetupState(str, Enum):
    RUNNING = "running"
    READY = "ready"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self is not SetupState.RUNNING


@dataclass
class ServiceInstance:
    """A provisioned dependency (database, cache, ...) confirmed reachable."""

    name: str
    url: str
    port: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "url": self.url, "port": self.port}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceInstance":
        return cls(name=str(data["name"]), url=str(data["url"]), port=int(data["port"]))


@dataclass
class DevServerInfo:
    port: int
    pid: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"port": self.port}
        if self.pid is not None:
            data["pid"] = self.pid
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DevServerInfo":
        pid = data.get("pid")
        return cls(port=int(data["port"]), pid=int(pid) if pid is not None else None)


@dataclass
class SetupStatus:
    """The status document. Serialized with camelCase keys."""

    status: SetupState = SetupState.RUNNING
    timestamp: str = field(default_factory=utc_timestamp)
    step: Optional[str] = None
    services: List[ServiceInstance] = field(default_factory=list)
    dev_server: Optional[DevServerInfo] = None
    env: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.status.terminal

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "status": self.status.value,
            "timestamp": self.timestamp,
            "services": [service.to_dict() for service in self.services],
            "env": dict(self.env),
        }
        if self.step is not None:
            data["step"] = self.step
        if self.dev_server is not None:
            data["devServer"] = self.dev_server.to_dict()
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SetupStatus":
        """
        Parse a status document.

        Raises:
            ValueError, KeyError, TypeError: the document is malformed
        """
        dev_server = data.get("devServer")
        return cls(
            status=SetupState(data["status"]),
            timestamp=str(data.get("timestamp", "")),
            step=data.get("step"),
            services=[ServiceInstance.from_dict(s) for s in data.get("services") or []],
            dev_server=DevServerInfo.from_dict(dev_server) if dev_server else None,
            env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
            error=data.get("error"),
        )


class StatusStore:
    """
    Atomic reader/writer for the status document.

    A single writer (the setup process) exists per mission. Any number of
    readers may poll :meth:`read` concurrently.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._terminal_written = False

    @classmethod
    def for_workspace(cls, workspace: Union[str, Path]) -> "StatusStore":
        return cls(Path(workspace) / STATUS_FILE_NAME)

    def write(self, status: SetupStatus) -> bool:
        """
        Replace the document with ``status``.

        Best effort: I/O failures are logged and swallowed. Writes after a
        terminal status are refused.

        Returns:
            True if the document was replaced
        """
        if self._terminal_written:
            logger.warning(
                "Refusing to overwrite terminal setup status",
                path=str(self.path),
                status=status.status.value,
            )
            return False

        tmp = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
        payload = json.dumps(status.to_dict(), indent=2) + "\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp, self.path)
        except OSError as e:
            logger.error("Failed to write setup status", path=str(self.path), error=str(e))
            try:
                tmp.unlink()
            except OSError:
                pass
            return False

        if status.terminal:
            self._terminal_written = True
        logger.debug("Setup status written", status=status.status.value, step=status.step)
        return True

    def read(self) -> Optional[SetupStatus]:
        """
        Return the current document, or None when it is absent or malformed.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Failed to read setup status", path=str(self.path), error=str(e))
            return None

        try:
            return SetupStatus.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.debug("Malformed setup status document", path=str(self.path), error=str(e))
            return None


__all__ = [
    "STATUS_FILE_NAME",
    "SetupState",
    "ServiceInstance",
    "DevServerInfo",
    "SetupStatus",
    "StatusStore",
]
