"""
Setup plan

What the setup process should provision, as a resolved JSON document. The
plan comes from ``FLIGHTPLAN_CONFIG`` (inline JSON) or from
``<workspace>/flightplan.json``; a workspace with neither gets an empty plan.

    {
      "services": [{"name": "postgres", "version": "16"}],
      "env": {"DATABASE_URL": "${POSTGRES_URL}"},
      "envFile": ".env.example",
      "setupCommands": ["npm ci", "npm run db:migrate"],
      "devServer": {"command": "npm run dev", "port": 3000, "timeout": 60}
    }

``env`` values may reference provisioned service URLs and secrets as
``${NAME}``.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from string import Template
from typing import Any, Dict, List, Mapping, Optional, Union

from ..errors import ConfigError

PLAN_FILE_NAME = "flightplan.json"


def _get(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key, so both camelCase and snake_case plans load."""
    for key in keys:
        if key in data:
            return data[key]
    return default


@dataclass
class ServiceSpec:
    name: str
    version: Optional[str] = None
    env_var: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Union[str, Dict[str, Any]]) -> "ServiceSpec":
        if isinstance(data, str):
            return cls(name=data)
        version = data.get("version")
        return cls(
            name=str(data["name"]),
            version=str(version) if version is not None else None,
            env_var=_get(data, "envVar", "env_var"),
        )


@dataclass
class DevServerSpec:
    command: str
    port: int
    timeout: float = 60.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DevServerSpec":
        return cls(
            command=str(data["command"]),
            port=int(data["port"]),
            timeout=float(data.get("timeout", 60)),
        )


@dataclass
class SetupPlan:
    services: List[ServiceSpec] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    env_file: Optional[str] = None
    setup_commands: List[str] = field(default_factory=list)
    dev_server: Optional[DevServerSpec] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SetupPlan":
        """
        Raises:
            ConfigError: the document does not describe a plan
        """
        if not isinstance(data, dict):
            raise ConfigError("Setup plan must be a JSON object")
        try:
            dev_server = _get(data, "devServer", "dev_server")
            return cls(
                services=[ServiceSpec.from_dict(s) for s in data.get("services") or []],
                env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
                env_file=_get(data, "envFile", "env_file"),
                setup_commands=[str(c) for c in _get(data, "setupCommands", "setup_commands", default=None) or []],
                dev_server=DevServerSpec.from_dict(dev_server) if dev_server else None,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ConfigError("Invalid setup plan", [str(e)]) from e

    @classmethod
    def load(cls, workspace: Union[str, Path], env: Optional[Mapping[str, str]] = None) -> "SetupPlan":
        """
        Load the plan for ``workspace``.

        Raises:
            ConfigError: the plan is present but unreadable
        """
        env = os.environ if env is None else env

        inline = env.get("FLIGHTPLAN_CONFIG")
        if inline:
            try:
                return cls.from_dict(json.loads(inline))
            except json.JSONDecodeError as e:
                raise ConfigError("FLIGHTPLAN_CONFIG is not valid JSON", [str(e)]) from e

        path = Path(workspace) / PLAN_FILE_NAME
        if not path.exists():
            return cls()
        try:
            return cls.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read {path}", [str(e)]) from e

    def resolve_env(self, context: Mapping[str, str]) -> Dict[str, str]:
        """Substitute ``${NAME}`` references; unknown names are left as-is."""
        return {key: Template(value).safe_substitute(context) for key, value in self.env.items()}


__all__ = ["PLAN_FILE_NAME", "ServiceSpec", "DevServerSpec", "SetupPlan"]
