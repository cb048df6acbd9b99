"""
Flightplan Runner Configuration

Loads configuration from environment variables and provides defaults.
The Gateway triple (URL, secret, mission id) is split out so the setup
process can use it without the full runner environment.
"""

import os
import uuid
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlparse

from ..errors import ConfigError


DEFAULT_ABORT_FILE = "/tmp/flightplan-abort"
DEFAULT_SESSION_ROOT = "/opt/flightplan/sessions"
DEFAULT_MODEL = "claude-sonnet-4.5"

# Friendly model names -> (provider, model id)
MODEL_MAP: Dict[str, Tuple[str, str]] = {
    "claude-sonnet-4.5": ("anthropic", "claude-sonnet-4-5"),
    "claude-opus-4.5": ("anthropic", "claude-opus-4-5"),
    "claude-sonnet-4": ("anthropic", "claude-sonnet-4"),
    "claude-opus-4": ("anthropic", "claude-opus-4-0"),
    "gpt-4o": ("openai", "gpt-4o"),
    "gpt-4.1": ("openai", "gpt-4.1"),
}


def resolve_model(model_name: str) -> Tuple[str, str]:
    """
    Resolve a model name to a ``(provider, model_id)`` pair.

    Accepts friendly names, ``provider/model`` strings, or a bare model id
    (assumed to be an Anthropic model).
    """
    if model_name in MODEL_MAP:
        return MODEL_MAP[model_name]
    if "/" in model_name:
        provider, model_id = model_name.split("/", 1)
        return provider, model_id
    return "anthropic", model_name


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return True


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


@dataclass
class GatewayConfig:
    """Connection details for every signed Gateway call."""

    gateway_url: str
    webhook_secret: str
    mission_id: str

    def __post_init__(self):
        self.gateway_url = self.gateway_url.rstrip("/")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "GatewayConfig":
        env = os.environ if env is None else env
        return cls(
            gateway_url=env.get("GATEWAY_URL", ""),
            webhook_secret=env.get("WEBHOOK_SECRET", ""),
            mission_id=env.get("MISSION_ID", ""),
        )

    @classmethod
    def from_env_optional(cls, env: Optional[Mapping[str, str]] = None) -> Optional["GatewayConfig"]:
        """Return a config only when all three variables are present."""
        config = cls.from_env(env)
        if config.gateway_url and config.webhook_secret and config.mission_id:
            return config
        return None

    def problems(self) -> List[str]:
        problems = []
        if not _is_http_url(self.gateway_url):
            problems.append("GATEWAY_URL must be an http(s) URL")
        if not self.webhook_secret:
            problems.append("WEBHOOK_SECRET is required")
        if not _is_uuid(self.mission_id):
            problems.append("MISSION_ID must be a UUID")
        return problems

    def validate(self) -> None:
        """Validate configuration (fail fast if invalid)."""
        problems = self.problems()
        if problems:
            raise ConfigError("Invalid gateway configuration", problems)

    def mission_url(self, *parts: str) -> str:
        """Build ``<gateway>/missions/<id>/<parts...>``."""
        return "/".join([self.gateway_url, "missions", self.mission_id, *parts])


@dataclass
class RunnerConfig:
    """Agent runner configuration"""

    gateway: GatewayConfig
    workspace: str
    llm_api_key: str
    model: str = DEFAULT_MODEL
    prompt: Optional[str] = None

    # Git attribution (mission creator is primary author)
    git_author_name: str = ""
    git_author_email: str = ""

    # GitHub PR creation
    github_username: str = ""
    github_token: str = ""
    repo_owner: str = ""
    repo_name: str = ""
    branch_name: str = ""
    base_branch: str = "main"
    pr_assignee: Optional[str] = None

    # Prompt sender (co-author tracking)
    prompt_sender_id: str = ""
    prompt_sender_name: str = ""
    prompt_sender_email: str = ""

    # Coordination
    abort_file: str = DEFAULT_ABORT_FILE
    abort_poll_interval: float = 1.0
    session_dir: Optional[str] = None
    drain_timeout: Optional[float] = 120.0

    # LLM
    max_tokens: int = 8192

    # Debugging
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.session_dir:
            self.session_dir = os.path.join(DEFAULT_SESSION_ROOT, self.gateway.mission_id)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "RunnerConfig":
        """Load configuration from environment variables"""
        env = os.environ if env is None else env

        drain_timeout = env.get("DRAIN_TIMEOUT")
        return cls(
            gateway=GatewayConfig.from_env(env),
            workspace=env.get("WORKSPACE", ""),
            llm_api_key=env.get("LLM_API_KEY", ""),
            model=env.get("MODEL", DEFAULT_MODEL),
            prompt=env.get("PROMPT") or None,
            git_author_name=env.get("GIT_AUTHOR_NAME", ""),
            git_author_email=env.get("GIT_AUTHOR_EMAIL", ""),
            github_username=env.get("GITHUB_USERNAME", ""),
            github_token=env.get("GITHUB_TOKEN", ""),
            repo_owner=env.get("REPO_OWNER", ""),
            repo_name=env.get("REPO_NAME", ""),
            branch_name=env.get("BRANCH_NAME", ""),
            base_branch=env.get("BASE_BRANCH") or "main",
            pr_assignee=env.get("PR_ASSIGNEE") or None,
            prompt_sender_id=env.get("PROMPT_SENDER_ID", ""),
            prompt_sender_name=env.get("PROMPT_SENDER_NAME", ""),
            prompt_sender_email=env.get("PROMPT_SENDER_EMAIL", ""),
            abort_file=env.get("ABORT_FILE", DEFAULT_ABORT_FILE),
            abort_poll_interval=float(env.get("ABORT_POLL_INTERVAL", "1.0")),
            session_dir=env.get("SESSION_DIR") or None,
            drain_timeout=float(drain_timeout) if drain_timeout else 120.0,
            max_tokens=int(env.get("MAX_TOKENS", "8192")),
            log_level=env.get("FLIGHTPLAN_LOG_LEVEL", "INFO"),
        )

    @property
    def provider(self) -> str:
        return resolve_model(self.model)[0]

    @property
    def model_id(self) -> str:
        return resolve_model(self.model)[1]

    @property
    def authenticated_repo_url(self) -> str:
        return (
            f"https://{self.github_username}:{self.github_token}"
            f"@github.com/{self.repo_owner}/{self.repo_name}.git"
        )

    def validate(self) -> None:
        """Validate configuration on startup (fail fast if invalid)"""
        problems = self.gateway.problems()

        required = {
            "WORKSPACE": self.workspace,
            "LLM_API_KEY": self.llm_api_key,
            "MODEL": self.model,
            "GIT_AUTHOR_NAME": self.git_author_name,
            "GIT_AUTHOR_EMAIL": self.git_author_email,
            "GITHUB_USERNAME": self.github_username,
            "GITHUB_TOKEN": self.github_token,
            "REPO_OWNER": self.repo_owner,
            "REPO_NAME": self.repo_name,
            "BRANCH_NAME": self.branch_name,
            "PROMPT_SENDER_ID": self.prompt_sender_id,
            "PROMPT_SENDER_NAME": self.prompt_sender_name,
        }
        for name, value in required.items():
            if not value:
                problems.append(f"{name} is required")

        for name, value in (
            ("GIT_AUTHOR_EMAIL", self.git_author_email),
            ("PROMPT_SENDER_EMAIL", self.prompt_sender_email),
        ):
            if value and "@" not in value:
                problems.append(f"{name} must be an email address")

        if self.abort_poll_interval <= 0 or self.abort_poll_interval > 2:
            problems.append("ABORT_POLL_INTERVAL must be in (0, 2] seconds")

        if self.max_tokens < 1:
            problems.append("MAX_TOKENS must be at least 1")

        if problems:
            raise ConfigError("Invalid runner configuration", problems)
