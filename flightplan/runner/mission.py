"""
Mission assembly

Wires configuration into the transport, reporter, queue client, abort
watcher, agent session and coordinator, and runs one mission.
"""

from typing import Callable, Optional

from . import git
from .abort_watcher import AbortWatcher
from .anthropic_session import AnthropicSession
from .config import RunnerConfig, resolve_model
from .context import Contributor, MissionContext
from .coordinator import Coordinator
from .github import GitHubClient
from .persistence import TranscriptStore
from .queue_client import QueueClient
from .reporter import EventReporter
from .session import AgentSession
from .system_prompt import build_system_prompt
from .tools import create_tools
from .transport import SignedTransport
from .types import AgentError, AgentStart
from ..errors import ConfigError
from ..utils.logger import get_logger

logger = get_logger(__name__)

SessionFactory = Callable[[RunnerConfig, MissionContext, EventReporter, GitHubClient], AgentSession]


def mission_creator(config: RunnerConfig) -> Contributor:
    """On the first run the prompt sender is the mission creator."""
    return Contributor(
        id=config.prompt_sender_id,
        name=config.git_author_name,
        email=config.git_author_email,
    )


def prompt_sender(config: RunnerConfig) -> Contributor:
    return Contributor(
        id=config.prompt_sender_id,
        name=config.prompt_sender_name,
        email=config.prompt_sender_email or None,
    )


async def prepare_workspace(config: RunnerConfig) -> None:
    """Configure git attribution and pull any externally pushed commits."""
    await git.configure_identity(config.workspace, config.git_author_name, config.git_author_email)
    await git.pull_latest(config.workspace, config.authenticated_repo_url, config.branch_name)


def build_session(
    config: RunnerConfig,
    context: MissionContext,
    reporter: EventReporter,
    github: GitHubClient,
) -> AgentSession:
    """
    Build the Anthropic-backed session for the mission.

    Raises:
        ConfigError: the model does not resolve to the anthropic provider
    """
    provider, model_id = resolve_model(config.model)
    if provider != "anthropic":
        raise ConfigError(
            "Unsupported model provider",
            [f"MODEL {config.model} resolves to provider '{provider}'; only 'anthropic' is available"],
        )

    return AnthropicSession(
        model_id=model_id,
        tools=create_tools(config, context, reporter, github),
        mission_id=config.gateway.mission_id,
        api_key=config.llm_api_key,
        store=TranscriptStore.for_directory(config.session_dir),
        system_prompt=build_system_prompt(config),
        max_tokens=config.max_tokens,
    )


async def run_mission(
    config: RunnerConfig,
    session_factory: Optional[SessionFactory] = None,
    github: Optional[GitHubClient] = None,
) -> Coordinator:
    """
    Run one mission to completion.

    Startup failures (workspace preparation, session construction) are
    reported as ``agent:start`` + ``agent:error`` and re-raised.
    """
    session_factory = session_factory or build_session
    transport = SignedTransport(config.gateway.webhook_secret)
    github = github or GitHubClient(config.github_token, config.repo_owner, config.repo_name)
    reporter = EventReporter(transport, config.gateway)
    context = MissionContext(config.gateway.mission_id, mission_creator(config))

    logger.info(
        "Starting mission",
        mission_id=config.gateway.mission_id,
        model=config.model,
        workspace=config.workspace,
    )

    try:
        try:
            await prepare_workspace(config)
            session = session_factory(config, context, reporter, github)
        except Exception as e:
            logger.error("Mission startup failed", exc_info=True)
            reporter.report(AgentStart(model=config.model))
            reporter.report(AgentError(error=str(e) or type(e).__name__))
            await reporter.drain(timeout=config.drain_timeout)
            raise

        coordinator = Coordinator(
            session=session,
            reporter=reporter,
            queue=QueueClient(transport, config.gateway),
            watcher=AbortWatcher(config.abort_file, config.abort_poll_interval),
            context=context,
            initial_prompt=config.prompt,
            initial_sender=prompt_sender(config),
            drain_timeout=config.drain_timeout,
        )
        await coordinator.run()
        return coordinator
    finally:
        await github.close()
        await transport.close()
