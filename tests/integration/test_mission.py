"""
Integration tests: coordinator, reporter, queue client and abort watcher
against an in-process Gateway.
"""

import asyncio

import pytest

from flightplan.errors import GitError
from flightplan.runner.abort_watcher import AbortWatcher
from flightplan.runner.config import RunnerConfig
from flightplan.runner.context import Contributor, MissionContext
from flightplan.runner.coordinator import Coordinator
from flightplan.runner.github import GitHubClient
from flightplan.runner.mission import run_mission
from flightplan.runner.queue_client import QueueClient
from flightplan.runner.reporter import EventReporter
from flightplan.runner.session import AgentSession
from flightplan.runner.types import SessionEvent, SessionEventType


class ScriptedSession(AgentSession):
    """Replies with the prompt's first line, one word per delta."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.prompts = []

    @property
    def model(self) -> str:
        return "anthropic/scripted"

    async def prompt(self, text):
        self.prompts.append(text)
        yield SessionEvent(SessionEventType.AGENT_START)
        yield SessionEvent(SessionEventType.MESSAGE_START)
        for word in text.splitlines()[0].split(" "):
            await asyncio.sleep(self.delay)
            yield SessionEvent(SessionEventType.TEXT_DELTA, {"text": word + " "})
        yield SessionEvent(SessionEventType.MESSAGE_END)
        yield SessionEvent(SessionEventType.AGENT_END, {"input_tokens": 7, "output_tokens": 3})

    async def abort(self):
        pass


@pytest.fixture
def context(gateway):
    return MissionContext(gateway.mission_id, Contributor(id="user-1", name="Ada", email="ada@example.com"))


def build(session, gateway_config, transport, context, tmp_path, **kwargs):
    reporter = EventReporter(transport, gateway_config, retry_delay=0.05, poll_interval=0.01)
    coordinator = Coordinator(
        session=session,
        reporter=reporter,
        queue=QueueClient(transport, gateway_config),
        watcher=AbortWatcher(str(tmp_path / "abort"), interval=0.02),
        context=context,
        poll_interval=0.01,
        drain_timeout=5,
        **kwargs,
    )
    return coordinator, reporter


@pytest.mark.asyncio
async def test_full_mission(gateway, gateway_config, transport, context, tmp_path, make_message):
    """Test initial prompt, follow-ups and acknowledgments end to end"""
    gateway.batches.append([make_message("q1", "also add tests")])
    gateway.batches.append([make_message("q2", "rename the module", sender="user-3")])
    session = ScriptedSession()
    coordinator, reporter = build(session, gateway_config, transport, context, tmp_path, initial_prompt="Add a cart page")

    await coordinator.run()

    assert session.prompts == [
        "[Ada]: Add a cart page\n\n[Name user-2]: also add tests",
        "[Name user-3]: rename the module",
    ]
    assert gateway.acks == [
        ("q1", "delivered"),
        ("q1", "processed"),
        ("q2", "delivered"),
        ("q2", "processed"),
    ]

    types = gateway.event_types()
    assert types[0] == "agent:start"
    assert types[-1] == "agent:end"
    assert types.count("message:start") == 2
    assert types.count("message:end") == 2
    assert gateway.events[-1]["usage"] == {"inputTokens": 14, "outputTokens": 6}
    assert gateway.bad_signatures == 0
    assert reporter.is_idle


@pytest.mark.asyncio
async def test_events_survive_gateway_errors(gateway, gateway_config, transport, context, tmp_path):
    """Test event order holds while the Gateway intermittently fails"""
    gateway.fail_events = 3
    session = ScriptedSession()
    coordinator, _ = build(session, gateway_config, transport, context, tmp_path, initial_prompt="one two three four")

    await coordinator.run()

    deltas = [e for e in gateway.events if e["type"] == "message:delta"]
    assert "".join(e["delta"] for e in deltas) == "[Ada]: one two three four "
    assert [e["sequence"] for e in deltas] == list(range(len(deltas)))
    assert gateway.event_types()[0] == "agent:start"
    assert gateway.event_types()[-1] == "agent:end"
    assert len({e["id"] for e in gateway.events}) == len(gateway.events)


@pytest.mark.asyncio
async def test_queue_outage_ends_quietly(gateway, gateway_config, transport, context, tmp_path):
    """Test an HTTP 500 from the queue is treated as nothing to do"""
    gateway.queue_status = 500
    session = ScriptedSession()
    coordinator, _ = build(session, gateway_config, transport, context, tmp_path, initial_prompt="hello")

    await coordinator.run()

    assert session.prompts == ["[Ada]: hello"]
    assert gateway.event_types()[-1] == "agent:end"


@pytest.mark.asyncio
async def test_abort_file_during_mission(gateway, gateway_config, transport, context, tmp_path, make_message):
    """Test the abort signal stops the mission and is reported"""
    gateway.batches.append([])
    gateway.batches.append([make_message("q1", "more work")])
    session = ScriptedSession(delay=0.5)
    coordinator, _ = build(session, gateway_config, transport, context, tmp_path, initial_prompt="a b c d e f g h")

    async def drop_signal():
        await asyncio.sleep(0.3)
        (tmp_path / "abort").write_text("")

    signal_task = asyncio.ensure_future(drop_signal())
    await asyncio.wait_for(coordinator.run(), timeout=5)
    await signal_task

    assert coordinator.abort_source == "signal"
    assert not (tmp_path / "abort").exists()
    assert gateway.events[-1]["type"] == "agent:end"
    assert gateway.events[-1]["aborted"] is True
    assert ("q1", "delivered") not in gateway.acks


@pytest.mark.asyncio
async def test_startup_failure_is_reported(gateway, gateway_config, tmp_path):
    """Test a workspace that cannot be prepared reports agent:error"""
    config = RunnerConfig(
        gateway=gateway_config,
        workspace=str(tmp_path),
        llm_api_key="sk-test",
        git_author_name="Ada",
        git_author_email="ada@example.com",
        branch_name="flightplan/cart",
        session_dir=str(tmp_path / "sessions"),
        drain_timeout=5,
    )

    with pytest.raises(GitError):
        await run_mission(
            config,
            session_factory=lambda *args: ScriptedSession(),
            github=GitHubClient("token", "acme", "shop"),
        )

    assert gateway.event_types() == ["agent:start", "agent:error"]
    assert "git config" in gateway.events[1]["error"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
