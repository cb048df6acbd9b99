"""
Unit tests for agent tools
"""

import shutil
import subprocess

import pytest

from flightplan.errors import GitHubError
from flightplan.runner.config import GatewayConfig, RunnerConfig
from flightplan.runner.context import Contributor, MissionContext
from flightplan.runner.tools import (
    BashTool,
    CreatePrTool,
    EditFileTool,
    GetCiLogsTool,
    GlobTool,
    PrStatusTool,
    ReadFileTool,
    ToolRegistry,
    WriteFileTool,
    extract_relevant_logs,
    resolve_in_workspace,
)
from flightplan.runner.types import EventType, PrStatusAction

MISSION_ID = "4f1c2b7e-9a55-4c1e-8d3b-2f6a0c9e7d11"


class RecordingReporter:
    def __init__(self):
        self.events = []

    def report(self, event):
        self.events.append(event)
        return event


class FakeGitHub:
    def __init__(self, runs=None, jobs=None, logs=None):
        self.runs = runs or []
        self.jobs = jobs or {}
        self.logs = logs or {}
        self.pull_requests = []
        self.assignees = []

    async def list_workflow_runs(self, branch, per_page=5):
        return self.runs

    async def list_jobs(self, run_id):
        return self.jobs.get(run_id, [])

    async def get_job_logs(self, job_id):
        logs = self.logs[job_id]
        if isinstance(logs, Exception):
            raise logs
        return logs

    async def create_pull_request(self, title, body, head, base):
        self.pull_requests.append({"title": title, "body": body, "head": head, "base": base})
        return {"number": 7, "html_url": "https://github.com/acme/shop/pull/7"}

    async def add_assignees(self, number, assignees):
        raise GitHubError(422, "not a collaborator")


@pytest.fixture
def context():
    return MissionContext(MISSION_ID, Contributor(id="user-1", name="Ada", email="ada@example.com"))


# ============================================
# Workspace tools
# ============================================


def test_resolve_in_workspace(tmp_path):
    """Test paths may not escape the workspace"""
    assert resolve_in_workspace(str(tmp_path), "src/app.py") == (tmp_path / "src" / "app.py").resolve()
    with pytest.raises(ValueError):
        resolve_in_workspace(str(tmp_path), "../etc/passwd")


@pytest.mark.asyncio
async def test_write_read_edit(tmp_path):
    """Test file tools round the workspace"""
    workspace = str(tmp_path)

    result = await WriteFileTool(workspace).execute(path="src/app.py", content="a = 1\nb = 2\nc = 3\n")
    assert not result.is_error
    assert (tmp_path / "src" / "app.py").exists()

    result = await ReadFileTool(workspace).execute(path="src/app.py", offset=2, limit=1)
    assert result.output == "b = 2\n"

    result = await EditFileTool(workspace).execute(path="src/app.py", old_text="b = 2", new_text="b = 20")
    assert not result.is_error
    assert (tmp_path / "src" / "app.py").read_text() == "a = 1\nb = 20\nc = 3\n"


@pytest.mark.asyncio
async def test_edit_requires_unique_match(tmp_path):
    """Test edit_file refuses missing or ambiguous text"""
    (tmp_path / "f.txt").write_text("x\nx\n")
    tool = EditFileTool(str(tmp_path))

    ambiguous = await tool.execute(path="f.txt", old_text="x", new_text="y")
    missing = await tool.execute(path="f.txt", old_text="z", new_text="y")

    assert ambiguous.is_error and "2 times" in ambiguous.output
    assert missing.is_error
    assert (await ReadFileTool(str(tmp_path)).execute(path="nope.txt")).is_error


@pytest.mark.asyncio
async def test_glob_skips_git(tmp_path):
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "config").write_text("")
    (tmp_path / "a.py").write_text("")
    (tmp_path / "pkg").mkdir()
    (tmp_path / "pkg" / "b.py").write_text("")

    result = await GlobTool(str(tmp_path)).execute(pattern="**/*")

    assert result.output.splitlines() == ["a.py", "pkg/b.py"]
    assert (await GlobTool(str(tmp_path)).execute(pattern="*.rs")).output == "No files found"


@pytest.mark.asyncio
async def test_bash_streams_output(tmp_path):
    """Test bash output, updates and exit codes"""
    updates = []
    tool = BashTool(str(tmp_path))

    result = await tool.execute(on_update=updates.append, command="echo one; echo two")
    assert result.output == "one\ntwo\n"
    assert updates == ["one\n", "two\n"]

    failed = await tool.execute(command="echo oops >&2; exit 3")
    assert failed.is_error
    assert "oops" in failed.output
    assert "[Exit code 3]" in failed.output


@pytest.mark.asyncio
async def test_bash_timeout(tmp_path):
    result = await BashTool(str(tmp_path)).execute(command="sleep 5", timeout=0.2)

    assert result.is_error
    assert "timed out" in result.output


@pytest.mark.asyncio
async def test_registry_unknown_tool(tmp_path):
    registry = ToolRegistry([GlobTool(str(tmp_path))])

    assert registry.list_tools() == ["glob"]
    assert registry.get_all_tools()[0]["input_schema"]["required"] == ["pattern"]
    with pytest.raises(ValueError):
        await registry.execute_tool("nope", {})


# ============================================
# PR tools
# ============================================


@pytest.mark.asyncio
async def test_pr_status_reports_event(context):
    """Test pr_status reports the action with the recorded PR"""
    reporter = RecordingReporter()
    context.record_pull_request(7, "https://github.com/acme/shop/pull/7")

    result = await PrStatusTool(context, reporter).execute(action="ci_fix", message="Fixed lint")

    assert result.output == "Status update recorded: ci_fix - Fixed lint"
    event = reporter.events[0]
    assert event.type is EventType.PR_STATUS
    assert event.action is PrStatusAction.CI_FIX
    assert event.to_dict()["prNumber"] == 7


@pytest.mark.asyncio
async def test_pr_status_rejects_unknown_action(context):
    reporter = RecordingReporter()

    result = await PrStatusTool(context, reporter).execute(action="merged", message="done")

    assert result.is_error
    assert reporter.events == []


def _git(cwd, *args):
    subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True)


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
@pytest.mark.asyncio
async def test_create_pr_commits_with_co_authors(tmp_path, context):
    """Test create_pr commits, pushes, opens the PR and reports it"""
    remote = tmp_path / "remote.git"
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    _git(tmp_path, "init", "--bare", str(remote))
    _git(workspace, "init")
    _git(workspace, "config", "user.name", "Ada")
    _git(workspace, "config", "user.email", "ada@example.com")
    (workspace / "README.md").write_text("shop\n")
    _git(workspace, "add", "-A")
    _git(workspace, "commit", "-m", "init")
    (workspace / "cart.py").write_text("CART = []\n")

    config = RunnerConfig(
        gateway=GatewayConfig("http://gateway", "secret", MISSION_ID),
        workspace=str(workspace),
        llm_api_key="sk",
        branch_name="flightplan/cart",
        pr_assignee="ada",
        session_dir=str(tmp_path / "sessions"),
    )
    context.add_contributor(Contributor(id="user-2", name="Grace", email="grace@example.com"))
    reporter = RecordingReporter()
    github = FakeGitHub()

    tool = CreatePrTool(config, context, reporter, github, remote_url=str(remote))
    result = await tool.execute(title="Add cart", body="Adds a cart")

    assert not result.is_error, result.output
    assert result.output == "Successfully created PR #7: https://github.com/acme/shop/pull/7"
    assert github.pull_requests == [
        {"title": "Add cart", "body": "Adds a cart", "head": "flightplan/cart", "base": "main"}
    ]
    assert context.pull_request.number == 7
    assert context.contributors == []
    assert reporter.events[0].type is EventType.PR_CREATED

    log = subprocess.run(
        ["git", "log", "-1", "--format=%B", "flightplan/cart"],
        cwd=remote,
        check=True,
        capture_output=True,
        text=True,
    ).stdout
    assert "Add cart" in log
    assert "Co-authored-by: Grace <grace@example.com>" in log


@pytest.mark.asyncio
async def test_create_pr_reports_git_failure(tmp_path, context):
    """Test a git failure becomes an error result"""
    config = RunnerConfig(
        gateway=GatewayConfig("http://gateway", "secret", MISSION_ID),
        workspace=str(tmp_path),
        llm_api_key="sk",
        branch_name="b",
        session_dir=str(tmp_path / "sessions"),
    )
    reporter = RecordingReporter()

    result = await CreatePrTool(config, context, reporter, FakeGitHub(), remote_url=str(tmp_path)).execute(
        title="t", body="b"
    )

    assert result.is_error
    assert result.output.startswith("Error creating PR:")
    assert reporter.events == []


# ============================================
# CI logs
# ============================================


def test_extract_relevant_logs_context():
    """Test error lines keep 5 lines before and 10 after"""
    lines = [f"line {i}" for i in range(40)]
    lines[20] = "ERROR: tests failed"

    extracted = extract_relevant_logs("\n".join(lines)).split("\n")

    assert extracted[0] == "line 15"
    assert "ERROR: tests failed" in extracted
    assert extracted[-1] == "line 30"


def test_extract_relevant_logs_fallback():
    """Test the last lines are shown when nothing looks like an error"""
    logs = "\n".join(f"ok {i}" for i in range(300))

    extracted = extract_relevant_logs(logs)

    assert extracted.startswith("[No obvious errors found, showing last 200 lines]")
    assert extracted.endswith("ok 299")


RUN = {
    "id": 11,
    "name": "CI",
    "status": "completed",
    "conclusion": "failure",
    "html_url": "https://github.com/acme/shop/actions/runs/11",
    "head_sha": "abcdef1234567",
}


@pytest.mark.asyncio
async def test_ci_logs_failure_report():
    """Test the failure report for the most recent failed run"""
    github = FakeGitHub(
        runs=[RUN],
        jobs={
            11: [
                {
                    "id": 21,
                    "name": "test",
                    "conclusion": "failure",
                    "html_url": "https://github.com/acme/shop/actions/runs/11/job/21",
                    "steps": [{"name": "pytest", "conclusion": "failure"}],
                },
                {"id": 22, "name": "lint", "conclusion": "success"},
            ]
        },
        logs={21: "setup\nFAILED tests/test_cart.py::test_total\nsummary"},
    )

    result = await GetCiLogsTool(github, "flightplan/cart").execute()

    assert not result.is_error
    assert result.output.startswith("## CI Failure Report")
    assert "**Commit:** abcdef1" in result.output
    assert "### Job: test" in result.output
    assert "**Failed Steps:** pytest" in result.output
    assert "FAILED tests/test_cart.py::test_total" in result.output
    assert "### Job: lint" not in result.output


@pytest.mark.asyncio
async def test_ci_logs_expired_logs():
    github = FakeGitHub(
        runs=[RUN],
        jobs={11: [{"id": 21, "name": "test", "conclusion": "failure"}]},
        logs={21: GitHubError(410, "gone")},
    )

    result = await GetCiLogsTool(github, "b").execute(run_id=11)

    assert "[Logs have expired or been deleted]" in result.output


@pytest.mark.asyncio
async def test_ci_logs_without_failures():
    """Test summaries when nothing failed"""
    passing = dict(RUN, conclusion="success")
    running = dict(RUN, id=12, status="in_progress", conclusion=None)

    assert "All CI checks are passing" in (await GetCiLogsTool(FakeGitHub(runs=[passing]), "b").execute()).output
    assert "currently running" in (await GetCiLogsTool(FakeGitHub(runs=[running, passing]), "b").execute()).output
    assert (await GetCiLogsTool(FakeGitHub(), "b").execute()).output == "No workflow runs found for branch b"

    missing = await GetCiLogsTool(FakeGitHub(runs=[passing]), "b").execute(run_id=99)
    assert missing.is_error


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
