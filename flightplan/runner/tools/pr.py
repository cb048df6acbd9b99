"""
create_pr Tool

Creates a pull request when the agent has completed its work. Uncommitted
changes are committed first with co-author trailers for everyone who sent
prompts since the last commit.
"""

import asyncio
from typing import Any, Dict, Optional

import aiohttp

from .base import BaseTool, ToolResult, UpdateCallback
from .. import git
from ..config import RunnerConfig
from ..context import MissionContext
from ..github import GitHubClient
from ..reporter import EventReporter
from ..types import PrCreated
from ...errors import GitError, GitHubError
from ...utils.logger import get_logger

logger = get_logger(__name__)


class CreatePrTool(BaseTool):
    name = "create_pr"
    description = (
        "Create a pull request on GitHub. Call this when you've reached a stopping "
        "point and want to open a PR for review. Do NOT call if a PR already exists - "
        "just push new commits instead. This will commit any uncommitted changes, "
        "push, and open a PR."
    )

    def __init__(
        self,
        config: RunnerConfig,
        context: MissionContext,
        reporter: EventReporter,
        github: GitHubClient,
        remote_url: Optional[str] = None,
    ):
        self._config = config
        self._context = context
        self._reporter = reporter
        self._github = github
        self._remote_url = remote_url or config.authenticated_repo_url

    def get_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "PR title"},
                "body": {"type": "string", "description": "PR description summarizing the changes"},
            },
            "required": ["title", "body"],
        }

    async def execute(
        self,
        on_update: Optional[UpdateCallback] = None,
        title: str = "",
        body: str = "",
        **_: Any,
    ) -> ToolResult:
        cwd = self._config.workspace
        branch = self._config.branch_name

        try:
            # 1. Commit any uncommitted changes with co-authors
            if await git.has_uncommitted_changes(cwd):
                files = await git.changed_files(cwd)
                await git.commit_all(cwd, self._context.commit_message(title))
                self._context.clear_contributors()
                logger.info("Committed changes", files=", ".join(files[:3]))

            # 2. Push with upstream tracking
            await git.push_branch(cwd, self._remote_url, branch)
            logger.info("Pushed branch", branch=branch)

            # 3. Open the PR
            pr = await self._github.create_pull_request(
                title=title,
                body=body,
                head=branch,
                base=self._config.base_branch,
            )
            info = self._context.record_pull_request(int(pr["number"]), pr["html_url"])

            # 4. Assignee failure does not fail the PR
            if self._config.pr_assignee:
                await self._assign(info.number, self._config.pr_assignee)

            self._reporter.report(PrCreated(pr_number=info.number, pr_url=info.url))

            return ToolResult(
                output=f"Successfully created PR #{info.number}: {info.url}",
                details={"pr_number": info.number, "pr_url": info.url},
            )

        except (GitError, GitHubError, aiohttp.ClientError, asyncio.TimeoutError, KeyError, ValueError) as e:
            logger.error("create_pr failed", error=str(e))
            return ToolResult.error(f"Error creating PR: {e}")

    async def _assign(self, number: int, assignee: str) -> None:
        try:
            await self._github.add_assignees(number, [assignee])
            logger.info("Assignee added", pr_number=number, assignee=assignee)
        except (GitHubError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Failed to add assignee", pr_number=number, assignee=assignee, error=str(e))
