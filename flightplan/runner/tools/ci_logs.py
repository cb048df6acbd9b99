"""
get_ci_logs Tool

Fetches GitHub Actions logs for the mission branch so the agent can
diagnose test failures and build errors.
"""

import asyncio
import re
from typing import Any, Dict, List, Optional

import aiohttp

from .base import BaseTool, ToolResult, UpdateCallback
from ..github import GitHubClient
from ...errors import GitHubError
from ...utils.logger import get_logger

logger = get_logger(__name__)

ERROR_PATTERNS = [
    re.compile(r"error", re.IGNORECASE),
    re.compile(r"failed", re.IGNORECASE),
    re.compile(r"failure", re.IGNORECASE),
    re.compile(r"exception", re.IGNORECASE),
    re.compile(r"assert", re.IGNORECASE),
    re.compile(r"FAIL"),
    re.compile(r"ERR!"),
    re.compile(r"exit code [1-9]", re.IGNORECASE),
    re.compile(r"[✗✖×]"),
]

CONTEXT_BEFORE = 5
CONTEXT_AFTER = 10


def extract_relevant_logs(logs: str, max_lines: int = 200) -> str:
    """
    Keep error lines with surrounding context.

    Falls back to the last ``max_lines`` lines when nothing looks like an
    error.
    """
    lines = logs.split("\n")
    relevant: List[str] = []
    seen = set()

    i = 0
    while i < len(lines):
        if any(p.search(lines[i]) for p in ERROR_PATTERNS):
            start = max(0, i - CONTEXT_BEFORE)
            end = min(len(lines), i + CONTEXT_AFTER + 1)
            for j in range(start, end):
                if j not in seen:
                    seen.add(j)
                    relevant.append(lines[j])
            i = end
            continue
        i += 1

    if relevant:
        result = "\n".join(relevant[:max_lines])
        if len(relevant) > max_lines:
            result += f"\n\n[...truncated {len(relevant) - max_lines} more lines]"
        return result

    last = lines[-max_lines:]
    return f"[No obvious errors found, showing last {len(last)} lines]\n\n" + "\n".join(last)


class GetCiLogsTool(BaseTool):
    name = "get_ci_logs"
    description = (
        "Fetch CI/CD logs from GitHub Actions for the current branch. Use this to "
        "diagnose test failures, build errors, or other CI issues. Returns logs "
        "from failed jobs with relevant error context."
    )

    def __init__(self, github: GitHubClient, branch: str):
        self._github = github
        self._branch = branch

    def get_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "run_id": {
                    "type": "integer",
                    "description": (
                        "Specific workflow run ID to fetch logs for. If not provided, "
                        "fetches the most recent failed run."
                    ),
                },
            },
        }

    async def execute(
        self,
        on_update: Optional[UpdateCallback] = None,
        run_id: Optional[int] = None,
        **_: Any,
    ) -> ToolResult:
        try:
            return await self._collect(run_id)
        except (GitHubError, aiohttp.ClientError, asyncio.TimeoutError, KeyError) as e:
            logger.error("get_ci_logs failed", error=str(e))
            return ToolResult.error(f"Error fetching CI logs: {e}")

    async def _collect(self, run_id: Optional[int]) -> ToolResult:
        runs = await self._github.list_workflow_runs(self._branch)

        if run_id:
            target = next((r for r in runs if r["id"] == run_id), None)
            if target is None:
                return ToolResult.error(f"Workflow run #{run_id} not found for branch {self._branch}")
        else:
            target = next((r for r in runs if r.get("conclusion") == "failure"), None)
            if target is None:
                return self._no_failure_summary(runs)

        jobs = await self._github.list_jobs(target["id"])
        failed_jobs = [j for j in jobs if j.get("conclusion") == "failure"]
        if not failed_jobs:
            return ToolResult(
                output=(
                    f'Workflow run "{target["name"]}" is marked as failed but no individual '
                    f"job failures found.\nRun URL: {target['html_url']}"
                ),
                details={"run_url": target["html_url"]},
            )

        report = [
            "## CI Failure Report",
            f"**Workflow:** {target['name']}",
            f"**Branch:** {self._branch}",
            f"**Commit:** {target.get('head_sha', '')[:7]}",
            f"**URL:** {target['html_url']}",
            f"**Failed Jobs:** {len(failed_jobs)}\n",
        ]

        for job in failed_jobs:
            report.append("---")
            report.append(f"### Job: {job['name']}")
            report.append(f"**URL:** {job.get('html_url', '')}")

            failed_steps = [s["name"] for s in job.get("steps") or [] if s.get("conclusion") == "failure"]
            if failed_steps:
                report.append(f"**Failed Steps:** {', '.join(failed_steps)}")

            report.append("\n**Logs:**\n")
            report.append("```")
            report.append(await self._job_logs(job["id"]))
            report.append("```\n")

        return ToolResult(
            output="\n".join(report),
            details={
                "run_id": target["id"],
                "run_url": target["html_url"],
                "failed_job_count": len(failed_jobs),
            },
        )

    def _no_failure_summary(self, runs: List[Dict[str, Any]]) -> ToolResult:
        running = next((r for r in runs if r.get("status") == "in_progress"), None)
        if running:
            return ToolResult(
                output=(
                    "No failed CI runs found. There's a workflow currently running:\n"
                    f"- {running['name']} ({running['html_url']})"
                ),
                details={"status": "running", "run_url": running["html_url"]},
            )

        passed = next((r for r in runs if r.get("conclusion") == "success"), None)
        if passed:
            return ToolResult(
                output=(
                    "All CI checks are passing! Most recent successful run:\n"
                    f"- {passed['name']} ({passed['html_url']})"
                ),
                details={"status": "success", "run_url": passed["html_url"]},
            )

        return ToolResult(
            output=f"No workflow runs found for branch {self._branch}",
            details={"status": "no_runs"},
        )

    async def _job_logs(self, job_id: int) -> str:
        try:
            logs = await self._github.get_job_logs(job_id)
        except GitHubError as e:
            if e.status == 410:
                return "[Logs have expired or been deleted]"
            return f"[Error fetching logs: {e}]"
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return f"[Error fetching logs: {e}]"
        return extract_relevant_logs(logs)
