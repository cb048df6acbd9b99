"""
GitHub REST Client

Async client for the handful of GitHub endpoints the PR tools need:
pull request creation, assignees and GitHub Actions runs, jobs and logs.
"""

from typing import Any, Dict, List, Optional

import aiohttp

from ..errors import GitHubError
from ..utils.logger import get_logger

logger = get_logger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"


class GitHubClient:
    """Token-authenticated GitHub API client for one repository."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        api_url: str = GITHUB_API_URL,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
    ):
        self.owner = owner
        self.repo = repo
        self.api_url = api_url.rstrip("/")
        self._token = token
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def _request(
        self,
        method: str,
        endpoint: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        raw: bool = False,
    ) -> Any:
        session = self._get_session()
        async with session.request(
            method,
            f"{self.api_url}{endpoint}",
            json=payload,
            params=params,
            headers=self._headers(),
        ) as resp:
            text = await resp.text()
            if resp.status >= 300:
                raise GitHubError(resp.status, text)
            if raw:
                return text
            return await resp.json(content_type=None)

    # ============================================
    # Pull Requests
    # ============================================

    async def create_pull_request(self, title: str, body: str, head: str, base: str) -> Dict[str, Any]:
        """
        Open a pull request.

        Returns:
            The GitHub pull request object (``number``, ``html_url``, ...)

        Raises:
            GitHubError: non-success response
        """
        pr = await self._request(
            "POST",
            f"{self.repo_path}/pulls",
            payload={"title": title, "body": body, "head": head, "base": base},
        )
        logger.info("Pull request created", number=pr.get("number"), url=pr.get("html_url"))
        return pr

    async def add_assignees(self, issue_number: int, assignees: List[str]) -> None:
        await self._request(
            "POST",
            f"{self.repo_path}/issues/{issue_number}/assignees",
            payload={"assignees": assignees},
        )

    # ============================================
    # GitHub Actions
    # ============================================

    async def list_workflow_runs(self, branch: str, per_page: int = 5) -> List[Dict[str, Any]]:
        data = await self._request(
            "GET",
            f"{self.repo_path}/actions/runs",
            params={"branch": branch, "per_page": per_page},
        )
        return data.get("workflow_runs", [])

    async def list_jobs(self, run_id: int) -> List[Dict[str, Any]]:
        data = await self._request("GET", f"{self.repo_path}/actions/runs/{run_id}/jobs")
        return data.get("jobs", [])

    async def get_job_logs(self, job_id: int) -> str:
        """
        Raw log text of a job.

        Raises:
            GitHubError: including 410 when the logs have expired
        """
        return await self._request("GET", f"{self.repo_path}/actions/jobs/{job_id}/logs", raw=True)

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
