"""
Git helpers

Thin async wrappers around the ``git`` CLI running in the workspace.
Arguments are passed as a list, never through a shell.
"""

import asyncio
from typing import List

from ..errors import GitError
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _redact(args: List[str]) -> str:
    # Authenticated remotes embed the token
    return " ".join("<remote>" if "@github.com" in a else a for a in args)


async def run_git(cwd: str, *args: str, check: bool = True) -> str:
    """
    Run ``git <args>`` in ``cwd`` and return stdout.

    Raises:
        GitError: non-zero exit status when ``check`` is true
    """
    process = await asyncio.create_subprocess_exec(
        "git",
        *args,
        cwd=cwd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    if check and process.returncode != 0:
        raise GitError(_redact(list(args)), process.returncode, stderr.decode("utf-8", "replace"))
    return stdout.decode("utf-8", "replace")


async def has_uncommitted_changes(cwd: str) -> bool:
    status = await run_git(cwd, "status", "--porcelain")
    return bool(status.strip())


async def changed_files(cwd: str) -> List[str]:
    output = await run_git(cwd, "diff", "--name-only", "HEAD", check=False)
    return [line for line in output.splitlines() if line]


async def configure_identity(cwd: str, name: str, email: str) -> None:
    await run_git(cwd, "config", "user.name", name)
    await run_git(cwd, "config", "user.email", email)
    logger.info("Git identity configured", name=name, email=email)


async def pull_latest(cwd: str, remote_url: str, branch: str) -> bool:
    """
    Rebase the workspace onto the remote branch.

    Best effort: the branch may not exist on the remote yet.
    """
    try:
        await run_git(cwd, "pull", remote_url, branch, "--rebase", "--autostash")
    except GitError as e:
        logger.info("No remote changes pulled", branch=branch, reason=e.stderr.strip()[:200])
        return False
    logger.info("Pulled latest changes", branch=branch)
    return True


async def commit_all(cwd: str, message: str) -> None:
    await run_git(cwd, "add", "-A")
    await run_git(cwd, "commit", "-m", message)


async def push_branch(cwd: str, remote_url: str, branch: str, upstream: bool = True) -> None:
    args = ["push"]
    if upstream:
        args.append("-u")
    args.extend([remote_url, f"HEAD:{branch}"])
    await run_git(cwd, *args)

