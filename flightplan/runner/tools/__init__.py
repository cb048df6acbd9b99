"""
Agent tools: workspace file/shell tools plus the GitHub PR workflow.
"""

from typing import Optional

from .base import BaseTool, ToolRegistry, ToolResult, UpdateCallback
from .ci_logs import GetCiLogsTool, extract_relevant_logs
from .pr import CreatePrTool
from .pr_status import PrStatusTool
from .workspace import (
    BashTool,
    EditFileTool,
    GlobTool,
    ReadFileTool,
    WriteFileTool,
    resolve_in_workspace,
)
from ..config import RunnerConfig
from ..context import MissionContext
from ..github import GitHubClient
from ..reporter import EventReporter


def create_tools(
    config: RunnerConfig,
    context: MissionContext,
    reporter: EventReporter,
    github: GitHubClient,
    remote_url: Optional[str] = None,
) -> ToolRegistry:
    """Build the tool registry for one mission."""
    workspace = config.workspace
    return ToolRegistry(
        [
            BashTool(workspace),
            ReadFileTool(workspace),
            WriteFileTool(workspace),
            EditFileTool(workspace),
            GlobTool(workspace),
            CreatePrTool(config, context, reporter, github, remote_url=remote_url),
            PrStatusTool(context, reporter),
            GetCiLogsTool(github, config.branch_name),
        ]
    )


__all__ = [
    "BaseTool",
    "ToolRegistry",
    "ToolResult",
    "UpdateCallback",
    "BashTool",
    "ReadFileTool",
    "WriteFileTool",
    "EditFileTool",
    "GlobTool",
    "CreatePrTool",
    "PrStatusTool",
    "GetCiLogsTool",
    "extract_relevant_logs",
    "resolve_in_workspace",
    "create_tools",
]
