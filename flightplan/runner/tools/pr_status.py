"""
pr_status Tool

Reports PR lifecycle updates (pushed, ready for review, CI fix, ...) to the
Gateway so the team can follow progress without reading the diff.
"""

from typing import Any, Dict, Optional

from .base import BaseTool, ToolResult, UpdateCallback
from ..context import MissionContext
from ..reporter import EventReporter
from ..types import PrStatus, PrStatusAction
from ...utils.logger import get_logger

logger = get_logger(__name__)


class PrStatusTool(BaseTool):
    name = "pr_status"
    description = (
        "Report PR status updates. Call this tool when:\n"
        '- You\'ve pushed new commits to the branch ("pushed")\n'
        '- You\'ve made significant changes to the PR ("updated")\n'
        '- The PR is ready for human review ("ready_for_review")\n'
        '- You\'re addressing review feedback ("changes_requested")\n'
        '- You\'re fixing CI/test failures ("ci_fix")\n'
        '- You\'ve resolved merge conflicts ("conflict_resolved")\n\n'
        "This helps team members track the PR's progress."
    )

    def __init__(self, context: MissionContext, reporter: EventReporter):
        self._context = context
        self._reporter = reporter

    def get_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": [a.value for a in PrStatusAction],
                    "description": "The type of status update",
                },
                "message": {
                    "type": "string",
                    "description": (
                        "A brief description of what changed "
                        "(e.g., 'Added unit tests for the new API endpoint')"
                    ),
                },
            },
            "required": ["action", "message"],
        }

    async def execute(
        self,
        on_update: Optional[UpdateCallback] = None,
        action: str = "",
        message: str = "",
        **_: Any,
    ) -> ToolResult:
        try:
            status_action = PrStatusAction(action)
        except ValueError:
            return ToolResult.error(f"Unknown action: {action}")

        pr = self._context.pull_request
        self._reporter.report(
            PrStatus(
                action=status_action,
                message=message,
                pr_number=pr.number if pr else None,
                pr_url=pr.url if pr else None,
            )
        )
        logger.info("PR status reported", action=status_action.value, message=message)

        return ToolResult(
            output=f"Status update recorded: {status_action.value} - {message}",
            details={"action": status_action.value, "message": message},
        )
