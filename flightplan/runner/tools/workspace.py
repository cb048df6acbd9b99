"""
Workspace Tools

File and shell tools scoped to the mission workspace: bash, read_file,
write_file, edit_file and glob. Paths are relative to the workspace and may
not escape it.
"""

import asyncio
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .base import BaseTool, ToolResult, UpdateCallback
from ...utils.logger import get_logger

logger = get_logger(__name__)

MAX_OUTPUT_CHARS = 30000
MAX_GLOB_RESULTS = 500


def resolve_in_workspace(workspace: str, path: str) -> Path:
    """
    Resolve ``path`` against the workspace root.

    Raises:
        ValueError: the path points outside the workspace
    """
    root = Path(workspace).resolve()
    target = (root / path).resolve()
    if target != root and root not in target.parents:
        raise ValueError(f"Path is outside the workspace: {path}")
    return target


def _truncate(text: str) -> str:
    if len(text) <= MAX_OUTPUT_CHARS:
        return text
    dropped = len(text) - MAX_OUTPUT_CHARS
    return f"[...truncated {dropped} characters]\n" + text[-MAX_OUTPUT_CHARS:]


class WorkspaceTool(BaseTool):
    def __init__(self, workspace: str):
        self.workspace = workspace


class BashTool(WorkspaceTool):
    name = "bash"
    description = (
        "Execute a bash command in the workspace directory. Returns combined "
        "stdout and stderr. Use for running tests, builds, git and other CLI tools."
    )

    def __init__(self, workspace: str, default_timeout: float = 120.0):
        super().__init__(workspace)
        self.default_timeout = default_timeout

    def get_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "Bash command to execute"},
                "timeout": {"type": "number", "description": "Timeout in seconds (default: 120)"},
            },
            "required": ["command"],
        }

    async def execute(
        self,
        on_update: Optional[UpdateCallback] = None,
        command: str = "",
        timeout: Optional[float] = None,
        **_: Any,
    ) -> ToolResult:
        if not command.strip():
            return ToolResult.error("command must not be empty")

        process = await asyncio.create_subprocess_exec(
            "bash",
            "-c",
            command,
            cwd=self.workspace,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )

        chunks = []

        async def _read_output() -> None:
            while True:
                line = await process.stdout.readline()
                if not line:
                    break
                text = line.decode("utf-8", "replace")
                chunks.append(text)
                if on_update:
                    on_update(text)

        try:
            await asyncio.wait_for(_read_output(), timeout=timeout or self.default_timeout)
            returncode = await process.wait()
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            output = _truncate("".join(chunks))
            return ToolResult.error(f"{output}\n[Command timed out after {timeout or self.default_timeout}s]")
        except asyncio.CancelledError:
            process.kill()
            raise

        output = _truncate("".join(chunks)) or "(no output)"
        if returncode != 0:
            return ToolResult(
                output=f"{output}\n[Exit code {returncode}]",
                is_error=True,
                details={"exit_code": returncode},
            )
        return ToolResult(output=output, details={"exit_code": 0})


class ReadFileTool(WorkspaceTool):
    name = "read_file"
    description = "Read a text file from the workspace, optionally a range of lines."

    def get_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path to the file to read (relative to workspace)"},
                "offset": {"type": "integer", "description": "Line number to start reading from (1-indexed)"},
                "limit": {"type": "integer", "description": "Maximum number of lines to read"},
            },
            "required": ["path"],
        }

    async def execute(
        self,
        on_update: Optional[UpdateCallback] = None,
        path: str = "",
        offset: Optional[int] = None,
        limit: Optional[int] = None,
        **_: Any,
    ) -> ToolResult:
        target = resolve_in_workspace(self.workspace, path)
        if not target.is_file():
            return ToolResult.error(f"File not found: {path}")

        lines = target.read_text(encoding="utf-8", errors="replace").splitlines(keepends=True)
        start = max((offset or 1) - 1, 0)
        end = start + limit if limit else len(lines)
        return ToolResult(output=_truncate("".join(lines[start:end])), details={"lines": len(lines)})


class WriteFileTool(WorkspaceTool):
    name = "write_file"
    description = "Write content to a file in the workspace, creating parent directories as needed."

    def get_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path to the file to write (relative to workspace)"},
                "content": {"type": "string", "description": "Content to write to the file"},
            },
            "required": ["path", "content"],
        }

    async def execute(
        self,
        on_update: Optional[UpdateCallback] = None,
        path: str = "",
        content: str = "",
        **_: Any,
    ) -> ToolResult:
        target = resolve_in_workspace(self.workspace, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        return ToolResult(output=f"Wrote {len(content)} characters to {path}")


class EditFileTool(WorkspaceTool):
    name = "edit_file"
    description = (
        "Replace an exact span of text in a workspace file. The old text must "
        "appear exactly once."
    )

    def get_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path to the file to edit (relative to workspace)"},
                "old_text": {"type": "string", "description": "Exact text to find and replace (must match exactly)"},
                "new_text": {"type": "string", "description": "New text to replace the old text with"},
            },
            "required": ["path", "old_text", "new_text"],
        }

    async def execute(
        self,
        on_update: Optional[UpdateCallback] = None,
        path: str = "",
        old_text: str = "",
        new_text: str = "",
        **_: Any,
    ) -> ToolResult:
        target = resolve_in_workspace(self.workspace, path)
        if not target.is_file():
            return ToolResult.error(f"File not found: {path}")

        original = target.read_text(encoding="utf-8")
        occurrences = original.count(old_text) if old_text else 0
        if occurrences == 0:
            return ToolResult.error(f"Text not found in {path}")
        if occurrences > 1:
            return ToolResult.error(f"Text appears {occurrences} times in {path}; provide more context")

        target.write_text(original.replace(old_text, new_text, 1), encoding="utf-8")
        return ToolResult(output=f"Edited {path}")


class GlobTool(WorkspaceTool):
    name = "glob"
    description = "Find workspace files matching a glob pattern."

    def get_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "pattern": {
                    "type": "string",
                    "description": "Glob pattern to match (e.g., '**/*.py', 'src/**/*.ts')",
                },
            },
            "required": ["pattern"],
        }

    async def execute(
        self,
        on_update: Optional[UpdateCallback] = None,
        pattern: str = "",
        **_: Any,
    ) -> ToolResult:
        root = Path(self.workspace).resolve()
        matches = sorted(
            os.path.relpath(p, root)
            for p in root.glob(pattern)
            if p.is_file() and ".git" not in p.relative_to(root).parts
        )
        if not matches:
            return ToolResult(output="No files found")

        shown = matches[:MAX_GLOB_RESULTS]
        output = "\n".join(shown)
        if len(matches) > MAX_GLOB_RESULTS:
            output += f"\n[...{len(matches) - MAX_GLOB_RESULTS} more files]"
        return ToolResult(output=output, details={"count": len(matches)})
