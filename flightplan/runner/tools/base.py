"""
Base classes and registry for agent tools.

Tools are described to the model in Anthropic format and executed by name
with the JSON arguments the model produced.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ...utils.logger import get_logger

logger = get_logger(__name__)

# Receives partial output while a tool runs
UpdateCallback = Callable[[str], None]


@dataclass
class ToolResult:
    """Outcome of a tool call as shown to the model."""

    output: str
    is_error: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def error(cls, message: str, **details: Any) -> "ToolResult":
        return cls(output=message, is_error=True, details={"error": message, **details})


class BaseTool(ABC):
    """Base class for all agent tools."""

    name: str = ""
    description: str = ""

    @abstractmethod
    def get_schema(self) -> Dict[str, Any]:
        """Get the tool's input schema in Anthropic format."""
        pass

    @abstractmethod
    async def execute(self, on_update: Optional[UpdateCallback] = None, **kwargs) -> ToolResult:
        """Execute the tool with given arguments."""
        pass

    def to_claude_tool(self) -> Dict[str, Any]:
        """Convert to Claude tool definition format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.get_schema(),
        }


class ToolRegistry:
    """
    Registry of the tools available to one session.

    Provides tool discovery, registration, and execution.
    """

    def __init__(self, tools: Optional[List[BaseTool]] = None):
        self._tools: Dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register_tool(tool)

    def register_tool(self, tool: BaseTool) -> None:
        """Register a tool instance."""
        self._tools[tool.name] = tool
        logger.debug("Registered tool", tool_name=tool.name)

    def get_tool(self, name: str) -> Optional[BaseTool]:
        """Get a tool by name."""
        return self._tools.get(name)

    def get_all_tools(self) -> List[Dict[str, Any]]:
        """Get all tool definitions in Claude format."""
        return [tool.to_claude_tool() for tool in self._tools.values()]

    async def execute_tool(
        self,
        name: str,
        arguments: Dict[str, Any],
        on_update: Optional[UpdateCallback] = None,
    ) -> ToolResult:
        """
        Execute a tool by name with given arguments.

        Raises:
            ValueError: unknown tool
        """
        tool = self._tools.get(name)
        if not tool:
            raise ValueError(f"Unknown tool: {name}")
        return await tool.execute(on_update=on_update, **arguments)

    def list_tools(self) -> List[str]:
        """List all registered tool names."""
        return list(self._tools.keys())
