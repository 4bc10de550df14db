"""
Registry of the local tools available to one session.
"""

from typing import Any

import structlog

from ..llm.base import ToolDefinition
from .base import Tool, ToolResult

logger = structlog.get_logger()


class ToolRegistry:
    """Name-indexed local tools; handler failures come back as failed results."""

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Register a tool, replacing any tool with the same name."""
        self._tools[tool.name] = tool
        logger.debug("Tool registered", tool_name=tool.name)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        return list(self._tools)

    def get_definitions(self) -> list[ToolDefinition]:
        """Definitions in registration order."""
        return [tool.to_definition() for tool in self._tools.values()]

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        tool = self.get(name)
        if tool is None:
            return ToolResult(success=False, error=f"Unknown local tool: {name}")

        try:
            result = await tool.execute(**arguments)
        except Exception as e:
            logger.error("Local tool failed", tool_name=name, error=str(e))
            return ToolResult(success=False, error=str(e))

        logger.debug("Local tool executed", tool_name=name, success=result.success)
        return result
