"""
Local tool types.

Local tools run in-process and never touch the network; remote game tools
are plain ``ToolDefinition``s dispatched through the game client.
"""

from dataclasses import dataclass
from typing import Any, Callable, Coroutine

from ..llm.base import ToolDefinition


@dataclass
class ToolResult:
    """Outcome of a local tool. ``error`` is set when ``success`` is False."""

    success: bool
    output: str = ""
    error: str | None = None


@dataclass
class ToolParameter:
    """One JSON-schema property of a local tool."""

    name: str
    param_type: str  # string, integer, boolean
    description: str
    required: bool = True
    enum: list[str] | None = None

    def to_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.param_type, "description": self.description}
        if self.enum:
            schema["enum"] = self.enum
        return schema


@dataclass
class Tool:
    """Local tool wrapping an async handler."""

    name: str
    description: str
    parameters: list[ToolParameter]
    handler: Callable[..., Coroutine[Any, Any, ToolResult]]

    def get_parameters_schema(self) -> dict[str, Any]:
        """JSON schema of the handler's keyword arguments."""
        return {
            "type": "object",
            "properties": {p.name: p.to_schema() for p in self.parameters},
            "required": [p.name for p in self.parameters if p.required],
        }

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.get_parameters_schema(),
        )

    async def execute(self, **kwargs: Any) -> ToolResult:
        return await self.handler(**kwargs)
