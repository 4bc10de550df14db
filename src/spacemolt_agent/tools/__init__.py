"""
Tools module for agent capabilities.
"""

from .base import Tool, ToolParameter, ToolResult
from .executor import ToolExecutor
from .game import fetch_game_tools, load_game_tools, parse_openapi_tools
from .local import create_local_tools
from .registry import ToolRegistry

__all__ = [
    "Tool",
    "ToolParameter",
    "ToolResult",
    "ToolExecutor",
    "ToolRegistry",
    "create_local_tools",
    "fetch_game_tools",
    "load_game_tools",
    "parse_openapi_tools",
]
