"""
Remote game tools, loaded from the server's OpenAPI document.

Every POST operation of the v1 API becomes one tool whose parameters are the
operation's JSON request body schema. Direct v2 commands are added under
their ``v2_`` names so the model can reach the structured endpoints.
"""

from typing import Any

import httpx
import structlog

from ..game.commands import V2_COMMAND_PREFIX, strip_v2_prefix
from ..llm.base import ToolDefinition

logger = structlog.get_logger()

OPENAPI_PATH = "/openapi.json"
# Session bootstrap is handled by the client, never by the model
HIDDEN_COMMANDS = frozenset({"session"})
EMPTY_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


def _resolve_ref(schema: dict[str, Any], document: dict[str, Any]) -> dict[str, Any]:
    ref = schema.get("$ref")
    if not isinstance(ref, str) or not ref.startswith("#/"):
        return schema
    node: Any = document
    for part in ref[2:].split("/"):
        if not isinstance(node, dict):
            return EMPTY_SCHEMA
        node = node.get(part)
    return node if isinstance(node, dict) else EMPTY_SCHEMA


def parse_openapi_tools(document: dict[str, Any], prefix: str = "") -> list[ToolDefinition]:
    """Convert an OpenAPI document into tool definitions named ``prefix + segment``."""
    tools = []
    for path, operations in (document.get("paths") or {}).items():
        if not isinstance(operations, dict):
            continue
        operation = operations.get("post")
        if not isinstance(operation, dict):
            continue

        name = path.rstrip("/").rsplit("/", 1)[-1]
        if not name or name.startswith("{") or name in HIDDEN_COMMANDS:
            continue

        schema = (
            operation.get("requestBody", {})
            .get("content", {})
            .get("application/json", {})
            .get("schema")
        )
        parameters = _resolve_ref(schema, document) if isinstance(schema, dict) else EMPTY_SCHEMA
        if parameters.get("type") != "object":
            parameters = {**EMPTY_SCHEMA, **parameters, "type": "object"}

        tools.append(ToolDefinition(
            name=prefix + name,
            description=operation.get("summary") or operation.get("description") or name,
            parameters=parameters,
        ))
    return tools


async def fetch_game_tools(
    base_url: str,
    http_client: httpx.AsyncClient | None = None,
    prefix: str = "",
) -> list[ToolDefinition]:
    """Fetch remote tool schemas; an unreachable document yields no tools."""
    url = base_url.rstrip("/") + OPENAPI_PATH
    try:
        if http_client is not None:
            response = await http_client.get(url, timeout=30.0)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.get(url, timeout=30.0)
        response.raise_for_status()
        document = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Could not load game tools", url=url, error=str(e))
        return []

    tools = parse_openapi_tools(document if isinstance(document, dict) else {}, prefix)
    logger.info("Game tools loaded", url=url, count=len(tools))
    return tools


def direct_command_tools(commands: frozenset[str], known: set[str]) -> list[ToolDefinition]:
    """Parameterless definitions for direct v2 commands the server did not describe."""
    return [
        ToolDefinition(
            name=command,
            description=f"Structured {strip_v2_prefix(command).replace('_', ' ')} query (v2 API)",
            parameters=dict(EMPTY_SCHEMA),
        )
        for command in sorted(commands - known)
    ]


async def load_game_tools(
    base_url: str,
    v2_base_url: str,
    direct_commands: frozenset[str],
    http_client: httpx.AsyncClient | None = None,
) -> list[ToolDefinition]:
    """All remote tools: the v1 API plus every direct v2 command.

    Direct v2 commands take their schema from the v2 OpenAPI document when it
    describes them.
    """
    tools = await fetch_game_tools(base_url, http_client)
    if not direct_commands:
        return tools

    described = await fetch_game_tools(v2_base_url, http_client, prefix=V2_COMMAND_PREFIX)
    v2_tools = [t for t in described if t.name in direct_commands]
    v2_tools += direct_command_tools(direct_commands, {t.name for t in v2_tools})
    return tools + v2_tools
