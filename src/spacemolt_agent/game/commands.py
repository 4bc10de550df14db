"""
Command classification for the two endpoint families.

Family A is the original v1 API: ``POST /api/v1/{command}``.
Family B is the v2 API: ``POST /api/v2/{base}[/{action}]``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

V2_COMMAND_PREFIX = "v2_"


class EndpointFamily(str, Enum):
    """Independently-versioned endpoint families, each with its own session."""

    A = "v1"
    B = "v2"


@dataclass(frozen=True)
class Route:
    """Resolved target of a command."""

    family: EndpointFamily
    path: str


def strip_v2_prefix(command: str) -> str:
    if command.startswith(V2_COMMAND_PREFIX):
        return command[len(V2_COMMAND_PREFIX):]
    return command


def resolve_route(
    command: str,
    payload: dict[str, Any] | None,
    direct_commands: frozenset[str],
    routed_commands: frozenset[str],
) -> Route:
    """Classify a command and build its path relative to the family base URL.

    Direct commands ignore any ``action`` in the payload. Routed commands only
    reach family B when ``payload["action"]`` is a string.
    """
    if command in direct_commands:
        return Route(EndpointFamily.B, strip_v2_prefix(command))

    if command in routed_commands and payload is not None:
        action = payload.get("action")
        if isinstance(action, str):
            return Route(EndpointFamily.B, f"{command}/{action}")

    return Route(EndpointFamily.A, command)
