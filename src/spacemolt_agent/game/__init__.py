"""
Game API module - session-aware access to both endpoint families.
"""

from .client import SessionClient
from .commands import EndpointFamily, Route, resolve_route
from .exceptions import GameClientError, GameConnectionError
from .responses import ApiError, GameResponse, GameSession, normalize_response

__all__ = [
    "SessionClient",
    "EndpointFamily",
    "Route",
    "resolve_route",
    "GameClientError",
    "GameConnectionError",
    "ApiError",
    "GameResponse",
    "GameSession",
    "normalize_response",
]
