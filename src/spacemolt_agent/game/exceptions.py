"""
Exception hierarchy for the game client.
"""


class GameClientError(Exception):
    """Base exception for game API operations."""

    pass


class GameConnectionError(GameClientError):
    """The server could not be reached after exhausting reconnect attempts."""

    pass
