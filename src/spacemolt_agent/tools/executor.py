"""
Tool executor - the boundary between the turn loop and the outside world.

Local tools run in-process. Everything else is dispatched through the
``SessionClient``; oversized results are truncated and notifications are
routed to a side channel instead of the result text.
"""

import json
from typing import Any, Callable

import structlog

from ..game.client import SessionClient
from ..llm.base import ToolDefinition
from ..notifications import log_notifications
from .registry import ToolRegistry

logger = structlog.get_logger()

MAX_RESULT_CHARS = 4000
REDACTED_KEYS = frozenset({"password", "token", "secret", "api_key"})


def truncate_result(text: str, limit: int = MAX_RESULT_CHARS) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}\n\n... (truncated, {len(text)} chars total)"


def format_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    if result is None:
        return "OK"
    return json.dumps(result, indent=2, default=str)


def redact_arguments(arguments: dict[str, Any]) -> dict[str, Any]:
    return {k: ("XXX" if k in REDACTED_KEYS else v) for k, v in arguments.items()}


class ToolExecutor:
    """Resolves tool calls to local handlers or remote game commands.

    Always returns text. Failures come back as results starting with
    ``Error`` so the model can react to them.
    """

    def __init__(
        self,
        client: SessionClient,
        registry: ToolRegistry | None = None,
        remote_tools: list[ToolDefinition] | None = None,
        on_notifications: Callable[[list[Any]], None] | None = None,
    ):
        self.client = client
        self.registry = registry or ToolRegistry()
        self.remote_tools = list(remote_tools or [])
        self.on_notifications = on_notifications or log_notifications
        self._pending_notifications: list[Any] = []

    def definitions(self) -> list[ToolDefinition]:
        """Local definitions first; remote tools shadowed by a local name are dropped."""
        local = self.registry.get_definitions()
        local_names = {d.name for d in local}
        return local + [t for t in self.remote_tools if t.name not in local_names]

    def drain_notifications(self) -> list[Any]:
        """Return and clear notifications received since the last drain."""
        pending, self._pending_notifications = self._pending_notifications, []
        return pending

    async def execute(self, name: str, arguments: dict[str, Any] | None = None) -> str:
        arguments = arguments or {}
        logger.info("Executing tool", tool=name, arguments=redact_arguments(arguments))

        if self.registry.get(name) is not None:
            result = await self.registry.execute(name, arguments)
            return result.output if result.success else f"Error: {result.error}"

        try:
            response = await self.client.execute(name, arguments or None)
        except Exception as e:
            logger.error("Remote tool failed", tool=name, error=str(e))
            return f"Error executing {name}: {e}"

        if response.notifications:
            logger.debug("Received notifications", count=len(response.notifications))
            self._pending_notifications.extend(response.notifications)
            self.on_notifications(response.notifications)

        if response.error is not None:
            return f"Error: [{response.error.code}] {response.error.message}"

        return truncate_result(format_result(response.result))
