"""
Local tools - bookkeeping that never touches the network.

- save_credentials: persist login details right after registering
- update_todo / read_todo: the agent's own goal list
- status_log: a status line for the human watching
"""

import structlog

from ..agent.session import Credentials, SessionStore
from .base import Tool, ToolParameter, ToolResult

logger = structlog.get_logger()

STATUS_CATEGORIES = [
    "mining",
    "travel",
    "combat",
    "trade",
    "chat",
    "info",
    "craft",
    "faction",
    "mission",
    "setup",
]


def create_local_tools(store: SessionStore) -> list[Tool]:
    """Create the local tools bound to a session store."""

    async def save_credentials_handler(
        username: str,
        password: str,
        empire: str = "",
        player_id: str = "",
    ) -> ToolResult:
        credentials = Credentials(
            username=str(username),
            password=str(password),
            empire=str(empire),
            player_id=str(player_id),
        )
        store.save_credentials(credentials)
        logger.info("Credentials saved", username=credentials.username)
        return ToolResult(
            success=True,
            output=f"Credentials saved successfully for {credentials.username}.",
        )

    async def update_todo_handler(content: str) -> ToolResult:
        store.save_todo(str(content))
        logger.info("TODO list updated")
        return ToolResult(success=True, output="TODO list updated.")

    async def read_todo_handler() -> ToolResult:
        return ToolResult(success=True, output=store.load_todo() or "(empty TODO list)")

    async def status_log_handler(category: str, message: str) -> ToolResult:
        logger.info("Status", category=category, message=message)
        return ToolResult(success=True, output="Logged.")

    return [
        Tool(
            name="save_credentials",
            description="Save your login credentials locally. Do this IMMEDIATELY after registering!",
            parameters=[
                ToolParameter(name="username", param_type="string", description="Your username"),
                ToolParameter(name="password", param_type="string", description="Your password (256-bit hex)"),
                ToolParameter(name="empire", param_type="string", description="Your empire"),
                ToolParameter(name="player_id", param_type="string", description="Your player ID"),
            ],
            handler=save_credentials_handler,
        ),
        Tool(
            name="update_todo",
            description="Update your local TODO list to track goals and progress.",
            parameters=[
                ToolParameter(
                    name="content",
                    param_type="string",
                    description="Full TODO list content (replaces existing)",
                ),
            ],
            handler=update_todo_handler,
        ),
        Tool(
            name="read_todo",
            description="Read your current TODO list.",
            parameters=[],
            handler=read_todo_handler,
        ),
        Tool(
            name="status_log",
            description="Log a status message visible to the human watching.",
            parameters=[
                ToolParameter(
                    name="category",
                    param_type="string",
                    description="Message category",
                    enum=STATUS_CATEGORIES,
                ),
                ToolParameter(name="message", param_type="string", description="Status message"),
            ],
            handler=status_log_handler,
        ),
    ]
