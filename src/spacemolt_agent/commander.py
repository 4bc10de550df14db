"""
Commander - the outer loop around agent turns.

Sets up the game client, tools and conversation, then repeats turns until
cancelled: pause, poll for pending game events, nudge the model to continue,
refresh the system prompt. On shutdown it writes a session handoff note.
"""

import asyncio
import json
import os
import signal
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from .agent import Agent, CancelToken, CompactionState, ConversationContext, SessionStore, TurnCancelled
from .agent.session import Credentials
from .config import Settings, get_settings
from .game import SessionClient
from .llm import BaseLLM, create_llm
from .notifications import format_notifications, log_notifications
from .tools import ToolExecutor, ToolRegistry, create_local_tools, load_game_tools

logger = structlog.get_logger()

CONTINUE_PROMPT = (
    "Continue your mission. Take the next action using tools. Do NOT ask for "
    "information you already have; check the system prompt for your credentials "
    "and TODO list."
)


def build_system_prompt(
    prompt_md: str,
    instruction: str,
    credentials: str,
    todo: str,
    server_info: str = "",
) -> str:
    """Assemble the system prompt from mission, game knowledge and local state."""
    parts = [
        "You are an autonomous AI agent playing SpaceMolt, a text-based space MMO.",
        f"\n## Your Mission\n{instruction}",
        f"\n## Game Knowledge\n{prompt_md}",
        f"\n## Your Credentials\n{credentials}",
    ]

    if server_info:
        parts.append(f"\n## Current Game State\n{server_info}")

    parts.append(f"\n## Your TODO List\n{todo or '(empty)'}")
    parts.append("""
## Rules
- You are FULLY AUTONOMOUS. Never ask the human for input. All information you need is in this prompt.
- Use tools to interact with the game. Every action is a tool call.
- After registering, IMMEDIATELY save credentials with save_credentials. The password cannot be recovered!
- Keep your TODO list updated with update_todo to track your goals and progress.
- Use the status_log tool to show status messages to the human watching.
- Query tools (get_status, get_cargo, get_system, get_poi, get_nearby, get_ship, get_skills) are unlimited. Use them often to stay informed.
- Game actions (mine, travel, buy, sell, attack, etc.) are rate-limited to 1 per tick (10 seconds). The server handles waiting.
- Always check fuel before traveling and cargo space before mining.
- Write captain's log entries (captains_log_add) for important events and goals. These persist across sessions.
- If you die, you respawn at your home base. Resume your mission.
""")
    return "\n".join(parts)


def describe_credentials(credentials: Credentials | None, include_password: bool) -> str:
    if credentials is None:
        return (
            "New player. You need to register first. Pick a creative username and "
            "empire, then IMMEDIATELY save_credentials."
        )
    lines = [f"- Username: {credentials.username}"]
    if include_password:
        lines.append(f"- Password: {credentials.password}")
    lines += [
        f"- Empire: {credentials.empire}",
        f"- Player ID: {credentials.player_id}",
        "",
    ]
    if include_password:
        lines.append(
            "You are already registered. Call the login tool with the username and "
            "password above if the server asks you to log in."
        )
    else:
        lines.append("You are logged in.")
    return "\n".join(lines)


def build_nudge(events: list[Any]) -> str:
    """Continuation message so the model always has a user turn to answer."""
    parts = []
    formatted = format_notifications(events)
    if formatted:
        parts.append(f"## Events Since Last Action\n{formatted}\n")
    parts.append(CONTINUE_PROMPT)
    return "\n".join(parts)


async def fetch_initial_server_info(client: SessionClient) -> str:
    """Ship status and release notes for the first system prompt."""
    parts = []

    status = await client.execute("get_status")
    if status.ok and status.result:
        parts.append(
            "### Ship Status (from server)\n```json\n"
            + json.dumps(status.result, indent=2, default=str)
            + "\n```"
        )

    version = await client.execute("get_version")
    if version.ok and isinstance(version.result, dict):
        info = version.result
        notes = info.get("release_notes")
        notes_text = "\n".join(f"  - {n}" for n in notes) if isinstance(notes, list) else ""
        section = (
            f"### Game Version\nVersion: {info.get('version', 'unknown')} "
            f"({info.get('release_date', '')})"
        )
        if notes_text:
            section += f"\nRelease Notes:\n{notes_text}"
        parts.append(section)

    return "\n\n".join(parts)


class Commander:
    """Runs one named game session until cancelled."""

    def __init__(
        self,
        instruction: str,
        session_name: str = "default",
        settings: Settings | None = None,
        model_string: str | None = None,
        llm: BaseLLM | None = None,
        client: SessionClient | None = None,
        store: SessionStore | None = None,
        cancel: CancelToken | None = None,
    ):
        self.settings = settings or get_settings()
        self.instruction = instruction
        self.llm = llm or create_llm(settings=self.settings, model_string=model_string)
        self.client = client or SessionClient(settings=self.settings)
        self.store = store or SessionStore(session_name, self.settings.sessions_path)
        self.cancel = cancel or CancelToken()
        self.compaction = CompactionState()
        self.server_info = ""
        self.prompt_md = ""

    def load_prompt_file(self) -> str:
        path = Path(self.settings.prompt_file)
        try:
            return path.read_text(encoding="utf-8")
        except OSError:
            logger.warning("Game knowledge file not found", path=str(path))
            return "(no game knowledge file provided)"

    def refresh_system_prompt(self, context: ConversationContext, include_password: bool) -> None:
        credentials = self.store.load_credentials()
        context.system_prompt = build_system_prompt(
            self.prompt_md,
            self.instruction,
            describe_credentials(credentials, include_password),
            self.store.load_todo(),
            self.server_info,
        )

    async def setup(self) -> tuple[Agent, ToolExecutor, ConversationContext]:
        self.prompt_md = self.load_prompt_file()

        credentials = self.store.load_credentials()
        if credentials:
            logger.info("Found credentials", username=credentials.username, empire=credentials.empire)
            self.client.set_credentials(credentials.username, credentials.password)
        else:
            logger.info("No credentials found, agent will need to register")

        remote_tools = await load_game_tools(
            self.client.base_url,
            self.client.v2_base_url,
            self.client.direct_commands,
        )
        registry = ToolRegistry(create_local_tools(self.store))
        executor = ToolExecutor(self.client, registry, remote_tools)
        logger.info(
            "Tools loaded",
            remote=len(remote_tools),
            local=len(registry.list_tools()),
        )

        if credentials:
            self.server_info = await fetch_initial_server_info(self.client)

        agent = Agent(executor=executor, llm=self.llm, settings=self.settings)
        context = ConversationContext()
        context.add_user_message(f"Begin your mission: {self.instruction}")
        self.refresh_system_prompt(context, include_password=True)
        return agent, executor, context

    async def run(self) -> None:
        agent, executor, context = await self.setup()
        logger.info("Agent loop starting")

        try:
            while not self.cancel.cancelled:
                try:
                    result = await agent.run_turn(context, self.compaction, self.cancel)
                    logger.debug("Turn finished", rounds=result.rounds, reason=result.stopped_reason)
                except Exception as e:
                    if self.cancel.cancelled:
                        break
                    logger.error("Turn error", error=str(e))

                if self.cancel.cancelled:
                    break

                try:
                    await self.cancel.sleep(self.settings.turn_interval_seconds)
                    events = await self._poll_events(executor)
                except TurnCancelled:
                    break

                context.add_user_message(build_nudge(events))

                # A player who just registered gets logged in on the next session
                credentials = self.store.load_credentials()
                if credentials and not self.server_info:
                    self.client.set_credentials(credentials.username, credentials.password)
                    self.server_info = await fetch_initial_server_info(self.client)
                self.refresh_system_prompt(context, include_password=False)
        finally:
            await self.shutdown(agent, context)

    async def _poll_events(self, executor: ToolExecutor) -> list[Any]:
        """Events buffered from tool calls plus anything pending on the server."""
        events = executor.drain_notifications()
        poll = await self.cancel.run(self.client.execute("get_status"))
        if poll.notifications:
            log_notifications(poll.notifications)
            events.extend(poll.notifications)
        return events

    async def shutdown(self, agent: Agent, context: ConversationContext) -> None:
        logger.info("Generating session handoff")
        handoff = await agent.generate_handoff(context, self.compaction)
        if not handoff:
            logger.info("No handoff generated")
        else:
            logger.info("Handoff note", note=handoff)

            saved = await self.client.execute(
                "captains_log_add", {"entry": f"[Session Handoff] {handoff}"}
            )
            if saved.ok:
                logger.info("Handoff saved to captain's log")
            else:
                logger.error("Failed to save handoff to captain's log", error=saved.error.message)

            stamp = datetime.now(timezone.utc).isoformat()
            existing = self.store.load_todo()
            self.store.save_todo(f"## Session Handoff ({stamp})\n{handoff}\n\n---\n{existing}")
            logger.info("Handoff prepended to TODO")

        await self.client.close()
        logger.info("Agent stopped")


async def run_commander(commander: Commander) -> None:
    """Run a commander with Ctrl+C wired to graceful cancellation."""
    loop = asyncio.get_running_loop()
    interrupts = 0

    def on_sigint() -> None:
        nonlocal interrupts
        interrupts += 1
        if interrupts > 1:
            logger.warning("Force quit")
            os._exit(1)
        logger.info("Shutting down gracefully (press Ctrl+C again to force quit)")
        commander.cancel.cancel()

    try:
        loop.add_signal_handler(signal.SIGINT, on_sigint)
    except NotImplementedError:
        # Signal handlers are unavailable on Windows event loops
        logger.debug("SIGINT handler not installed")

    await commander.run()
