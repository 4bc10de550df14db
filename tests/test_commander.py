"""
Tests for the commander loop and prompt assembly.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from spacemolt_agent.agent.session import Credentials, SessionStore
from spacemolt_agent.commander import (
    CONTINUE_PROMPT,
    Commander,
    build_nudge,
    build_system_prompt,
    describe_credentials,
    fetch_initial_server_info,
)
from spacemolt_agent.config import Settings
from spacemolt_agent.game.responses import ApiError, GameResponse
from spacemolt_agent.llm.base import LLMResponse
from spacemolt_agent.notifications import format_notifications


@pytest.fixture
def settings(tmp_path):
    prompt = tmp_path / "PROMPT.md"
    prompt.write_text("Mining pays well in the asteroid belts.")
    return Settings(
        _env_file=None,
        sessions_dir=str(tmp_path / "sessions"),
        prompt_file=str(prompt),
        turn_interval_seconds=0.01,
    )


def make_client() -> MagicMock:
    client = MagicMock()
    client.base_url = "http://game.test/api/v1"
    client.v2_base_url = "http://game.test/api/v2"
    client.direct_commands = frozenset({"v2_get_ship"})
    client.execute = AsyncMock(return_value=GameResponse(result="OK"))
    client.close = AsyncMock()
    return client


def test_build_system_prompt():
    """Test the prompt carries mission, knowledge, credentials and TODO."""
    prompt = build_system_prompt(
        "Mining pays well.",
        "Become the richest trader",
        "- Username: miner",
        "",
        server_info="### Game Version\nVersion: 1.2",
    )

    assert "## Your Mission\nBecome the richest trader" in prompt
    assert "Mining pays well." in prompt
    assert "- Username: miner" in prompt
    assert "## Current Game State" in prompt
    assert "## Your TODO List\n(empty)" in prompt


def test_describe_credentials():
    """Test the password is only shown when requested."""
    creds = Credentials(username="miner", password="s3cret", empire="solarian", player_id="p1")

    with_password = describe_credentials(creds, include_password=True)
    without_password = describe_credentials(creds, include_password=False)

    assert "s3cret" in with_password
    assert "s3cret" not in without_password
    assert "You are logged in." in without_password
    assert "register" in describe_credentials(None, include_password=True)


def test_build_nudge():
    """Test pending events are listed before the continuation prompt."""
    nudge = build_nudge([{"type": "combat", "message": "Pirates attack!"}])

    assert nudge.startswith("## Events Since Last Action\n  > [combat] Pirates attack!")
    assert nudge.endswith(CONTINUE_PROMPT)
    assert build_nudge([]) == CONTINUE_PROMPT


def test_format_notifications():
    """Test event line rendering."""
    lines = format_notifications(["plain text", {"type": "trade", "content": "Sold ore"}, 42])

    assert lines == "  > plain text\n  > [trade] Sold ore"


def test_format_notifications_reads_data_payload():
    """Test the message is taken from the data payload, JSON-encoded or not."""
    lines = format_notifications([
        {"type": "combat", "data": '{"message": "Pirates attack!"}'},
        {"msg_type": "chat_message", "data": {"channel": "system", "sender": "miner", "content": "hi"}},
        {"type": "tip", "data": "Dock to refuel"},
        {"type": "trade", "data": {"credits": 5}},
    ])

    assert lines.split("\n") == [
        "  > [combat] Pirates attack!",
        "  > [chat_message] miner: hi",
        "  > [tip] Dock to refuel",
        '  > [trade] {"type": "trade", "data": {"credits": 5}}',
    ]


@pytest.mark.asyncio
async def test_fetch_initial_server_info():
    """Test status and version are rendered for the system prompt."""
    client = make_client()
    client.execute.side_effect = [
        GameResponse(result={"credits": 100}),
        GameResponse(result={"version": "1.2", "release_date": "2026-01-01", "release_notes": ["New ships"]}),
    ]

    info = await fetch_initial_server_info(client)

    assert '"credits": 100' in info
    assert "Version: 1.2 (2026-01-01)" in info
    assert "  - New ships" in info


@pytest.mark.asyncio
async def test_poll_events_merges_buffered_and_pending(settings):
    """Test buffered tool notifications come before freshly polled ones."""
    client = make_client()
    client.execute.return_value = GameResponse(notifications=[{"type": "tip", "message": "b"}])
    commander = Commander("mine", settings=settings, llm=MagicMock(), client=client)
    executor = MagicMock()
    executor.drain_notifications.return_value = [{"type": "combat", "message": "a"}]

    events = await commander._poll_events(executor)

    assert [e["message"] for e in events] == ["a", "b"]
    client.execute.assert_awaited_once_with("get_status")


@pytest.mark.asyncio
async def test_shutdown_writes_handoff(settings):
    """Test the handoff goes to the captain's log and the TODO list."""
    client = make_client()
    store = SessionStore("default", settings.sessions_path)
    store.save_todo("- buy freighter")
    commander = Commander("mine", settings=settings, llm=MagicMock(), client=client, store=store)
    agent = MagicMock()
    agent.generate_handoff = AsyncMock(return_value="- Docked at Sol")

    await commander.shutdown(agent, MagicMock())

    client.execute.assert_awaited_once_with(
        "captains_log_add", {"entry": "[Session Handoff] - Docked at Sol"}
    )
    todo = store.load_todo()
    assert todo.startswith("## Session Handoff (")
    assert "- Docked at Sol\n\n---\n- buy freighter" in todo
    client.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_shutdown_without_handoff(settings):
    """Test nothing is written when no handoff was produced."""
    client = make_client()
    commander = Commander("mine", settings=settings, llm=MagicMock(), client=client)
    agent = MagicMock()
    agent.generate_handoff = AsyncMock(return_value="")

    await commander.shutdown(agent, MagicMock())

    client.execute.assert_not_called()
    assert commander.store.load_todo() == ""
    client.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_shutdown_handoff_log_failure(settings):
    """Test a rejected captain's log entry still updates the TODO list."""
    client = make_client()
    client.execute.return_value = GameResponse(error=ApiError(code="not_authenticated"))
    commander = Commander("mine", settings=settings, llm=MagicMock(), client=client)
    agent = MagicMock()
    agent.generate_handoff = AsyncMock(return_value="- Lost in space")

    await commander.shutdown(agent, MagicMock())

    assert "- Lost in space" in commander.store.load_todo()


@pytest.mark.asyncio
async def test_run_until_cancelled(settings):
    """Test the loop runs turns until cancelled and then shuts down."""
    client = make_client()
    calls = []

    mock_llm = MagicMock()
    commander = Commander("mine ore", settings=settings, llm=mock_llm, client=client)

    async def generate(**kwargs):
        calls.append(kwargs)
        if len(calls) == 2:
            commander.cancel.cancel()
        return LLMResponse(content="Mining.")

    mock_llm.generate = generate

    load_tools = AsyncMock(return_value=[])
    with patch("spacemolt_agent.commander.load_game_tools", load_tools):
        await commander.run()

    load_tools.assert_awaited_once_with(
        "http://game.test/api/v1", "http://game.test/api/v2", frozenset({"v2_get_ship"})
    )

    # Two turns, then one handoff call
    assert len(calls) == 3
    first_turn = calls[0]["messages"]
    assert first_turn[0].content == "Begin your mission: mine ore"
    assert "Mining pays well in the asteroid belts." in calls[0]["system_prompt"]
    assert calls[1]["messages"][2].content == CONTINUE_PROMPT

    commands = [c.args[0] for c in client.execute.await_args_list]
    assert commands == ["get_status", "captains_log_add"]
    client.close.assert_awaited_once()
