"""
Tests for the session-aware game client.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from spacemolt_agent.config import Settings
from spacemolt_agent.game.client import SESSION_HEADER, SessionClient
from spacemolt_agent.game.commands import EndpointFamily

V1 = "http://game.test/api/v1"
V2 = "http://game.test/api/v2"


def _expiry(seconds: float) -> str:
    return (datetime.now(timezone.utc) + timedelta(seconds=seconds)).isoformat()


class FakeGameServer:
    """In-memory game server driven through httpx.MockTransport."""

    def __init__(self, session_ttl: float = 3600):
        self.session_ttl = session_ttl
        self.requests: list[httpx.Request] = []
        self.handlers: dict[str, list] = {}
        self.session_counter = 0

    def queue(self, path: str, *responses) -> None:
        """Queue responses for a path; the last one repeats."""
        self.handlers[path] = list(responses)

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def _session(self, family: str) -> dict:
        self.session_counter += 1
        sid = f"{family}-session-{self.session_counter}"
        if family == "v2":
            return {"id": sid, "player_id": None, "expires_at": _expiry(self.session_ttl)}
        return {"id": sid, "playerId": None, "expiresAt": _expiry(self.session_ttl)}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        family = "v2" if "/api/v2/" in path else "v1"

        queued = self.handlers.get(path)
        if queued:
            item = queued.pop(0) if len(queued) > 1 else queued[0]
            if isinstance(item, Exception):
                raise item
            # Responses can repeat, so each request gets its own copy
            return httpx.Response(item.status_code, content=item.content, headers=item.headers)

        if path.endswith("/session"):
            return httpx.Response(200, json={"session": self._session(family)})
        return httpx.Response(200, json={"result": {"ok": True, "path": path}})


@pytest.fixture
def server():
    return FakeGameServer()


def make_client(server: FakeGameServer, **kwargs) -> SessionClient:
    return SessionClient(
        base_url=V1,
        v2_base_url=V2,
        direct_commands=frozenset({"v2_get_ship"}),
        routed_commands=frozenset({"storage"}),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(server)),
        settings=Settings(_env_file=None),
        reconnect_base_delay=0.001,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_creates_session_and_sends_header(server):
    """Test the first command bootstraps a session and sends its id."""
    client = make_client(server)

    response = await client.execute("get_status")

    assert response.ok
    assert response.result == {"ok": True, "path": "/api/v1/get_status"}
    assert len(server.calls("/api/v1/session")) == 1
    command = server.calls("/api/v1/get_status")[0]
    assert command.headers[SESSION_HEADER] == "v1-session-1"


@pytest.mark.asyncio
async def test_reuses_valid_session(server):
    """Test a non-expiring session is reused across commands."""
    client = make_client(server)

    await client.execute("get_status")
    await client.execute("get_cargo")

    assert len(server.calls("/api/v1/session")) == 1


@pytest.mark.asyncio
async def test_expiring_session_is_renewed(server):
    """Test a session under a minute from expiry triggers a fresh session."""
    server.session_ttl = 30
    client = make_client(server)

    await client.execute("get_status")
    await client.execute("get_status")

    assert len(server.calls("/api/v1/session")) == 2
    assert server.calls("/api/v1/get_status")[1].headers[SESSION_HEADER] == "v1-session-2"


@pytest.mark.asyncio
async def test_payload_sent_as_json(server):
    """Test command payloads are posted as JSON bodies."""
    client = make_client(server)

    await client.execute("travel", {"target": "sol"})

    request = server.calls("/api/v1/travel")[0]
    assert json.loads(request.content) == {"target": "sol"}


@pytest.mark.asyncio
async def test_rate_limit_gives_up_after_five(server):
    """Test persistent rate limiting surfaces the error after five attempts."""
    server.queue(
        "/api/v1/mine",
        httpx.Response(200, json={"error": {"code": "rate_limited", "message": "Slow", "wait_seconds": 0.001}}),
    )
    client = make_client(server)

    response = await client.execute("mine")

    assert response.error.code == "rate_limited"
    assert len(server.calls("/api/v1/mine")) == 5
    assert client._rate_limit_hits == 0


@pytest.mark.asyncio
async def test_rate_limit_then_success(server):
    """Test a rate limited command is retried after the server's wait."""
    server.queue(
        "/api/v1/mine",
        httpx.Response(200, json={"error": {"code": "rate_limited", "wait_seconds": 0.001}}),
        httpx.Response(200, json={"result": "mined 5 ore"}),
    )
    client = make_client(server)

    response = await client.execute("mine")

    assert response.ok
    assert response.result == "mined 5 ore"
    assert len(server.calls("/api/v1/mine")) == 2
    assert client._rate_limit_hits == 0


@pytest.mark.asyncio
async def test_session_error_retried_once(server):
    """Test a session error renews the session and retries exactly once."""
    server.queue(
        "/api/v1/get_status",
        httpx.Response(200, json={"error": {"code": "session_invalid", "message": "bad session"}}),
    )
    client = make_client(server)

    response = await client.execute("get_status")

    assert response.error.code == "session_invalid"
    assert len(server.calls("/api/v1/get_status")) == 2
    assert len(server.calls("/api/v1/session")) == 2


@pytest.mark.asyncio
async def test_session_expired_recovers(server):
    """Test an expired session is replaced and the command succeeds."""
    server.queue(
        "/api/v1/get_status",
        httpx.Response(200, json={"error": {"code": "session_expired"}}),
        httpx.Response(200, json={"result": "fine"}),
    )
    client = make_client(server)

    response = await client.execute("get_status")

    assert response.ok
    assert response.result == "fine"
    retry = server.calls("/api/v1/get_status")[1]
    assert retry.headers[SESSION_HEADER] == "v1-session-2"


@pytest.mark.asyncio
async def test_unauthorized_is_session_error(server):
    """Test HTTP 401 is treated as a lost session."""
    server.queue("/api/v1/get_status", httpx.Response(401, text="nope"))
    client = make_client(server)

    response = await client.execute("get_status")

    assert response.error.code == "session_invalid"
    assert response.error.message == "Unauthorized: session lost"
    assert len(server.calls("/api/v1/get_status")) == 2


@pytest.mark.asyncio
async def test_non_json_body_is_http_error(server):
    """Test a non-JSON body becomes an http_error result."""
    server.queue("/api/v1/get_status", httpx.Response(500, text="<html>oops</html>"))
    client = make_client(server)

    response = await client.execute("get_status")

    assert response.error.code == "http_error"
    assert response.error.message == "HTTP 500: Internal Server Error"
    assert len(server.calls("/api/v1/get_status")) == 1


@pytest.mark.asyncio
async def test_transport_failure_reconnects(server):
    """Test a dropped connection invalidates sessions and retries once."""
    request = httpx.Request("POST", f"{V1}/get_status")
    server.queue(
        "/api/v1/get_status",
        httpx.ConnectError("connection reset", request=request),
        httpx.Response(200, json={"result": "back online"}),
    )
    client = make_client(server)

    response = await client.execute("get_status")

    assert response.ok
    assert response.result == "back online"
    assert len(server.calls("/api/v1/session")) == 2


@pytest.mark.asyncio
async def test_transport_failure_twice_reports_reconnect_failure(server):
    """Test a second transport failure is reported, not raised."""
    request = httpx.Request("POST", f"{V1}/get_status")
    server.queue("/api/v1/get_status", httpx.ConnectError("down", request=request))
    client = make_client(server)

    response = await client.execute("get_status")

    assert response.error.code == "connection_failed"
    assert response.error.message == "Could not reconnect to server"


@pytest.mark.asyncio
async def test_bootstrap_exhaustion(server):
    """Test an unreachable server yields connection_failed after the attempt ceiling."""
    server.queue("/api/v1/session", httpx.Response(503, json={"error": "maintenance"}))
    client = make_client(server, max_reconnect_attempts=3)

    response = await client.execute("get_status")

    assert response.error.code == "connection_failed"
    assert response.error.message == "Could not connect to server"
    assert len(server.calls("/api/v1/session")) == 3
    assert server.calls("/api/v1/get_status") == []


@pytest.mark.asyncio
async def test_bootstrap_recovers_after_failures(server):
    """Test bootstrap retries until the server comes back."""
    server.queue(
        "/api/v1/session",
        httpx.Response(503, json={}),
        httpx.Response(200, json={"session": {"id": "late", "expiresAt": _expiry(3600)}}),
    )
    client = make_client(server)

    response = await client.execute("get_status")

    assert response.ok
    assert client.get_session().id == "late"


@pytest.mark.asyncio
async def test_login_rotates_session(server):
    """Test a session returned by login replaces the bootstrap session."""
    server.queue(
        "/api/v1/login",
        httpx.Response(200, json={
            "result": "welcome",
            "session": {"id": "logged-in", "expiresAt": _expiry(3600)},
        }),
    )
    client = make_client(server)
    client.set_credentials("miner", "secret")

    await client.execute("get_status")

    login = server.calls("/api/v1/login")[0]
    assert json.loads(login.content) == {"username": "miner", "password": "secret"}
    assert login.headers[SESSION_HEADER] == "v1-session-1"
    assert server.calls("/api/v1/get_status")[0].headers[SESSION_HEADER] == "logged-in"


@pytest.mark.asyncio
async def test_login_failure_keeps_session(server):
    """Test a failed login is logged and the fresh session is still used."""
    server.queue("/api/v1/login", httpx.Response(200, json={"error": {"code": "bad_password"}}))
    client = make_client(server)
    client.set_credentials("miner", "wrong")

    response = await client.execute("get_status")

    assert response.ok
    assert client.get_session().id == "v1-session-1"


@pytest.mark.asyncio
async def test_family_b_uses_own_session(server):
    """Test family B commands bootstrap and use their own session."""
    client = make_client(server)

    await client.execute("get_status")
    response = await client.execute("v2_get_ship")

    assert response.family is EndpointFamily.B
    assert len(server.calls("/api/v2/session")) == 1
    ship = server.calls("/api/v2/get_ship")[0]
    assert ship.headers[SESSION_HEADER] == "v2-session-2"
    assert client.get_session(EndpointFamily.A).id == "v1-session-1"


@pytest.mark.asyncio
async def test_routed_command_with_action(server):
    """Test routed commands with an action reach the family B sub-path."""
    client = make_client(server)

    await client.execute("storage", {"action": "deposit", "item": "ore"})

    assert len(server.calls("/api/v2/storage/deposit")) == 1
    assert server.calls("/api/v1/storage") == []


@pytest.mark.asyncio
async def test_concurrent_callers_share_renewal(server):
    """Test concurrent commands trigger a single session bootstrap."""
    client = make_client(server)

    results = await asyncio.gather(*(client.execute("get_status") for _ in range(5)))

    assert all(r.ok for r in results)
    assert len(server.calls("/api/v1/session")) == 1


@pytest.mark.asyncio
async def test_ensure_session_is_idempotent(server):
    """Test ensure_session is a no-op while the session is valid."""
    client = make_client(server)

    await client.ensure_session()
    await client.ensure_session()
    await client.ensure_session_b()

    assert len(server.calls("/api/v1/session")) == 1
    assert len(server.calls("/api/v2/session")) == 1
