"""
Session-aware HTTP client for the SpaceMolt game API.

Maintains one session per endpoint family and recovers transparently from:
1. Transport failures (server restarted mid-request)
2. Rate limiting (server-specified wait, bounded retries)
3. Session invalidation (one forced renewal, one retry)
"""

import asyncio
from typing import Any

import httpx
import structlog

from ..config import Settings, get_settings
from .commands import EndpointFamily, Route, resolve_route
from .exceptions import GameClientError, GameConnectionError
from .responses import (
    CONNECTION_FAILED,
    HTTP_ERROR,
    RATE_LIMITED,
    SESSION_INVALID,
    GameResponse,
    GameSession,
    normalize_response,
)

logger = structlog.get_logger()

SESSION_HEADER = "X-Session-Id"
MAX_RECONNECT_ATTEMPTS = 6
RECONNECT_BASE_DELAY = 5.0  # 5s, 10s, 20s, 40s, 80s, 160s
DEFAULT_RATE_LIMIT_WAIT = 10.0
MAX_RATE_LIMIT_RETRIES = 5


class SessionClient:
    """Client for both endpoint families of the game API.

    Session slots are owned by the instance. Renewal of a slot is serialized
    with a per-family lock so concurrent callers share one in-flight renewal.
    """

    def __init__(
        self,
        base_url: str | None = None,
        v2_base_url: str | None = None,
        direct_commands: frozenset[str] | None = None,
        routed_commands: frozenset[str] | None = None,
        http_client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
        reconnect_base_delay: float = RECONNECT_BASE_DELAY,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
    ):
        self.settings = settings or get_settings()
        self.base_urls = {
            EndpointFamily.A: (base_url or self.settings.spacemolt_url).rstrip("/"),
            EndpointFamily.B: (v2_base_url or self.settings.v2_url).rstrip("/"),
        }
        self.direct_commands = (
            direct_commands if direct_commands is not None else self.settings.v2_direct_commands_set
        )
        self.routed_commands = (
            routed_commands if routed_commands is not None else self.settings.v2_routed_commands_set
        )
        self.reconnect_base_delay = reconnect_base_delay
        self.max_reconnect_attempts = max_reconnect_attempts

        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self.settings.request_timeout)
        self._sessions: dict[EndpointFamily, GameSession | None] = {
            EndpointFamily.A: None,
            EndpointFamily.B: None,
        }
        self._locks = {family: asyncio.Lock() for family in EndpointFamily}
        self._credentials: tuple[str, str] | None = None
        self._rate_limit_hits = 0

    @property
    def base_url(self) -> str:
        return self.base_urls[EndpointFamily.A]

    @property
    def v2_base_url(self) -> str:
        return self.base_urls[EndpointFamily.B]

    def set_credentials(self, username: str, password: str) -> None:
        """Credentials used to log in after every fresh session, per family."""
        self._credentials = (username, password)

    def get_session(self, family: EndpointFamily = EndpointFamily.A) -> GameSession | None:
        return self._sessions[family]

    def invalidate_sessions(self) -> None:
        for family in EndpointFamily:
            self._sessions[family] = None

    def resolve(self, command: str, payload: dict[str, Any] | None = None) -> Route:
        return resolve_route(command, payload, self.direct_commands, self.routed_commands)

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "SessionClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def execute(self, command: str, payload: dict[str, Any] | None = None) -> GameResponse:
        """Run a command, recovering from rate limits, session loss and network loss.

        Never raises for server or network problems; failures come back as a
        ``GameResponse`` carrying an ``ApiError``.
        """
        route = self.resolve(command, payload)

        while True:
            response = await self._execute_once(command, payload, route)

            if response.error is not None and response.error.code == RATE_LIMITED:
                self._rate_limit_hits += 1
                if self._rate_limit_hits >= MAX_RATE_LIMIT_RETRIES:
                    logger.warning(
                        "Rate limit retries exhausted",
                        command=command,
                        attempts=self._rate_limit_hits,
                    )
                    self._rate_limit_hits = 0
                    return response

                wait = response.error.wait_seconds or DEFAULT_RATE_LIMIT_WAIT
                logger.info("Rate limited, sleeping", command=command, seconds=wait)
                await asyncio.sleep(wait)
                continue

            self._rate_limit_hits = 0
            return response

    async def _execute_once(
        self,
        command: str,
        payload: dict[str, Any] | None,
        route: Route,
    ) -> GameResponse:
        try:
            await self._ensure(route.family)
        except GameConnectionError:
            return GameResponse.failure(
                CONNECTION_FAILED, "Could not connect to server", route.family
            )

        try:
            response = await self._request(route, payload)
        except httpx.TransportError as e:
            # Server may have restarted mid-request; every session is suspect
            logger.warning("Connection lost, reconnecting", command=command, error=str(e))
            self.invalidate_sessions()
            try:
                await self._ensure(route.family)
                response = await self._request(route, payload)
            except (GameConnectionError, httpx.TransportError):
                return GameResponse.failure(
                    CONNECTION_FAILED, "Could not reconnect to server", route.family
                )

        if response.error is not None and response.error.is_session_error:
            logger.info(
                "Session rejected, refreshing",
                command=command,
                family=route.family.value,
                code=response.error.code,
            )
            self._sessions[route.family] = None
            try:
                await self._ensure(route.family)
                response = await self._request(route, payload)
            except (GameConnectionError, httpx.TransportError):
                return GameResponse.failure(
                    CONNECTION_FAILED, "Could not reconnect to server", route.family
                )

        if response.error is None and response.session is not None:
            self._sessions[route.family] = response.session

        return response

    async def ensure_session(self) -> None:
        """Make sure a usable family A session exists."""
        await self._ensure(EndpointFamily.A)

    async def ensure_session_b(self) -> None:
        """Make sure a usable family B session exists."""
        await self._ensure(EndpointFamily.B)

    async def _ensure(self, family: EndpointFamily) -> None:
        async with self._locks[family]:
            current = self._sessions[family]
            if current is not None and not current.is_expiring():
                return

            logger.info(
                "Renewing session" if current else "Creating new session",
                family=family.value,
            )

            last_error: Exception | None = None
            for attempt in range(self.max_reconnect_attempts):
                try:
                    await self._bootstrap(family)
                    return
                except (httpx.HTTPError, GameClientError, ValueError) as e:
                    last_error = e
                    if attempt + 1 >= self.max_reconnect_attempts:
                        break
                    delay = self.reconnect_base_delay * (2 ** attempt)
                    logger.warning(
                        "Server unreachable, retrying",
                        family=family.value,
                        attempt=attempt + 1,
                        max_attempts=self.max_reconnect_attempts,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

            raise GameConnectionError(
                f"Failed to connect to server after {self.max_reconnect_attempts} attempts: {last_error}"
            ) from last_error

    async def _bootstrap(self, family: EndpointFamily) -> None:
        """Create a fresh session and log in with stored credentials."""
        resp = await self._http.post(
            f"{self.base_urls[family]}/session",
            headers={"Content-Type": "application/json"},
        )
        if resp.status_code >= 400:
            raise GameClientError(
                f"Failed to create session: {resp.status_code} {resp.reason_phrase}"
            )

        created = normalize_response(family, resp.json())
        if created.session is None:
            raise GameClientError("No session in response")
        self._sessions[family] = created.session
        logger.info("Session created", family=family.value, session=created.session.id[:8])

        if self._credentials is None:
            return

        username, password = self._credentials
        logger.info("Logging in", family=family.value, username=username)
        login = await self._request(
            Route(family, "login"),
            {"username": username, "password": password},
        )
        if login.error is not None:
            logger.error("Login failed", family=family.value, error=login.error.message)
            return

        # Logins may rotate the session
        if login.session is not None:
            self._sessions[family] = login.session
        logger.info("Logged in", family=family.value)

    async def do_request(self, command: str, payload: dict[str, Any] | None = None) -> GameResponse:
        """Issue one request with the active session, without any recovery.

        Raises ``httpx.TransportError`` when the server cannot be reached.
        """
        return await self._request(self.resolve(command, payload), payload)

    async def _request(self, route: Route, payload: dict[str, Any] | None) -> GameResponse:
        headers = {"Content-Type": "application/json"}
        session = self._sessions[route.family]
        if session is not None:
            headers[SESSION_HEADER] = session.id

        resp = await self._http.post(
            f"{self.base_urls[route.family]}/{route.path}",
            headers=headers,
            json=payload or None,
        )

        if resp.status_code == 401:
            return GameResponse.failure(
                SESSION_INVALID, "Unauthorized: session lost", route.family
            )

        # Any HTTP response means the server is reachable
        try:
            body = resp.json()
        except ValueError:
            return GameResponse.failure(
                HTTP_ERROR, f"HTTP {resp.status_code}: {resp.reason_phrase}", route.family
            )

        return normalize_response(route.family, body)
