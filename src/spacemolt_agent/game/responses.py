"""
Response and session types for the game API.

Both endpoint families are folded into one ``GameResponse`` shape by
``normalize_response``. Family A uses camelCase session fields; family B uses
snake_case and carries structured results next to a text summary.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from .commands import EndpointFamily

SESSION_EXPIRY_MARGIN = timedelta(seconds=60)

# Error codes produced or intercepted by the client
CONNECTION_FAILED = "connection_failed"
HTTP_ERROR = "http_error"
RATE_LIMITED = "rate_limited"
SESSION_INVALID = "session_invalid"
SESSION_EXPIRED = "session_expired"
NOT_AUTHENTICATED = "not_authenticated"
SESSION_ERROR_CODES = frozenset({SESSION_INVALID, SESSION_EXPIRED, NOT_AUTHENTICATED})


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or epoch seconds into an aware datetime."""
    if value is None or value == "":
        return None
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (ValueError, OverflowError, OSError):
        # Out-of-range epochs are treated like unparseable strings
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class GameSession:
    """Server-issued bearer credential scoped to one endpoint family."""

    id: str
    player_id: str | None = None
    created_at: datetime | None = None
    expires_at: datetime | None = None

    def is_expiring(self, now: datetime | None = None) -> bool:
        """True when less than a minute of lifetime remains (or it is unknown)."""
        if self.expires_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return self.expires_at - now < SESSION_EXPIRY_MARGIN

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "GameSession | None":
        """Build a session from either field-casing convention."""
        session_id = data.get("id") or data.get("session_id") or data.get("sessionId")
        if not session_id:
            return None
        return cls(
            id=str(session_id),
            player_id=data.get("player_id") or data.get("playerId"),
            created_at=parse_timestamp(data.get("created_at") or data.get("createdAt")),
            expires_at=parse_timestamp(data.get("expires_at") or data.get("expiresAt")),
        )


@dataclass
class ApiError:
    """Structured error reported by the server or synthesized by the client."""

    code: str
    message: str = ""
    wait_seconds: float | None = None

    @property
    def is_session_error(self) -> bool:
        return self.code in SESSION_ERROR_CODES


@dataclass
class GameResponse:
    """Normalized response from either endpoint family."""

    family: EndpointFamily = EndpointFamily.A
    result: Any = None
    notifications: list[Any] = field(default_factory=list)
    session: GameSession | None = None
    error: ApiError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(
        cls,
        code: str,
        message: str,
        family: EndpointFamily = EndpointFamily.A,
    ) -> "GameResponse":
        return cls(family=family, error=ApiError(code=code, message=message))


def _parse_error(raw: Any) -> ApiError | None:
    if not raw:
        return None
    if isinstance(raw, str):
        return ApiError(code="error", message=raw)
    if not isinstance(raw, dict):
        return ApiError(code="error", message=str(raw))
    wait = raw.get("wait_seconds", raw.get("waitSeconds"))
    return ApiError(
        code=str(raw.get("code") or "error"),
        message=str(raw.get("message") or ""),
        wait_seconds=float(wait) if isinstance(wait, (int, float)) else None,
    )


def normalize_response(family: EndpointFamily, body: Any) -> GameResponse:
    """Fold a decoded JSON body from either family into a ``GameResponse``."""
    if not isinstance(body, dict):
        return GameResponse(family=family, result=body)

    result = body.get("result")
    if family is EndpointFamily.B:
        structured = body.get("structured_content", body.get("structuredContent"))
        if structured is not None:
            result = structured

    session = None
    raw_session = body.get("session")
    if isinstance(raw_session, dict):
        session = GameSession.from_payload(raw_session)

    notifications = body.get("notifications")
    if not isinstance(notifications, list):
        notifications = []

    return GameResponse(
        family=family,
        result=result,
        notifications=notifications,
        session=session,
        error=_parse_error(body.get("error")),
    )
