"""
Per-session local state: saved credentials and the agent's TODO list.

Files live under ``<sessions_dir>/<session name>/``.
"""

import json
from dataclasses import asdict, dataclass
from pathlib import Path

import structlog

logger = structlog.get_logger()


@dataclass
class Credentials:
    """Login credentials for the game account."""

    username: str
    password: str
    empire: str = ""
    player_id: str = ""


class SessionStore:
    """Reads and writes credentials.json and TODO.md for one named session."""

    def __init__(self, session_name: str, base_dir: str | Path):
        self.dir = Path(base_dir).expanduser() / session_name
        self.credentials_path = self.dir / "credentials.json"
        self.todo_path = self.dir / "TODO.md"
        self.dir.mkdir(parents=True, exist_ok=True)

    def load_credentials(self) -> Credentials | None:
        if not self.credentials_path.exists():
            return None
        try:
            data = json.loads(self.credentials_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Could not read credentials", path=str(self.credentials_path), error=str(e))
            return None

        if not data.get("username") or not data.get("password"):
            return None
        return Credentials(
            username=data["username"],
            password=data["password"],
            empire=data.get("empire", ""),
            player_id=data.get("player_id") or data.get("playerId", ""),
        )

    def save_credentials(self, credentials: Credentials) -> None:
        self.credentials_path.write_text(
            json.dumps(asdict(credentials), indent=2) + "\n",
            encoding="utf-8",
        )

    def load_todo(self) -> str:
        if not self.todo_path.exists():
            return ""
        return self.todo_path.read_text(encoding="utf-8")

    def save_todo(self, content: str) -> None:
        self.todo_path.write_text(content, encoding="utf-8")
