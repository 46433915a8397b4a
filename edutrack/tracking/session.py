"""
Tracking session identifiers.

A client keeps one session id across restarts in a SessionStore; server
environments all share the fixed "server" session.
"""

import json
import secrets
import string
import time
from pathlib import Path

import structlog

from edutrack.tracking.environment import EnvironmentContext

logger = structlog.get_logger()

SESSION_KEY = "tracking_session_id"
SERVER_SESSION_ID = "server"

_BASE36 = string.digits + string.ascii_lowercase


def generate_session_id() -> str:
    """session_<epoch ms>_<7 random base36 chars>"""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(7))
    return f"session_{int(time.time() * 1000)}_{suffix}"


class SessionStore:
    """In-memory key/value store for client-side identifiers"""

    def __init__(self):
        self._values: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value


class FileSessionStore(SessionStore):
    """JSON file backed store, so a session id survives restarts"""

    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path)
        try:
            self._values = json.loads(self.path.read_text())
        except (FileNotFoundError, json.JSONDecodeError):
            self._values = {}

    def set(self, key: str, value: str) -> None:
        super().set(key, value)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self._values, indent=2))
        except OSError as e:
            # Keep the in-memory value; persistence is best effort
            logger.warning("session_store_write_failed", path=str(self.path), error=str(e))


def resolve_session_id(store: SessionStore, environment: EnvironmentContext) -> str:
    """Reuse the stored session id, creating one only if none exists"""
    if not environment.can_send:
        return SERVER_SESSION_ID

    existing = store.get(SESSION_KEY)
    if existing:
        return existing

    session_id = generate_session_id()
    store.set(SESSION_KEY, session_id)
    logger.info("session_created", session_id=session_id)
    return session_id
