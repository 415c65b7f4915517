"""File-backed storage for session documents."""

import json
import os
import re
import tempfile
from pathlib import Path

from ..errors import InvalidSessionKey, StorageError
from .models import Session

SESSION_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_:-][A-Za-z0-9_.:-]{0,127}$")


def validate_session_key(key: str) -> str:
    """Return the key if it is safe to use as a file name."""
    if not isinstance(key, str) or not SESSION_KEY_PATTERN.match(key):
        raise InvalidSessionKey(f"Invalid session key: {key!r}")
    return key


class SessionStore:
    """Persistent storage for sessions, one JSON document per key.

    Documents are read and written whole. A document that exists but cannot
    be parsed is an error, never an empty session.
    """

    def __init__(self, sessions_dir: Path) -> None:
        """Initialize the store.

        Args:
            sessions_dir: Directory for session documents. Created if missing.
        """
        self.sessions_dir = Path(sessions_dir)
        self.sessions_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.sessions_dir / f"{validate_session_key(key)}.json"

    def load(self, key: str, *, evolution_enabled: bool = True) -> Session:
        """Load a session, or return a fresh one if none is stored.

        Args:
            key: Session key.
            evolution_enabled: Evolution flag for a freshly created session.

        Raises:
            StorageError: If the stored document is unreadable or corrupt.
        """
        path = self.path_for(key)
        if not path.exists():
            return Session(key=key, personality_evolution_enabled=evolution_enabled)

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            session = Session.from_dict(data)
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Cannot read session {key}: {e}") from e
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Corrupt session {key}: {e}") from e

        if session.key != key:
            raise StorageError(f"Session document {path.name} belongs to {session.key!r}")
        return session

    def persist(self, key: str, session: Session) -> None:
        """Write the whole session document.

        Raises:
            StorageError: If the write fails.
        """
        path = self.path_for(key)
        payload = json.dumps(session.to_dict(), indent=2, ensure_ascii=False)

        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=self.sessions_dir, prefix=f".{path.stem}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise StorageError(f"Cannot write session {key}: {e}") from e

