"""Bearer credential persistence and the in-process session."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

TOKEN_KEY = "liaraToken"


class SessionStore:
    """Keeps the bearer token in a small JSON file so it survives restarts.

    No expiry is tracked here; a stale token is only discovered when the
    control plane rejects it.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def load(self) -> Optional[str]:
        """Return the stored token, or None if nothing usable is stored."""

        if not self.path.exists():
            return None

        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return None

        if not isinstance(data, dict):
            return None
        token = data.get(TOKEN_KEY)
        return token if isinstance(token, str) and token else None

    def save(self, token: str) -> None:
        """Write the token to a file only the current user can read."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            json.dump({TOKEN_KEY: token}, f)
        # O_CREAT ignores the mode when the file already exists.
        self.path.chmod(0o600)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


class Session:
    """The single active credential, shared by the API client and controller."""

    def __init__(self, store: SessionStore):
        self.store = store
        self.token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def init(self) -> bool:
        """Load the persisted credential; return True if one was found."""

        self.token = self.store.load()
        return self.is_authenticated

    def set(self, token: str) -> None:
        """Adopt a freshly accepted token and persist it."""

        self.store.save(token)
        self.token = token

    def clear(self) -> None:
        self.store.clear()
        self.token = None
