"""Single-slot, JSON-backed store for the logged-in session.

The file holds at most one session. It is written at login, removed at
logout, and read by everything that needs to talk to the backend on the
user's behalf. A file that cannot be parsed counts as "no session" and
is discarded.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from wayfarer.models import Session
from wayfarer.shared.errors import SessionRequiredError

logger = logging.getLogger(__name__)


class SessionStore:
    """Persist the current session between CLI invocations."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Session | None:
        """Return the stored session, or None when there is no valid one."""
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return Session.model_validate(data)
        except (json.JSONDecodeError, ValueError, KeyError, OSError):
            logger.warning("Discarding unreadable session at %s", self._path)
            self.clear()
            return None

    def require(self) -> Session:
        """Like :meth:`load` but raise when nobody is logged in."""
        session = self.load()
        if session is None:
            raise SessionRequiredError()
        return session

    def save(self, session: Session) -> None:
        """Replace whatever is stored with *session*."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(session.model_dump_json(indent=2), encoding="utf-8")
        try:
            self._path.chmod(0o600)
        except OSError:
            logger.debug("Could not restrict permissions on %s", self._path)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)
