"""Authentication service client: login and registration."""

from __future__ import annotations

import json
import logging
import urllib.request

from wayfarer.integrations.backend import BackendConfig, decode_json, open_request
from wayfarer.integrations.normalize import normalize_user
from wayfarer.models import Session, User
from wayfarer.shared.errors import AuthenticationError, BackendError

logger = logging.getLogger(__name__)


class AuthClient:
    """Client for the authentication service (``/api/auth``).

    Login and registration are the only calls made without a bearer
    token.
    """

    def __init__(self, config: BackendConfig) -> None:
        self.config = config
        self.auth_url = config.auth_url.rstrip("/")

    def _post(self, path: str, data: dict) -> dict:
        req = urllib.request.Request(
            f"{self.auth_url}{path}",
            data=json.dumps(data).encode("utf-8"),
            method="POST",
            headers={"Content-Type": "application/json"},
        )
        raw, _headers = open_request(req, self.config.timeout)
        body = decode_json(raw)
        if not isinstance(body, dict):
            raise BackendError("Unexpected data format received from auth service", payload=body)
        return body

    def login(self, username: str, password: str) -> Session:
        """Authenticate and return the session to persist.

        Raises:
            AuthenticationError: When the service rejects the credentials.
        """
        try:
            body = self._post("/login", {"username": username, "password": password})
        except BackendError as exc:
            if exc.status in (400, 401, 403):
                raise AuthenticationError(exc.message, status=exc.status, payload=exc.payload) from exc
            raise
        token = str(body.pop("token", "") or "")
        body.pop("message", None)
        user = normalize_user(body)
        logger.info("Logged in as %s (id=%s)", user.username, user.id)
        return Session(user=user, token=token)

    def register(self, name: str, username: str, email: str, password: str) -> User:
        """Create an account. Does not log in."""
        body = self._post(
            "/register",
            {"name": name, "username": username, "email": email, "password": password},
        )
        body.pop("message", None)
        body.pop("token", None)
        return normalize_user(body)
