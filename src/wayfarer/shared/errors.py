"""Exception hierarchy shared across wayfarer."""

from __future__ import annotations

from typing import Any


class WayfarerError(Exception):
    """Base error for everything raised by wayfarer."""


class BackendError(WayfarerError):
    """A request to the travel backend failed.

    Covers connection failures, timeouts, non-2xx responses and bodies
    that are not valid JSON. ``message`` carries the backend's own
    message when the response had one.
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"{self.message} (HTTP {self.status})"


class AuthenticationError(BackendError):
    """Credentials were rejected or the session token is no longer valid."""


class NotFoundError(BackendError):
    """The requested resource does not exist."""


class SessionRequiredError(WayfarerError):
    """The operation needs a logged-in session."""

    def __init__(self, message: str = "You must be logged in to do that") -> None:
        super().__init__(message)


class WizardValidationError(WayfarerError):
    """A postcard was submitted with required fields missing."""

    def __init__(self, missing: list[str], message: str | None = None) -> None:
        self.missing = list(missing)
        super().__init__(
            message
            or "Please fill in all fields and select at least one image "
            f"(missing: {', '.join(self.missing)})"
        )
