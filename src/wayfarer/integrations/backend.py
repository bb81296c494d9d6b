"""Travel backend integration: config and API client.

One method per backend operation, grouped by resource. Every response
goes through ``wayfarer.integrations.normalize`` before it is returned,
and every failure surfaces as a ``BackendError``.
"""

from __future__ import annotations

import json
import logging
import mimetypes
import os
import re
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from wayfarer.integrations.normalize import (
    normalize_entry,
    normalize_geocode,
    normalize_journal,
    normalize_list,
    normalize_media,
    normalize_postcard,
    normalize_user,
)
from wayfarer.models import (
    Entry,
    ExportDocument,
    GeocodeResult,
    Journal,
    MediaAttachment,
    Postcard,
    PostcardRequest,
    Session,
    User,
)
from wayfarer.shared.errors import AuthenticationError, BackendError, NotFoundError

logger = logging.getLogger(__name__)

_FILENAME_RE = re.compile(r'filename="(.+)"')


class BackendConfig(BaseModel):
    """Connection settings for the travel backend."""

    base_url: str = "http://localhost:8080"
    auth_url: str = "http://localhost:8082/api/auth"
    timeout: float = 10.0
    upload_timeout: float = 60.0

    @classmethod
    def from_env(cls) -> BackendConfig:
        """Create config from environment variables."""
        defaults = cls()
        return cls(
            base_url=os.environ.get("WAYFARER_API_URL", defaults.base_url),
            auth_url=os.environ.get("WAYFARER_AUTH_URL", defaults.auth_url),
        )


def error_from_http(exc: urllib.error.HTTPError, fallback: str) -> BackendError:
    """Build the matching BackendError for a non-2xx response."""
    payload: Any = None
    message = fallback
    try:
        raw = exc.read()
    except OSError:
        raw = b""
    if raw:
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            payload = raw.decode("utf-8", errors="replace")
    if isinstance(payload, dict):
        message = str(
            payload.get("message") or payload.get("details") or payload.get("error") or fallback
        )
    elif isinstance(payload, str) and payload.strip():
        message = payload.strip()

    if exc.code in (401, 403):
        cls: type[BackendError] = AuthenticationError
    elif exc.code == 404:
        cls = NotFoundError
    else:
        cls = BackendError
    return cls(message, status=exc.code, payload=payload)


def open_request(req: urllib.request.Request, timeout: float) -> tuple[bytes, Any]:
    """Send *req* and return the raw body and response headers."""
    label = f"{req.get_method()} {req.full_url}"
    logger.debug("-> %s", label)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.read(), resp.headers
    except urllib.error.HTTPError as exc:
        raise error_from_http(exc, f"Request failed: {label}") from exc
    except urllib.error.URLError as exc:
        raise BackendError(f"Could not reach backend ({label}): {exc.reason}") from exc
    except TimeoutError as exc:
        raise BackendError(f"Request timed out after {timeout}s: {label}") from exc


def decode_json(body: bytes) -> Any:
    """Decode a JSON body; an empty body decodes to None."""
    if not body:
        return None
    try:
        return json.loads(body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise BackendError(f"Malformed response from backend: {exc}") from exc


class BackendClient:
    """Client for the travel-journal backend.

    The session is injected rather than read from ambient storage; when
    it carries a token, every request sends ``Authorization: Bearer``.
    """

    def __init__(self, config: BackendConfig, session: Session | None = None) -> None:
        self.config = config
        self.session = session
        self.base_url = config.base_url.rstrip("/")

    # ── Transport ──────────────────────────────────────────────────────

    def _headers(self, content_type: str | None = "application/json") -> dict[str, str]:
        headers: dict[str, str] = {}
        if content_type:
            headers["Content-Type"] = content_type
        if self.session and self.session.token:
            headers["Authorization"] = f"Bearer {self.session.token}"
        return headers

    def _url(self, path: str, params: dict[str, Any] | None = None) -> str:
        url = f"{self.base_url}{path}"
        if params:
            clean = {
                k: (str(v).lower() if isinstance(v, bool) else v)
                for k, v in params.items()
                if v is not None
            }
            if clean:
                url = f"{url}?{urllib.parse.urlencode(clean)}"
        return url

    def _request(
        self,
        method: str,
        path: str,
        data: Any = None,
        *,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make an authenticated JSON request and return the decoded body."""
        body = json.dumps(data).encode("utf-8") if data is not None else None
        req = urllib.request.Request(
            self._url(path, params),
            data=body,
            method=method,
            headers=self._headers(),
        )
        raw, _headers = open_request(req, self.config.timeout)
        return decode_json(raw)

    def _request_multipart(
        self,
        path: str,
        file_path: Path,
        field: str = "file",
        fields: dict[str, str] | None = None,
    ) -> bytes:
        """Upload a file via multipart form POST.

        Args:
            path: API endpoint path (e.g. "/media/upload").
            file_path: Local file to upload.
            field: Form field name for the file.
            fields: Extra text form fields; empty values are skipped.

        Returns:
            The raw response body.
        """
        boundary = "----WayfarerUploadBoundary"
        content_type = mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"

        body_parts: list[bytes] = []
        for name, value in (fields or {}).items():
            if not value:
                continue
            body_parts.extend([
                f"--{boundary}\r\n".encode(),
                f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode(),
                f"{value}\r\n".encode(),
            ])

        disposition = (
            f'Content-Disposition: form-data; name="{field}";'
            f' filename="{file_path.name}"\r\n'
        )
        body_parts.extend([
            f"--{boundary}\r\n".encode(),
            disposition.encode(),
            f"Content-Type: {content_type}\r\n\r\n".encode(),
            file_path.read_bytes(),
            f"\r\n--{boundary}--\r\n".encode(),
        ])

        req = urllib.request.Request(
            self._url(path),
            data=b"".join(body_parts),
            method="POST",
            headers=self._headers(f"multipart/form-data; boundary={boundary}"),
        )
        raw, _headers = open_request(req, self.config.upload_timeout)
        return raw

    def _download(self, path: str, default_filename: str, params: dict[str, Any] | None = None) -> ExportDocument:
        req = urllib.request.Request(
            self._url(path, params),
            method="GET",
            headers={**self._headers(None), "Accept": "application/xml"},
        )
        raw, headers = open_request(req, self.config.timeout)
        filename = default_filename
        disposition = headers.get("Content-Disposition") if headers else None
        if disposition:
            match = _FILENAME_RE.search(disposition)
            if match:
                filename = match.group(1)
        content_type = (headers.get("Content-Type") if headers else None) or "application/xml"
        return ExportDocument(filename=filename, content=raw, content_type=content_type)

    def resolve_media_url(self, url: str | None) -> str:
        """Turn a stored media reference into an absolute URL."""
        if not url:
            return ""
        if url.startswith(("http://", "https://")):
            return url
        if url.startswith("/"):
            return f"{self.base_url}{url}"
        return f"{self.base_url}/{url.removeprefix('./')}"

    # ── Journals ───────────────────────────────────────────────────────

    def list_journals(self, user_id: int | None = None) -> list[Journal]:
        """List journals, optionally only those owned by *user_id*."""
        raw = self._request("GET", "/journals", params={"userId": user_id})
        return normalize_list(raw, normalize_journal, "journals")

    def list_user_journals(self, user_id: int) -> list[Journal]:
        raw = self._request("GET", f"/journals/user/{user_id}")
        return normalize_list(raw, normalize_journal, "journals")

    def get_journal(self, journal_id: int) -> Journal:
        return normalize_journal(self._request("GET", f"/journals/{journal_id}"))

    def create_journal(self, journal: Journal) -> Journal:
        return normalize_journal(self._request("POST", "/journals", journal.to_payload()))

    def update_journal(self, journal: Journal) -> Journal:
        if journal.id is None:
            raise ValueError("Cannot update a journal without an id")
        raw = self._request("PUT", f"/journals/{journal.id}", journal.to_payload())
        return normalize_journal(raw)

    def delete_journal(self, journal_id: int) -> None:
        self._request("DELETE", f"/journals/{journal_id}")

    def upload_cover_image(self, journal_id: int, file_path: Path) -> str:
        """Upload a cover image; returns the stored image reference."""
        raw = self._request_multipart(f"/journals/{journal_id}/upload-cover", file_path)
        return raw.decode("utf-8", errors="replace").strip().strip('"')

    def get_cover_image_url(self, journal_id: int) -> str | None:
        """Absolute cover URL for a journal, or None when it has none."""
        journal = self.get_journal(journal_id)
        if not journal.cover_image_url:
            return None
        return self.resolve_media_url(journal.cover_image_url)

    # ── Entries ────────────────────────────────────────────────────────

    def list_entries(self, journal_id: int) -> list[Entry]:
        """List a journal's entries, each with its media attachments."""
        raw = self._request("GET", f"/entries/journal/{journal_id}")
        return normalize_list(raw, normalize_entry, "entries")

    def get_entry(self, entry_id: int) -> Entry:
        return normalize_entry(self._request("GET", f"/entries/{entry_id}"))

    def create_entry(self, entry: Entry) -> Entry:
        return normalize_entry(self._request("POST", "/entries", entry.to_payload()))

    def update_entry(self, entry: Entry) -> Entry:
        if entry.id is None:
            raise ValueError("Cannot update an entry without an id")
        return normalize_entry(self._request("PUT", f"/entries/{entry.id}", entry.to_payload()))

    def delete_entry(self, entry_id: int) -> None:
        self._request("DELETE", f"/entries/{entry_id}")

    def attach_media(self, entry_id: int, media_id: int) -> None:
        self._request("POST", f"/entries/{entry_id}/media/{media_id}")

    def upload_entry_image(
        self, entry_id: int, file_path: Path, caption: str | None = None
    ) -> MediaAttachment:
        """Upload an image and attach it to an entry.

        The backend has no single call for this: the file is uploaded as
        free-standing media first, then associated with the entry.
        """
        media = self.upload_media(file_path, caption=caption)
        logger.info("Attaching media %s to entry %s", media.id, entry_id)
        self.attach_media(entry_id, media.id)
        return media

    # ── Media ──────────────────────────────────────────────────────────

    def list_media(self) -> list[MediaAttachment]:
        return normalize_list(self._request("GET", "/media"), normalize_media, "media")

    def get_media(self, media_id: int) -> MediaAttachment:
        return normalize_media(self._request("GET", f"/media/{media_id}"))

    def upload_media(
        self,
        file_path: Path,
        caption: str | None = None,
        media_type: str | None = None,
    ) -> MediaAttachment:
        raw = self._request_multipart(
            "/media/upload",
            file_path,
            fields={"caption": caption or "", "type": media_type or ""},
        )
        return normalize_media(decode_json(raw))

    def delete_media(self, media_id: int) -> None:
        self._request("DELETE", f"/media/{media_id}")

    # ── Postcards ──────────────────────────────────────────────────────

    def list_postcards(self) -> list[Postcard]:
        return normalize_list(self._request("GET", "/postcards"), normalize_postcard, "postcards")

    def get_postcard(self, postcard_id: int) -> Postcard:
        return normalize_postcard(self._request("GET", f"/postcards/{postcard_id}"))

    def list_sent_postcards(self, sender_id: int) -> list[Postcard]:
        raw = self._request("GET", f"/postcards/sent/{sender_id}")
        return normalize_list(raw, normalize_postcard, "postcards")

    def list_received_postcards(self, receiver_id: int) -> list[Postcard]:
        raw = self._request("GET", f"/postcards/received/{receiver_id}")
        return normalize_list(raw, normalize_postcard, "postcards")

    def create_postcard(self, request: PostcardRequest) -> Postcard:
        """Persist a new postcard (``POST /postcards``)."""
        return normalize_postcard(self._request("POST", "/postcards", request.to_payload()))

    def send_postcard(self, request: PostcardRequest) -> Postcard:
        """Create and deliver a postcard (``POST /postcards/send``)."""
        return normalize_postcard(self._request("POST", "/postcards/send", request.to_payload()))

    def update_postcard(self, postcard: Postcard) -> Postcard:
        if postcard.id is None:
            raise ValueError("Cannot update a postcard without an id")
        raw = self._request("PUT", f"/postcards/{postcard.id}", postcard.to_payload())
        return normalize_postcard(raw)

    def delete_postcard(self, postcard_id: int) -> None:
        self._request("DELETE", f"/postcards/{postcard_id}")

    # ── Users ──────────────────────────────────────────────────────────

    def list_users(self) -> list[User]:
        return normalize_list(self._request("GET", "/users"), normalize_user, "users")

    def get_user(self, user_id: int) -> User:
        return normalize_user(self._request("GET", f"/users/{user_id}"))

    def get_user_by_username(self, username: str) -> User:
        quoted = urllib.parse.quote(username, safe="")
        return normalize_user(self._request("GET", f"/users/username/{quoted}"))

    def update_user(self, user: User) -> User:
        return normalize_user(self._request("PUT", f"/users/{user.id}", user.to_payload()))

    # ── Geocoding ──────────────────────────────────────────────────────

    def geocode(self, location: str) -> GeocodeResult:
        """Resolve a place name; falls back to ``0,0`` when the lookup fails."""
        try:
            raw = self._request("GET", "/map/geocode", params={"location": location})
            return normalize_geocode(raw)
        except BackendError:
            logger.warning("Geocoding failed for %r", location, exc_info=True)
            return GeocodeResult(lat=0.0, lng=0.0, display_name=location)

    def reverse_geocode(self, lat: float, lng: float) -> GeocodeResult:
        """Name the place at a coordinate; falls back to ``"lat, lng"``."""
        try:
            raw = self._request("GET", "/map/reverse-geocode", params={"lat": lat, "lng": lng})
            result = normalize_geocode(raw)
            return result.model_copy(update={"lat": lat, "lng": lng})
        except BackendError:
            logger.warning("Reverse geocoding failed for %s, %s", lat, lng, exc_info=True)
            return GeocodeResult(lat=lat, lng=lng, display_name=f"{lat}, {lng}")

    # ── Export ─────────────────────────────────────────────────────────

    def export_profile_stats(self, user_id: int) -> ExportDocument:
        return self._download(
            f"/export/user/{user_id}/profile-stats",
            f"user_{user_id}_profile_stats.xml",
        )

    def export_complete_data(self, user_id: int, include_media: bool = False) -> ExportDocument:
        return self._download(
            f"/export/user/{user_id}/complete-data",
            f"user_{user_id}_complete_data.xml",
            params={"includeMedia": include_media},
        )

    def export_journal(self, journal_id: int) -> ExportDocument:
        return self._download(
            f"/export/journal/{journal_id}",
            f"journal_{journal_id}_export.xml",
        )
