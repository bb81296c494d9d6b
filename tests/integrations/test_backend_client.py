"""Tests for the travel backend API client."""

from __future__ import annotations

import io
import json
import urllib.error
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from wayfarer.integrations.backend import BackendClient, BackendConfig
from wayfarer.models import Journal, PostcardRequest, Session, User, UserRef
from wayfarer.shared.errors import AuthenticationError, BackendError, NotFoundError

_CONFIG = BackendConfig(base_url="https://travel.example.com/")
_SESSION = Session(user=User(id=3, name="Ana", username="ana"), token="tok-123")


def _response(payload: object = None, headers: dict | None = None, raw: bytes | None = None) -> MagicMock:
    mock_response = MagicMock()
    if raw is None:
        raw = json.dumps(payload).encode() if payload is not None else b""
    mock_response.read.return_value = raw
    mock_response.headers = headers or {}
    mock_response.__enter__ = lambda s: s
    mock_response.__exit__ = MagicMock(return_value=False)
    return mock_response


def _http_error(code: int, body: bytes) -> urllib.error.HTTPError:
    return urllib.error.HTTPError(
        "https://travel.example.com/x", code, "error", hdrs={}, fp=io.BytesIO(body)
    )


# ── BackendConfig ───────────────────────────────────────────────────────


class TestBackendConfig:
    def test_defaults(self):
        cfg = BackendConfig()
        assert cfg.base_url == "http://localhost:8080"
        assert cfg.auth_url == "http://localhost:8082/api/auth"
        assert cfg.timeout == 10.0
        assert cfg.upload_timeout == 60.0

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("WAYFARER_API_URL", "https://api.example")
        monkeypatch.setenv("WAYFARER_AUTH_URL", "https://auth.example/api/auth")
        cfg = BackendConfig.from_env()
        assert cfg.base_url == "https://api.example"
        assert cfg.auth_url == "https://auth.example/api/auth"


# ── Requests ────────────────────────────────────────────────────────────


class TestAuthHeader:
    def test_bearer_token_attached(self):
        client = BackendClient(_CONFIG, session=_SESSION)
        with patch("urllib.request.urlopen", return_value=_response([])) as mock_urlopen:
            client.list_users()
        req = mock_urlopen.call_args[0][0]
        assert req.get_header("Authorization") == "Bearer tok-123"

    def test_no_header_without_session(self):
        client = BackendClient(_CONFIG)
        with patch("urllib.request.urlopen", return_value=_response([])) as mock_urlopen:
            client.list_users()
        req = mock_urlopen.call_args[0][0]
        assert req.get_header("Authorization") is None

    def test_no_header_with_empty_token(self):
        session = Session(user=User(id=3), token="")
        client = BackendClient(_CONFIG, session=session)
        with patch("urllib.request.urlopen", return_value=_response([])) as mock_urlopen:
            client.list_users()
        assert mock_urlopen.call_args[0][0].get_header("Authorization") is None


class TestJournalsAndEntries:
    def test_list_journals_by_user(self):
        client = BackendClient(_CONFIG, session=_SESSION)
        payload = [{"id": 1, "title": "Rome", "userId": 3, "coverImageUrl": "/r.jpg"}]
        with patch("urllib.request.urlopen", return_value=_response(payload)) as mock_urlopen:
            journals = client.list_journals(3)

        req = mock_urlopen.call_args[0][0]
        assert req.full_url == "https://travel.example.com/journals?userId=3"
        assert req.method == "GET"
        assert mock_urlopen.call_args[1]["timeout"] == 10.0
        assert journals[0].cover_image_url == "/r.jpg"

    def test_list_all_journals_has_no_query(self):
        client = BackendClient(_CONFIG)
        with patch("urllib.request.urlopen", return_value=_response([])) as mock_urlopen:
            client.list_journals()
        assert mock_urlopen.call_args[0][0].full_url == "https://travel.example.com/journals"

    def test_list_entries(self):
        client = BackendClient(_CONFIG, session=_SESSION)
        payload = [
            {
                "id": 55,
                "journalId": 10,
                "title": "Louvre",
                "locationName": "Paris",
                "latitude": "48.86",
                "longitude": "2.33",
                "mediaAttachments": [{"id": 1, "url": "/uploads/1.jpg"}],
            }
        ]
        with patch("urllib.request.urlopen", return_value=_response(payload)) as mock_urlopen:
            entries = client.list_entries(10)

        assert mock_urlopen.call_args[0][0].full_url == "https://travel.example.com/entries/journal/10"
        assert entries[0].location_name == "Paris"
        assert entries[0].media_attachments[0].url == "/uploads/1.jpg"

    def test_create_journal_payload(self):
        client = BackendClient(_CONFIG, session=_SESSION)
        created = {"id": 11, "title": "Lisbon", "userId": 3}
        with patch("urllib.request.urlopen", return_value=_response(created)) as mock_urlopen:
            journal = client.create_journal(Journal(user_id=3, title="Lisbon", description="Spring"))

        req = mock_urlopen.call_args[0][0]
        assert req.method == "POST"
        assert req.get_header("Content-type") == "application/json"
        body = json.loads(req.data)
        assert body == {"userId": 3, "title": "Lisbon", "description": "Spring"}
        assert journal.id == 11

    def test_update_requires_id(self):
        client = BackendClient(_CONFIG)
        with pytest.raises(ValueError):
            client.update_journal(Journal(title="No id"))

    def test_delete_with_empty_body(self):
        client = BackendClient(_CONFIG, session=_SESSION)
        with patch("urllib.request.urlopen", return_value=_response(None)) as mock_urlopen:
            assert client.delete_journal(4) is None
        req = mock_urlopen.call_args[0][0]
        assert req.method == "DELETE"
        assert req.full_url.endswith("/journals/4")


class TestUploads:
    def test_upload_entry_image_uploads_then_attaches(self, tmp_path: Path):
        image = tmp_path / "beach.jpg"
        image.write_bytes(b"\xff\xd8fake-jpeg")
        client = BackendClient(_CONFIG, session=_SESSION)

        responses = [_response({"id": 42, "url": "/uploads/beach.jpg", "caption": "Sunset"}), _response(None)]
        with patch("urllib.request.urlopen", side_effect=responses) as mock_urlopen:
            media = client.upload_entry_image(55, image, caption="Sunset")

        assert media.id == 42
        upload_req = mock_urlopen.call_args_list[0][0][0]
        assert upload_req.full_url == "https://travel.example.com/media/upload"
        assert upload_req.get_header("Content-type").startswith("multipart/form-data; boundary=")
        assert b'name="caption"' in upload_req.data
        assert b"Sunset" in upload_req.data
        assert b'filename="beach.jpg"' in upload_req.data
        assert b"Content-Type: image/jpeg" in upload_req.data
        assert mock_urlopen.call_args_list[0][1]["timeout"] == 60.0

        attach_req = mock_urlopen.call_args_list[1][0][0]
        assert attach_req.full_url == "https://travel.example.com/entries/55/media/42"
        assert attach_req.method == "POST"

    def test_upload_skips_empty_fields(self, tmp_path: Path):
        image = tmp_path / "a.png"
        image.write_bytes(b"png")
        client = BackendClient(_CONFIG)
        with patch("urllib.request.urlopen", return_value=_response({"id": 1})) as mock_urlopen:
            client.upload_media(image)
        data = mock_urlopen.call_args[0][0].data
        assert b'name="caption"' not in data
        assert b'name="type"' not in data

    def test_upload_cover_returns_plain_text(self, tmp_path: Path):
        image = tmp_path / "cover.png"
        image.write_bytes(b"png")
        client = BackendClient(_CONFIG, session=_SESSION)
        with patch("urllib.request.urlopen", return_value=_response(raw=b"/uploads/cover.png")):
            assert client.upload_cover_image(1, image) == "/uploads/cover.png"


class TestPostcards:
    def test_create_postcard_payload(self):
        client = BackendClient(_CONFIG, session=_SESSION)
        request = PostcardRequest(
            sender=UserRef(id=3),
            receiver=UserRef(id=7),
            description="Hi!",
            photo_urls=["/uploads/1.jpg", "/uploads/2.jpg"],
        )
        created = {
            "id": 90,
            "sender": {"id": 3},
            "receiver": {"id": 7},
            "description": "Hi!",
            "photoUrls": ["/uploads/1.jpg", "/uploads/2.jpg"],
        }
        with patch("urllib.request.urlopen", return_value=_response(created)) as mock_urlopen:
            postcard = client.create_postcard(request)

        req = mock_urlopen.call_args[0][0]
        assert req.full_url == "https://travel.example.com/postcards"
        assert json.loads(req.data) == {
            "sender": {"id": 3},
            "receiver": {"id": 7},
            "description": "Hi!",
            "photoUrls": ["/uploads/1.jpg", "/uploads/2.jpg"],
        }
        assert postcard.id == 90

    def test_received_postcards_path(self):
        client = BackendClient(_CONFIG, session=_SESSION)
        with patch("urllib.request.urlopen", return_value=_response([])) as mock_urlopen:
            client.list_received_postcards(3)
        assert mock_urlopen.call_args[0][0].full_url.endswith("/postcards/received/3")


class TestErrors:
    def test_not_found_carries_backend_message(self):
        client = BackendClient(_CONFIG, session=_SESSION)
        err = _http_error(404, b'{"message": "Journal not found"}')
        with patch("urllib.request.urlopen", side_effect=err):
            with pytest.raises(NotFoundError) as excinfo:
                client.get_journal(99)
        assert excinfo.value.status == 404
        assert excinfo.value.message == "Journal not found"

    def test_unauthorized(self):
        client = BackendClient(_CONFIG, session=_SESSION)
        with patch("urllib.request.urlopen", side_effect=_http_error(401, b"")):
            with pytest.raises(AuthenticationError):
                client.list_users()

    def test_server_error_plain_text(self):
        client = BackendClient(_CONFIG)
        with patch("urllib.request.urlopen", side_effect=_http_error(500, b"boom")):
            with pytest.raises(BackendError) as excinfo:
                client.list_users()
        assert excinfo.value.message == "boom"
        assert "HTTP 500" in str(excinfo.value)

    def test_connection_failure(self):
        client = BackendClient(_CONFIG)
        with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("refused")):
            with pytest.raises(BackendError, match="Could not reach backend"):
                client.list_users()

    def test_timeout(self):
        client = BackendClient(_CONFIG)
        with patch("urllib.request.urlopen", side_effect=TimeoutError()):
            with pytest.raises(BackendError, match="timed out"):
                client.list_users()

    def test_malformed_json(self):
        client = BackendClient(_CONFIG)
        with patch("urllib.request.urlopen", return_value=_response(raw=b"<html>")):
            with pytest.raises(BackendError, match="Malformed"):
                client.list_users()

    def test_unexpected_shape(self):
        client = BackendClient(_CONFIG)
        with patch("urllib.request.urlopen", return_value=_response({"users": []})):
            with pytest.raises(BackendError, match="Unexpected data format"):
                client.list_users()


class TestGeocoding:
    def test_geocode(self):
        client = BackendClient(_CONFIG, session=_SESSION)
        payload = {"lat": 41.9, "lng": 12.5, "displayName": "Rome, Italy"}
        with patch("urllib.request.urlopen", return_value=_response(payload)) as mock_urlopen:
            result = client.geocode("Rome")
        assert mock_urlopen.call_args[0][0].full_url.endswith("/map/geocode?location=Rome")
        assert result.display_name == "Rome, Italy"

    def test_geocode_falls_back_on_failure(self):
        client = BackendClient(_CONFIG)
        with patch("urllib.request.urlopen", side_effect=_http_error(500, b"")):
            result = client.geocode("Atlantis")
        assert (result.lat, result.lng, result.display_name) == (0.0, 0.0, "Atlantis")

    def test_reverse_geocode_falls_back_on_failure(self):
        client = BackendClient(_CONFIG)
        with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("down")):
            result = client.reverse_geocode(1.5, 2.5)
        assert result.display_name == "1.5, 2.5"


class TestExport:
    def test_filename_from_content_disposition(self):
        client = BackendClient(_CONFIG, session=_SESSION)
        resp = _response(
            raw=b"<stats/>",
            headers={
                "Content-Disposition": 'attachment; filename="ana_stats.xml"',
                "Content-Type": "application/xml",
            },
        )
        with patch("urllib.request.urlopen", return_value=resp) as mock_urlopen:
            doc = client.export_profile_stats(3)
        assert mock_urlopen.call_args[0][0].full_url.endswith("/export/user/3/profile-stats")
        assert doc.filename == "ana_stats.xml"
        assert doc.content == b"<stats/>"

    def test_default_filename(self):
        client = BackendClient(_CONFIG)
        with patch("urllib.request.urlopen", return_value=_response(raw=b"<x/>")) as mock_urlopen:
            doc = client.export_complete_data(3)
        assert mock_urlopen.call_args[0][0].full_url.endswith(
            "/export/user/3/complete-data?includeMedia=false"
        )
        assert doc.filename == "user_3_complete_data.xml"

    def test_journal_export_default_filename(self):
        client = BackendClient(_CONFIG)
        with patch("urllib.request.urlopen", return_value=_response(raw=b"<j/>")):
            doc = client.export_journal(8)
        assert doc.filename == "journal_8_export.xml"


class TestResolveMediaUrl:
    @pytest.mark.parametrize(
        ("stored", "expected"),
        [
            ("https://cdn.example/a.jpg", "https://cdn.example/a.jpg"),
            ("/uploads/a.jpg", "https://travel.example.com/uploads/a.jpg"),
            ("./uploads/a.jpg", "https://travel.example.com/uploads/a.jpg"),
            ("uploads/a.jpg", "https://travel.example.com/uploads/a.jpg"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_resolution(self, stored, expected):
        assert BackendClient(_CONFIG).resolve_media_url(stored) == expected

    def test_cover_image_url(self):
        client = BackendClient(_CONFIG)
        with patch("urllib.request.urlopen", return_value=_response({"id": 1, "cover_imageurl": "uploads/c.jpg"})):
            assert client.get_cover_image_url(1) == "https://travel.example.com/uploads/c.jpg"

    def test_cover_image_url_none(self):
        client = BackendClient(_CONFIG)
        with patch("urllib.request.urlopen", return_value=_response({"id": 1})):
            assert client.get_cover_image_url(1) is None
