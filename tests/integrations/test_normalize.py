"""Tests for response normalization at the backend boundary."""

from datetime import datetime

import pytest

from wayfarer.integrations.normalize import (
    normalize_entry,
    normalize_geocode,
    normalize_journal,
    normalize_list,
    normalize_media,
    normalize_postcard,
    normalize_user,
)
from wayfarer.shared.errors import BackendError


class TestNormalizeJournal:
    @pytest.mark.parametrize("key", ["coverImageURL", "coverImageUrl", "cover_imageurl"])
    def test_cover_field_variants_fold_into_one(self, key):
        journal = normalize_journal({"id": 1, "title": "Rome", key: "/uploads/rome.jpg"})
        assert journal.cover_image_url == "/uploads/rome.jpg"

    def test_first_non_empty_cover_wins(self):
        journal = normalize_journal(
            {"id": 1, "coverImageURL": "", "coverImageUrl": "/b.jpg", "cover_imageurl": "/c.jpg"}
        )
        assert journal.cover_image_url == "/b.jpg"

    def test_nulls_fall_back_to_defaults(self):
        journal = normalize_journal(
            {"id": 3, "title": "Trip", "description": None, "coverImageURL": None, "userId": 4}
        )
        assert journal.description == ""
        assert journal.cover_image_url is None
        assert journal.user_id == 4

    def test_created_at_parsed(self):
        journal = normalize_journal({"id": 1, "createdAt": "2024-05-01T10:30:00"})
        assert journal.created_at == datetime(2024, 5, 1, 10, 30)

    def test_unparsable_created_at_dropped(self):
        journal = normalize_journal({"id": 1, "createdAt": "last tuesday"})
        assert journal.created_at is None

    def test_round_trip_payload_uses_canonical_key(self):
        journal = normalize_journal({"id": 1, "title": "T", "coverImageUrl": "/x.jpg"})
        payload = journal.to_payload()
        assert payload["coverImageURL"] == "/x.jpg"
        assert "coverImageUrl" not in payload


class TestNormalizeEntry:
    def test_string_coordinates_become_floats(self):
        entry = normalize_entry(
            {"id": 5, "journalId": 1, "latitude": "48.8566", "longitude": "2.3522"}
        )
        assert entry.latitude == pytest.approx(48.8566)
        assert entry.longitude == pytest.approx(2.3522)

    def test_blank_coordinates_become_none(self):
        entry = normalize_entry({"id": 5, "latitude": "", "longitude": ""})
        assert entry.latitude is None
        assert entry.longitude is None

    def test_lone_coordinate_is_dropped(self):
        entry = normalize_entry({"id": 5, "latitude": "48.8", "longitude": None})
        assert entry.latitude is None
        assert entry.longitude is None

    def test_media_attachments_normalized(self):
        entry = normalize_entry(
            {
                "id": 5,
                "locationName": "Paris",
                "mediaAttachments": [
                    {"id": 1, "url": "/uploads/a.jpg", "type": "PHOTO"},
                    {"id": 2, "url": "/uploads/b.mp4", "type": "VIDEO"},
                ],
            }
        )
        assert [m.id for m in entry.media_attachments] == [1, 2]
        assert [m.id for m in entry.photos] == [1]

    def test_missing_media_list_is_empty(self):
        entry = normalize_entry({"id": 5, "mediaAttachments": None})
        assert entry.media_attachments == []

    def test_null_location_name_is_empty_string(self):
        entry = normalize_entry({"id": 5, "locationName": None})
        assert entry.location_name == ""
        assert entry.has_location is False


class TestNormalizeOthers:
    def test_media_without_type_counts_as_photo(self):
        media = normalize_media({"id": 9, "url": "x.jpg", "type": None})
        assert media.is_photo is True

    def test_user_display_name_falls_back_to_username(self):
        user = normalize_user({"id": 2, "name": None, "username": "marco"})
        assert user.display_name == "marco"

    def test_postcard_nested_users(self):
        postcard = normalize_postcard(
            {
                "id": 4,
                "sender": {"id": 1, "name": "Ana"},
                "receiver": {"id": 7, "username": "bo"},
                "description": "Hi!",
                "photoUrls": ["/a.jpg", None, "/b.jpg"],
            }
        )
        assert postcard.sender.display_name == "Ana"
        assert postcard.receiver.id == 7
        assert postcard.photo_urls == ["/a.jpg", "/b.jpg"]

    def test_geocode_accepts_lon(self):
        result = normalize_geocode({"lat": 1.5, "lon": 2.5, "displayName": "Somewhere"})
        assert result.lng == 2.5
        assert result.display_name == "Somewhere"


class TestMalformed:
    def test_list_expected(self):
        with pytest.raises(BackendError, match="entries"):
            normalize_list({"oops": True}, normalize_entry, "entries")

    def test_object_expected(self):
        with pytest.raises(BackendError):
            normalize_journal(["not", "a", "journal"])

    def test_invalid_field_type(self):
        with pytest.raises(BackendError, match="Malformed user"):
            normalize_user({"id": "not-a-number"})
