"""Domain models for the travel-journal client.

Pure Pydantic v2 data types: no I/O and no request logic. Attribute
names are snake_case; the backend's camelCase field names are accepted
and emitted through aliases. Responses reach these models only after
``wayfarer.integrations.normalize`` has folded field-name variants into
the canonical shape.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    """Base for models that travel over the wire in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict:
        """Dump to the backend's JSON shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Backend resources
# ---------------------------------------------------------------------------


class User(_WireModel):
    """A registered traveller."""

    id: int
    name: str = ""
    username: str = ""
    email: str = ""
    created_at: datetime | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.username


class UserRef(_WireModel):
    """Reference to a user by id, as the postcard endpoints expect."""

    id: int


class Journal(_WireModel):
    """A named collection of entries owned by one user."""

    id: int | None = None
    user_id: int | None = None
    title: str = ""
    description: str = ""
    cover_image_url: str | None = Field(default=None, alias="coverImageURL")
    created_at: datetime | None = None


class MediaAttachment(_WireModel):
    """A photo (or other media) reference attached to an entry."""

    id: int
    url: str = ""
    caption: str | None = None
    type: str | None = None
    created_at: datetime | None = None

    @property
    def is_photo(self) -> bool:
        """Untyped media counts as a photo."""
        return not self.type or "photo" in self.type.lower()


class Entry(_WireModel):
    """A dated, optionally geolocated note inside a journal."""

    id: int | None = None
    journal_id: int | None = None
    title: str = ""
    content: str = ""
    location_name: str = ""
    latitude: float | None = None
    longitude: float | None = None
    created_at: datetime | None = None
    media_attachments: list[MediaAttachment] = Field(default_factory=list)

    @model_validator(mode="after")
    def _coordinates_pair(self) -> Entry:
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be set together")
        return self

    @property
    def has_location(self) -> bool:
        return bool(self.location_name)

    @property
    def photos(self) -> list[MediaAttachment]:
        return [m for m in self.media_attachments if m.is_photo]


class Postcard(_WireModel):
    """A message plus a curated set of photos sent between two users."""

    id: int | None = None
    sender: User
    receiver: User
    description: str = ""
    photo_urls: list[str] = Field(default_factory=list)
    created_at: datetime | None = None


class PostcardRequest(_WireModel):
    """Body of a postcard-creation request."""

    sender: UserRef
    receiver: UserRef
    description: str
    photo_urls: list[str]


class GeocodeResult(_WireModel):
    """A location name resolved to coordinates (or the reverse)."""

    lat: float = 0.0
    lng: float = 0.0
    display_name: str = ""


class ExportDocument(BaseModel):
    """An XML export downloaded from the backend."""

    filename: str
    content: bytes
    content_type: str = "application/xml"


# ---------------------------------------------------------------------------
# Client-side state
# ---------------------------------------------------------------------------


class Session(BaseModel):
    """The logged-in user and the bearer token issued at login."""

    user: User
    token: str = ""


# ---------------------------------------------------------------------------
# Derived aggregates (never persisted)
# ---------------------------------------------------------------------------


class ProfileStats(BaseModel):
    """Per-user counts derived from journals and their entries."""

    journal_count: int = 0
    entry_count: int = 0
    location_count: int = 0
    photo_count: int = 0
    locations: list[str] = Field(default_factory=list)


class ExploreUser(BaseModel):
    """A user card on the explore page."""

    user: User
    journal_count: int = 0
    recent_journals: list[Journal] = Field(default_factory=list)


class ExploreJournal(BaseModel):
    """A journal annotated with its author's display name."""

    journal: Journal
    author_name: str = "Unknown Author"


class ExploreFeed(BaseModel):
    """Everything the explore view lists."""

    users: list[ExploreUser] = Field(default_factory=list)
    journals: list[ExploreJournal] = Field(default_factory=list)
