"""Response adapters at the backend-client boundary.

The backend is loose about response shapes: the journal cover field
arrives under three different spellings, coordinates come as strings
that may be blank, and nullable columns come back as ``null``. Every
response passes through one of the ``normalize_*`` functions here so the
rest of the package only ever sees the canonical models.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from wayfarer.models import (
    Entry,
    GeocodeResult,
    Journal,
    MediaAttachment,
    Postcard,
    User,
)
from wayfarer.shared.errors import BackendError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_COVER_IMAGE_KEYS = ("coverImageURL", "coverImageUrl", "cover_imageurl", "cover_image_url")


def _require_mapping(raw: Any, what: str) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise BackendError(f"Unexpected data format received for {what}", payload=raw)
    return dict(raw)


def _drop_nulls(data: dict[str, Any]) -> dict[str, Any]:
    """Remove null fields so model defaults apply."""
    return {k: v for k, v in data.items() if v is not None}


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Ignoring unparsable timestamp %r", value)
        return None


def _fix_timestamp(data: dict[str, Any]) -> dict[str, Any]:
    if "createdAt" in data:
        parsed = _parse_timestamp(data.pop("createdAt"))
        if parsed is not None:
            data["createdAt"] = parsed
    return data


def _validate(model: type[M], data: dict[str, Any], what: str) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise BackendError(f"Malformed {what} in backend response: {exc}", payload=data) from exc


def normalize_list(raw: Any, normalize: Callable[[Any], M], what: str) -> list[M]:
    """Apply *normalize* to every item of a list response."""
    if not isinstance(raw, list):
        raise BackendError(f"Unexpected data format received for {what}", payload=raw)
    return [normalize(item) for item in raw]


def normalize_user(raw: Any) -> User:
    data = _fix_timestamp(_drop_nulls(_require_mapping(raw, "user")))
    return _validate(User, data, "user")


def normalize_journal(raw: Any) -> Journal:
    data = _require_mapping(raw, "journal")
    cover = None
    for key in _COVER_IMAGE_KEYS:
        value = data.pop(key, None)
        if cover is None and value:
            cover = value
    data = _fix_timestamp(_drop_nulls(data))
    if cover is not None:
        data["coverImageURL"] = cover
    return _validate(Journal, data, "journal")


def normalize_media(raw: Any) -> MediaAttachment:
    data = _fix_timestamp(_drop_nulls(_require_mapping(raw, "media")))
    if "type" in data:
        data["type"] = str(data["type"])
    return _validate(MediaAttachment, data, "media")


def _coordinate(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def normalize_entry(raw: Any) -> Entry:
    data = _fix_timestamp(_drop_nulls(_require_mapping(raw, "entry")))

    lat = _coordinate(data.pop("latitude", None))
    lng = _coordinate(data.pop("longitude", None))
    if (lat is None) != (lng is None):
        logger.warning(
            "Entry %s has only one coordinate (lat=%s, lng=%s); dropping both",
            data.get("id"), lat, lng,
        )
        lat = lng = None
    if lat is not None:
        data["latitude"] = lat
        data["longitude"] = lng

    media = data.pop("mediaAttachments", None)
    data["mediaAttachments"] = [
        normalize_media(m) for m in (media if isinstance(media, list) else [])
    ]
    return _validate(Entry, data, "entry")


def normalize_postcard(raw: Any) -> Postcard:
    data = _fix_timestamp(_drop_nulls(_require_mapping(raw, "postcard")))
    for side in ("sender", "receiver"):
        if side in data:
            data[side] = normalize_user(data[side])
    urls = data.get("photoUrls")
    data["photoUrls"] = [u for u in urls if u] if isinstance(urls, list) else []
    return _validate(Postcard, data, "postcard")


def normalize_geocode(raw: Any) -> GeocodeResult:
    data = _drop_nulls(_require_mapping(raw, "geocode result"))
    # Some geocoder responses use lon instead of lng
    if "lng" not in data and "lon" in data:
        data["lng"] = data.pop("lon")
    return _validate(GeocodeResult, data, "geocode result")
