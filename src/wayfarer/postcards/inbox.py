"""Received and sent postcards."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from wayfarer.integrations.backend import BackendClient
from wayfarer.models import Postcard

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _sent_key(postcard: Postcard) -> datetime:
    created = postcard.created_at
    if created is None:
        return _OLDEST
    return created if created.tzinfo else created.replace(tzinfo=timezone.utc)


def sort_newest_first(postcards: list[Postcard]) -> list[Postcard]:
    """Most recent first; postcards without a timestamp go last."""
    return sorted(postcards, key=_sent_key, reverse=True)


def received_postcards(client: BackendClient, user_id: int) -> list[Postcard]:
    return sort_newest_first(client.list_received_postcards(user_id))


def sent_postcards(client: BackendClient, user_id: int) -> list[Postcard]:
    return sort_newest_first(client.list_sent_postcards(user_id))


def delete_postcard(client: BackendClient, postcard_id: int) -> None:
    client.delete_postcard(postcard_id)
    logger.info("Deleted postcard %s", postcard_id)
