"""Profile and explore aggregation.

Both aggregates are recomputed from the list endpoints on every call.
The per-journal entry fetches run concurrently; the blocking client
calls are pushed to worker threads and joined with ``asyncio.gather``,
so the first failure propagates unchanged and no partial result is ever
produced.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone

from wayfarer.integrations.backend import BackendClient
from wayfarer.models import (
    Entry,
    ExploreFeed,
    ExploreJournal,
    ExploreUser,
    Journal,
    ProfileStats,
    User,
)

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def reduce_profile_stats(
    journals: Sequence[Journal], entry_lists: Iterable[Sequence[Entry]]
) -> ProfileStats:
    """Fold journals and their entry lists into a ProfileStats.

    Location names are compared as exact strings; blank names are not
    locations.
    """
    entry_count = 0
    photo_count = 0
    locations: set[str] = set()
    for entries in entry_lists:
        entry_count += len(entries)
        for entry in entries:
            photo_count += len(entry.media_attachments)
            if entry.location_name:
                locations.add(entry.location_name)
    return ProfileStats(
        journal_count=len(journals),
        entry_count=entry_count,
        location_count=len(locations),
        photo_count=photo_count,
        locations=sorted(locations),
    )


async def compute_profile_stats_async(client: BackendClient, user_id: int) -> ProfileStats:
    """Fetch a user's journals, fan out for their entries, and reduce.

    Raises:
        BackendError: If the journal list or any entry list cannot be
            fetched. Callers must treat this as "stats unavailable".
    """
    journals = await asyncio.to_thread(client.list_journals, user_id)
    if not journals:
        return ProfileStats()

    # A journal without an id has no entry listing to fetch.
    journal_ids = [j.id for j in journals if j.id is not None]
    if len(journal_ids) < len(journals):
        logger.warning("Skipping %d journal(s) without an id", len(journals) - len(journal_ids))

    logger.debug("Fetching entries for %d journal(s) of user %s", len(journal_ids), user_id)
    entry_lists = await asyncio.gather(
        *(asyncio.to_thread(client.list_entries, journal_id) for journal_id in journal_ids)
    )
    return reduce_profile_stats(journals, entry_lists)


def compute_profile_stats(client: BackendClient, user_id: int) -> ProfileStats:
    """Synchronous wrapper around :func:`compute_profile_stats_async`."""
    return asyncio.run(compute_profile_stats_async(client, user_id))


def _created_key(journal: Journal) -> datetime:
    created = journal.created_at
    if created is None:
        return _OLDEST
    if created.tzinfo is None:
        return created.replace(tzinfo=timezone.utc)
    return created


def newest_first(journals: Iterable[Journal]) -> list[Journal]:
    """Sort by creation time, newest first; undated journals go last."""
    return sorted(journals, key=_created_key, reverse=True)


def assemble_explore_feed(
    users: Sequence[User], journals: Sequence[Journal], recent_limit: int = 2
) -> ExploreFeed:
    """Build the explore feed from already-fetched users and journals."""
    by_owner: dict[int | None, list[Journal]] = {}
    for journal in journals:
        by_owner.setdefault(journal.user_id, []).append(journal)

    explore_users = [
        ExploreUser(
            user=user,
            journal_count=len(by_owner.get(user.id, [])),
            recent_journals=newest_first(by_owner.get(user.id, []))[:recent_limit],
        )
        for user in users
    ]

    names = {user.id: user.display_name for user in users}
    explore_journals = [
        ExploreJournal(journal=journal, author_name=names.get(journal.user_id) or "Unknown Author")
        for journal in newest_first(journals)
    ]
    return ExploreFeed(users=explore_users, journals=explore_journals)


async def build_explore_feed_async(client: BackendClient, recent_limit: int = 2) -> ExploreFeed:
    """Fetch every user and journal concurrently and assemble the feed."""
    users, journals = await asyncio.gather(
        asyncio.to_thread(client.list_users),
        asyncio.to_thread(client.list_journals),
    )
    return assemble_explore_feed(users, journals, recent_limit)


def build_explore_feed(client: BackendClient, recent_limit: int = 2) -> ExploreFeed:
    """Synchronous wrapper around :func:`build_explore_feed_async`."""
    return asyncio.run(build_explore_feed_async(client, recent_limit))
