"""Download XML exports from the backend and write them to disk."""

from __future__ import annotations

import logging
from enum import StrEnum
from pathlib import Path

from wayfarer.integrations.backend import BackendClient
from wayfarer.models import ExportDocument

logger = logging.getLogger(__name__)


class ExportKind(StrEnum):
    """Available export documents."""

    PROFILE = "profile"
    COMPLETE = "complete"
    JOURNAL = "journal"


def fetch_export(
    client: BackendClient,
    kind: ExportKind,
    target_id: int,
    include_media: bool = False,
) -> ExportDocument:
    """Download one export.

    Args:
        client: Backend client.
        kind: Which export to fetch.
        target_id: User id for profile/complete exports, journal id for
            journal exports.
        include_media: Only used by the complete-data export.
    """
    if kind == ExportKind.PROFILE:
        return client.export_profile_stats(target_id)
    if kind == ExportKind.COMPLETE:
        return client.export_complete_data(target_id, include_media=include_media)
    return client.export_journal(target_id)


def write_export(document: ExportDocument, output_dir: Path) -> Path:
    """Write *document* under its own filename inside *output_dir*."""
    # Only the basename is trusted from the server-provided filename.
    name = Path(document.filename).name or "export.xml"
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / name
    path.write_bytes(document.content)
    logger.info("Wrote %s (%d bytes)", path, len(document.content))
    return path
