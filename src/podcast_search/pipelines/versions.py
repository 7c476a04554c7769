"""Resolve which download of an episode is authoritative.

Re-downloading an episode produces a second file key with the same date and title but a newer
``--{ms}`` suffix. Only the newest copy is transcribed and indexed; artifacts produced for older
copies are removed so the index never carries the same episode twice.
"""

from __future__ import annotations

from collections.abc import Iterable

from ..storage.blob_store import BlobStore
from ..storage.naming import SourceFileKey, has_downloaded_at_timestamp, parse_file_key
from ..storage.paths import StorageLayout, TRANSCRIPT_EXTENSION, file_stem
from ..utils.logging import get_logger

__all__ = ["cleanup_older_transcripts", "find_older_versions", "has_newer_version"]

LOGGER = get_logger(__name__)


def _parse_versioned(file_key: str) -> SourceFileKey | None:
    if not has_downloaded_at_timestamp(file_key):
        return None
    try:
        return parse_file_key(file_key)
    except ValueError:
        LOGGER.debug("Could not parse file key %s; ignoring for version checks.", file_key)
        return None


def has_newer_version(file_key: str, sibling_keys: Iterable[str]) -> bool:
    """Return True when a sibling describes the same episode with a later download time.

    Keys without a download timestamp never have a newer version.
    """
    current = _parse_versioned(file_key)
    if current is None or current.downloaded_at_ms is None:
        return False

    for sibling in sibling_keys:
        if sibling == file_key:
            continue
        candidate = _parse_versioned(sibling)
        if candidate is None or candidate.downloaded_at_ms is None:
            continue
        if (
            candidate.same_episode(current)
            and candidate.downloaded_at_ms > current.downloaded_at_ms
        ):
            LOGGER.info("Found newer version %s of %s.", sibling, file_key)
            return True
    return False


def find_older_versions(file_key: str, sibling_keys: Iterable[str]) -> list[str]:
    """Return siblings describing the same episode with an earlier download time."""
    current = _parse_versioned(file_key)
    if current is None or current.downloaded_at_ms is None:
        return []

    older: list[str] = []
    for sibling in sibling_keys:
        if sibling == file_key:
            continue
        candidate = _parse_versioned(sibling)
        if candidate is None or candidate.downloaded_at_ms is None:
            continue
        if (
            candidate.same_episode(current)
            and candidate.downloaded_at_ms < current.downloaded_at_ms
        ):
            older.append(sibling)
    return older


def cleanup_older_transcripts(
    store: BlobStore,
    layout: StorageLayout,
    podcast: str,
    file_key: str,
) -> list[str]:
    """Delete transcripts and cached search entries for older downloads of ``file_key``."""
    transcript_keys = [
        key
        for key in store.list_files(layout.transcripts_dir(podcast))
        if key.endswith(TRANSCRIPT_EXTENSION)
    ]
    stems = [file_stem(key) for key in transcript_keys]

    deleted: list[str] = []
    for older in find_older_versions(file_key, stems):
        for key in (
            layout.transcript_key(podcast, older),
            layout.search_entries_key(podcast, older),
        ):
            if store.file_exists(key):
                store.delete_file(key)
                deleted.append(key)
                LOGGER.info("Deleted older version artifact %s.", key)
    return deleted
