"""Full rebuild of the search index from every transcript in the blob store."""

from __future__ import annotations

import time
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ...exceptions import IndexPersistError, ManifestError
from ...storage.blob_store import BlobStore
from ...storage.paths import TRANSCRIPT_EXTENSION, StorageLayout, build_layout, file_stem
from ...utils.logging import get_logger
from ..versions import has_newer_version
from .extractor import ExtractionSettings, SearchEntry, SearchEntryExtractor
from .manifest import load_manifest
from .notify import IndexRefreshNotifier
from .search_index import SearchIndex
from .serializer import DEFAULT_CHUNK_BYTES, serialize

__all__ = [
    "IndexingSettings",
    "IndexingSummary",
    "build_index",
    "find_duplicate_ids",
    "list_transcripts",
    "persist_index",
    "run_indexing",
    "run_indexing_from_config",
]

LOGGER = get_logger(__name__)


@dataclass(slots=True)
class IndexingSettings:
    compression: str = "brotli"
    stream_chunk_bytes: int = DEFAULT_CHUNK_BYTES
    batch_size: int = 500

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> IndexingSettings:
        section = config.get("indexing")
        if not isinstance(section, Mapping):
            return cls()
        return cls(
            compression=str(section.get("compression", "brotli")),
            stream_chunk_bytes=int(section.get("stream_chunk_bytes", DEFAULT_CHUNK_BYTES)),
            batch_size=int(section.get("batch_size", 500)),
        )


@dataclass(slots=True)
class IndexingSummary:
    status: str = "success"
    message: str = ""
    evaluated_srt_files: int = 0
    total_srt_files: int = 0
    new_entries_added: int = 0

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "evaluatedSrtFiles": self.evaluated_srt_files,
            "totalSrtFiles": self.total_srt_files,
            "newEntriesAdded": self.new_entries_added,
        }


def find_duplicate_ids(entries: Iterable[SearchEntry]) -> dict[str, int]:
    """Return ids that occur more than once, with their counts."""
    counts = Counter(entry.id for entry in entries)
    return {entry_id: count for entry_id, count in counts.items() if count > 1}


def build_index(entries: Sequence[SearchEntry], *, batch_size: int = 500) -> SearchIndex:
    """Build a fresh index; duplicate ids are reported but still inserted."""
    duplicates = find_duplicate_ids(entries)
    if duplicates:
        LOGGER.error(
            "Found %d duplicate search entry id(s): %s",
            len(duplicates),
            ", ".join(f"{entry_id} (x{count})" for entry_id, count in sorted(duplicates.items())),
        )

    started = time.perf_counter()
    index = SearchIndex()
    index.insert_multiple(entries, batch_size=batch_size)
    LOGGER.info(
        "Built search index with %d entries in %.0fms.",
        index.count(),
        (time.perf_counter() - started) * 1000,
    )
    return index


def persist_index(
    store: BlobStore,
    key: str,
    index: SearchIndex,
    settings: IndexingSettings,
) -> int:
    """Serialize ``index`` and replace the file at ``key``; returns the byte size.

    Raises:
        IndexPersistError: if serialization or the write fails.
    """
    try:
        data = serialize(index, settings.compression, chunk_bytes=settings.stream_chunk_bytes)
        store.save_file(key, data)
    except Exception as exc:  # noqa: BLE001
        raise IndexPersistError(f"Failed to persist search index to {key}: {exc}") from exc
    LOGGER.info("Saved search index to %s (%d bytes).", key, len(data))
    return len(data)


def list_transcripts(store: BlobStore, layout: StorageLayout) -> list[str]:
    """Return every ``.srt`` key one level below the transcripts prefix."""
    keys: list[str] = []
    for podcast_dir in store.list_directories(layout.transcripts_prefix):
        keys.extend(
            key for key in store.list_files(podcast_dir) if key.endswith(TRANSCRIPT_EXTENSION)
        )
    return keys


def run_indexing(
    store: BlobStore,
    *,
    layout: StorageLayout | None = None,
    settings: IndexingSettings | None = None,
    extraction: ExtractionSettings | None = None,
    notifier: IndexRefreshNotifier | None = None,
    force: bool = False,
) -> IndexingSummary:
    """Rebuild the persisted search index and return a summary; never raises past this call."""
    layout = layout or StorageLayout()
    settings = settings or IndexingSettings()
    summary = IndexingSummary()

    try:
        manifest = load_manifest(store, layout.episode_manifest_key)
    except ManifestError as exc:
        LOGGER.error("%s", exc)
        return IndexingSummary(status="error", message=str(exc))

    try:
        transcript_keys = list_transcripts(store, layout)
    except OSError as exc:
        LOGGER.error("Failed to list transcripts: %s", exc)
        return IndexingSummary(status="error", message=f"Failed to list transcripts: {exc}")

    summary.total_srt_files = len(transcript_keys)
    LOGGER.info("Found %d transcript(s) to evaluate.", summary.total_srt_files)
    if not transcript_keys:
        summary.message = "No transcripts found; nothing to index."
        return summary

    stems_by_dir: dict[str, list[str]] = {}
    for key in transcript_keys:
        stems_by_dir.setdefault(key.rsplit("/", 1)[0], []).append(file_stem(key))

    extractor = SearchEntryExtractor(store, layout, manifest, extraction)
    all_entries: list[SearchEntry] = []
    for key in transcript_keys:
        summary.evaluated_srt_files += 1
        siblings = stems_by_dir.get(key.rsplit("/", 1)[0], [])
        if has_newer_version(file_stem(key), siblings):
            LOGGER.info("Skipping %s; a newer version exists.", key)
            continue
        try:
            entries = extractor.entries_for(key, force=force)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Failed to extract search entries from %s: %s", key, exc)
            continue
        all_entries.extend(entries)
        summary.new_entries_added += len(entries)

    index = build_index(all_entries, batch_size=settings.batch_size)
    del all_entries

    try:
        persist_index(store, layout.search_index_key, index, settings)
    except IndexPersistError as exc:
        LOGGER.error("%s", exc)
        summary.status = "error"
        summary.message = str(exc)
        return summary

    summary.message = (
        f"Indexed {summary.new_entries_added} entries from "
        f"{summary.evaluated_srt_files} of {summary.total_srt_files} transcript(s)."
    )
    LOGGER.info(summary.message)

    if summary.new_entries_added > 0 and notifier is not None:
        notifier.notify()
    return summary


def run_indexing_from_config(
    config: Mapping[str, Any],
    store: BlobStore,
    *,
    force: bool = False,
    notifier: IndexRefreshNotifier | None = None,
) -> IndexingSummary:
    """Convenience wrapper that reads every indexing setting from ``config``."""
    return run_indexing(
        store,
        layout=build_layout(config),
        settings=IndexingSettings.from_config(config),
        extraction=ExtractionSettings.from_config(config),
        notifier=notifier or IndexRefreshNotifier.from_config(config),
        force=force,
    )
