"""Convert subtitle documents into search entries, cached per transcript."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ...storage.blob_store import BlobStore
from ...storage.paths import StorageLayout, file_stem
from ...utils.logging import get_logger
from ..transcript import SubtitleEntry, parse_srt
from .manifest import EpisodeManifest, EpisodeManifestEntry

__all__ = [
    "ExtractionSettings",
    "SearchEntry",
    "SearchEntryExtractor",
    "extract_search_entries",
]

LOGGER = get_logger(__name__)

_SENTENCE_END_RE = re.compile(r"[.!?]$")
_NEWLINES_RE = re.compile(r"\r?\n")


@dataclass(frozen=True, slots=True)
class SearchEntry:
    id: str
    text: str
    sequential_episode_id: str
    start_time_ms: int
    end_time_ms: int
    episode_published_unix_timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "sequentialEpisodeIdAsString": self.sequential_episode_id,
            "startTimeMs": self.start_time_ms,
            "endTimeMs": self.end_time_ms,
            "episodePublishedUnixTimestamp": self.episode_published_unix_timestamp,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> SearchEntry:
        return cls(
            id=str(payload["id"]),
            text=str(payload["text"]),
            sequential_episode_id=str(payload["sequentialEpisodeIdAsString"]),
            start_time_ms=int(payload["startTimeMs"]),
            end_time_ms=int(payload["endTimeMs"]),
            episode_published_unix_timestamp=int(payload["episodePublishedUnixTimestamp"]),
        )


@dataclass(slots=True)
class ExtractionSettings:
    """``group_lines`` merges consecutive cues into sentence-sized entries."""

    group_lines: bool = False
    min_chunk_ms: int = 15_000
    max_chunk_ms: int = 30_000

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> ExtractionSettings:
        section = config.get("indexing")
        if not isinstance(section, Mapping):
            return cls()
        return cls(
            group_lines=bool(section.get("group_lines", False)),
            min_chunk_ms=int(section.get("min_chunk_ms", 15_000)),
            max_chunk_ms=int(section.get("max_chunk_ms", 30_000)),
        )


def _clean_text(text: str) -> str:
    return _NEWLINES_RE.sub(" ", text).strip()


def extract_search_entries(
    subtitle_text: str,
    manifest_entry: EpisodeManifestEntry,
    settings: ExtractionSettings | None = None,
) -> list[SearchEntry]:
    """Return search entries for one subtitle document.

    Ids are ``{episodeId}_{startTimeMs}``; duplicates are not removed here.
    """
    settings = settings or ExtractionSettings()
    episode_id = str(manifest_entry.sequential_id)
    published_ms = manifest_entry.published_unix_ms

    lines = [
        (entry, cleaned)
        for entry in parse_srt(subtitle_text)
        if (cleaned := _clean_text(entry.text))
    ]
    if not lines:
        return []

    groups = _group_lines(lines, settings) if settings.group_lines else [[line] for line in lines]

    entries: list[SearchEntry] = []
    for group in groups:
        start_ms = group[0][0].start_ms
        entries.append(
            SearchEntry(
                id=f"{episode_id}_{start_ms}",
                text=" ".join(text for _, text in group).strip(),
                sequential_episode_id=episode_id,
                start_time_ms=start_ms,
                end_time_ms=group[-1][0].end_ms,
                episode_published_unix_timestamp=published_ms,
            )
        )
    return entries


def _group_lines(
    lines: Sequence[tuple[SubtitleEntry, str]],
    settings: ExtractionSettings,
) -> list[list[tuple[SubtitleEntry, str]]]:
    groups: list[list[tuple[SubtitleEntry, str]]] = []
    current: list[tuple[SubtitleEntry, str]] = []
    for index, line in enumerate(lines):
        current.append(line)
        duration = line[0].end_ms - current[0][0].start_ms
        is_last = index == len(lines) - 1
        if (
            is_last
            or duration >= settings.max_chunk_ms
            or (duration >= settings.min_chunk_ms and _SENTENCE_END_RE.search(line[1]))
        ):
            groups.append(current)
            current = []
    return groups


class SearchEntryExtractor:
    """Load cached search entries or derive and cache them from a transcript."""

    def __init__(
        self,
        store: BlobStore,
        layout: StorageLayout,
        manifest: EpisodeManifest,
        settings: ExtractionSettings | None = None,
    ) -> None:
        self.store = store
        self.layout = layout
        self.manifest = manifest
        self.settings = settings or ExtractionSettings()

    def entries_for(self, transcript_key: str, *, force: bool = False) -> list[SearchEntry]:
        """Return entries for ``transcript_key``, reusing the cached document unless ``force``."""
        cache_key = self.layout.search_entries_key_for_transcript(transcript_key)
        if not force:
            cached = self._load_cached(cache_key)
            if cached is not None:
                return cached
        return self.extract(transcript_key)

    def extract(self, transcript_key: str) -> list[SearchEntry]:
        """Derive entries and write the cache document.

        A transcript without a manifest entry is logged and skipped.
        """
        file_key = file_stem(transcript_key)
        manifest_entry = self.manifest.lookup(file_key)
        if manifest_entry is None:
            LOGGER.error(
                "No manifest entry for %s (file key %s); skipping it for indexing.",
                transcript_key,
                file_key,
            )
            return []

        subtitle_text = self.store.get_file(transcript_key).decode("utf-8")
        entries = extract_search_entries(subtitle_text, manifest_entry, self.settings)

        cache_key = self.layout.search_entries_key_for_transcript(transcript_key)
        payload = json.dumps([entry.to_dict() for entry in entries], indent=2, ensure_ascii=False)
        self.store.save_file(cache_key, payload.encode("utf-8"))
        LOGGER.debug("Saved %d search entries to %s.", len(entries), cache_key)
        return entries

    def _load_cached(self, cache_key: str) -> list[SearchEntry] | None:
        if not self.store.file_exists(cache_key):
            return None
        try:
            payload = json.loads(self.store.get_file(cache_key).decode("utf-8"))
            if not isinstance(payload, list):
                LOGGER.warning("Unexpected format in %s; regenerating.", cache_key)
                return None
            return [SearchEntry.from_dict(item) for item in payload]
        except (OSError, UnicodeDecodeError, ValueError, KeyError, TypeError) as exc:
            LOGGER.error("Could not load cached entries %s (%s); regenerating.", cache_key, exc)
            return None
