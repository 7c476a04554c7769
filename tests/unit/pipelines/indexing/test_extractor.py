"""Tests for search-entry extraction and caching."""

from __future__ import annotations

import json

import pytest

from podcast_search.exceptions import ManifestError
from podcast_search.pipelines.indexing import (
    EpisodeManifest,
    EpisodeManifestEntry,
    ExtractionSettings,
    SearchEntryExtractor,
    extract_search_entries,
    load_manifest,
)
from podcast_search.storage.blob_store import LocalBlobStore
from podcast_search.storage.paths import StorageLayout

FILE_KEY = "2024-03-01_Episode_12--1709312345678"
TRANSCRIPT_KEY = f"transcripts/show/{FILE_KEY}.srt"
CACHE_KEY = f"search-entries/show/{FILE_KEY}.json"
EPISODE = EpisodeManifestEntry(42, FILE_KEY, "2024-03-01T09:00:00.000Z")

DOCUMENT = (
    "1\n00:00:00,000 --> 00:00:05,000\nWelcome back\nto the show.\n\n"
    "2\n00:00:05,000 --> 00:00:09,500\n   \n\n"
    "3\n00:00:09,500 --> 00:00:16,000\nWe start with the derby\n\n"
    "4\n00:00:16,000 --> 00:00:20,000\nand the late winner.\n\n"
    "5\n00:00:20,000 --> 00:00:24,000\nThen transfers\n"
)


def test_one_entry_per_subtitle_line() -> None:
    entries = extract_search_entries(DOCUMENT, EPISODE)

    assert [entry.id for entry in entries] == ["42_0", "42_9500", "42_16000", "42_20000"]
    first = entries[0].to_dict()
    assert first == {
        "id": "42_0",
        "text": "Welcome back to the show.",
        "sequentialEpisodeIdAsString": "42",
        "startTimeMs": 0,
        "endTimeMs": 5000,
        "episodePublishedUnixTimestamp": 1709283600000,
    }


def test_grouped_entries_end_on_sentences() -> None:
    settings = ExtractionSettings(group_lines=True, min_chunk_ms=15_000, max_chunk_ms=30_000)

    entries = extract_search_entries(DOCUMENT, EPISODE, settings)

    assert [entry.id for entry in entries] == ["42_0", "42_20000"]
    assert entries[0].text == (
        "Welcome back to the show. We start with the derby and the late winner."
    )
    assert (entries[0].start_time_ms, entries[0].end_time_ms) == (0, 20000)
    assert entries[1].text == "Then transfers"


def test_grouped_entries_respect_max_duration() -> None:
    settings = ExtractionSettings(group_lines=True, min_chunk_ms=15_000, max_chunk_ms=16_000)

    entries = extract_search_entries(DOCUMENT, EPISODE, settings)

    assert [entry.id for entry in entries] == ["42_0", "42_16000"]


def test_extractor_writes_and_reuses_cache(store: LocalBlobStore) -> None:
    store.save_file(TRANSCRIPT_KEY, DOCUMENT.encode())
    extractor = SearchEntryExtractor(store, StorageLayout(), EpisodeManifest([EPISODE]))

    entries = extractor.entries_for(TRANSCRIPT_KEY)
    cached = json.loads(store.get_file(CACHE_KEY))
    assert [item["id"] for item in cached] == [entry.id for entry in entries]

    store.save_file(TRANSCRIPT_KEY, b"")
    assert extractor.entries_for(TRANSCRIPT_KEY) == entries
    assert extractor.entries_for(TRANSCRIPT_KEY, force=True) == []


@pytest.mark.parametrize("payload", [b"{not json", b'{"entries": []}'])
def test_corrupt_cache_is_regenerated(store: LocalBlobStore, payload: bytes) -> None:
    store.save_file(TRANSCRIPT_KEY, DOCUMENT.encode())
    store.save_file(CACHE_KEY, payload)
    extractor = SearchEntryExtractor(store, StorageLayout(), EpisodeManifest([EPISODE]))

    assert len(extractor.entries_for(TRANSCRIPT_KEY)) == 4
    assert isinstance(json.loads(store.get_file(CACHE_KEY)), list)


def test_transcript_without_manifest_entry_is_skipped(store: LocalBlobStore) -> None:
    store.save_file(TRANSCRIPT_KEY, DOCUMENT.encode())
    extractor = SearchEntryExtractor(store, StorageLayout(), EpisodeManifest([]))

    assert extractor.entries_for(TRANSCRIPT_KEY) == []
    assert not store.file_exists(CACHE_KEY)


def test_load_manifest(store: LocalBlobStore) -> None:
    key = StorageLayout().episode_manifest_key
    store.save_file(
        key,
        json.dumps(
            {
                "episodes": [
                    {"sequentialId": 42, "fileKey": FILE_KEY, "publishedAt": EPISODE.published_at},
                    {"fileKey": "missing-id"},
                ]
            }
        ).encode(),
    )

    manifest = load_manifest(store, key)

    assert len(manifest) == 1
    assert manifest.lookup(FILE_KEY) == EPISODE
    assert manifest.lookup("unknown") is None


@pytest.mark.parametrize("payload", [None, b"[]", b"not json"])
def test_load_manifest_errors(store: LocalBlobStore, payload: bytes | None) -> None:
    key = StorageLayout().episode_manifest_key
    if payload is not None:
        store.save_file(key, payload)

    with pytest.raises(ManifestError):
        load_manifest(store, key)
