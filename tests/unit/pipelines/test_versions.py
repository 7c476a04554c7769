"""Tests for resolving re-downloaded episodes."""

from __future__ import annotations

from podcast_search.pipelines.versions import (
    cleanup_older_transcripts,
    find_older_versions,
    has_newer_version,
)
from podcast_search.storage.blob_store import LocalBlobStore
from podcast_search.storage.paths import StorageLayout

OLD = "2024-03-01_Episode_12--1709312345678"
NEW = "2024-03-01_Episode_12--1709400000000"
OTHER = "2024-03-02_Episode_13--1709500000000"
LEGACY = "2024-03-01_Episode_12"


def test_has_newer_version() -> None:
    siblings = [OLD, NEW, OTHER, LEGACY]

    assert has_newer_version(OLD, siblings)
    assert not has_newer_version(NEW, siblings)
    assert not has_newer_version(OTHER, siblings)


def test_legacy_keys_never_have_newer_versions() -> None:
    assert not has_newer_version(LEGACY, [LEGACY, NEW])


def test_find_older_versions() -> None:
    assert find_older_versions(NEW, [OLD, NEW, OTHER]) == [OLD]
    assert find_older_versions(OLD, [OLD, NEW]) == []


def test_cleanup_older_transcripts_removes_artifacts(
    store: LocalBlobStore, layout: StorageLayout
) -> None:
    store.save_file(layout.transcript_key("show", OLD), b"old srt")
    store.save_file(layout.search_entries_key("show", OLD), b"[]")
    store.save_file(layout.transcript_key("show", OTHER), b"other srt")

    deleted = cleanup_older_transcripts(store, layout, "show", NEW)

    assert deleted == [
        layout.transcript_key("show", OLD),
        layout.search_entries_key("show", OLD),
    ]
    assert not store.file_exists(layout.transcript_key("show", OLD))
    assert store.file_exists(layout.transcript_key("show", OTHER))
