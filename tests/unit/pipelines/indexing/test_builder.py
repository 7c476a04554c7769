"""Tests for the full index rebuild."""

from __future__ import annotations

import json
import logging

import pytest

from podcast_search.pipelines.indexing import (
    IndexingSettings,
    SearchEntry,
    build_index,
    deserialize,
    find_duplicate_ids,
    run_indexing,
)
from podcast_search.storage.blob_store import LocalBlobStore
from podcast_search.storage.paths import StorageLayout

OLD = "2024-03-01_Episode_12--1709312345678"
NEW = "2024-03-01_Episode_12--1709400000000"
OTHER = "2024-03-08_Episode_13--1709900000000"


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls = 0

    def notify(self) -> bool:
        self.calls += 1
        return True


class FailingIndexStore(LocalBlobStore):
    def save_file(self, key: str, data: bytes) -> None:
        if key.startswith("search-index/"):
            raise OSError("bucket unavailable")
        super().save_file(key, data)


def srt(*lines: str) -> bytes:
    blocks = [
        f"{n}\n00:00:{n * 2 - 2:02d},000 --> 00:00:{n * 2:02d},000\n{text}\n"
        for n, text in enumerate(lines, start=1)
    ]
    return "\n".join(blocks).encode()


def seed(store: LocalBlobStore, *, include_manifest: bool = True) -> None:
    if include_manifest:
        manifest = {
            "episodes": [
                {"sequentialId": 12, "fileKey": NEW, "publishedAt": "2024-03-01T09:00:00Z"},
                {"sequentialId": 13, "fileKey": OTHER, "publishedAt": "2024-03-08T09:00:00Z"},
            ]
        }
        store.save_file(StorageLayout().episode_manifest_key, json.dumps(manifest).encode())
    store.save_file(f"transcripts/show/{OLD}.srt", srt("stale copy"))
    store.save_file(f"transcripts/show/{NEW}.srt", srt("Kick off", "late winner"))
    store.save_file(f"transcripts/show/{OTHER}.srt", srt("Transfer news"))


def make_entry(entry_id: str) -> SearchEntry:
    return SearchEntry(entry_id, "text", "1", 0, 1, 0)


def test_find_duplicate_ids() -> None:
    entries = [make_entry("1_0"), make_entry("1_0"), make_entry("1_5")]

    assert find_duplicate_ids(entries) == {"1_0": 2}


def test_build_index_logs_duplicates(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.ERROR):
        index = build_index([make_entry("1_0"), make_entry("1_0")], batch_size=1)

    assert index.count() == 2
    assert "duplicate search entry id" in caplog.text


def test_run_indexing_builds_and_persists(store: LocalBlobStore) -> None:
    seed(store)
    notifier = RecordingNotifier()

    summary = run_indexing(
        store, settings=IndexingSettings(compression="gzip"), notifier=notifier  # type: ignore[arg-type]
    )

    assert summary.to_dict() == {
        "status": "success",
        "message": summary.message,
        "evaluatedSrtFiles": 3,
        "totalSrtFiles": 3,
        "newEntriesAdded": 3,
    }
    assert notifier.calls == 1
    index = deserialize(store.get_file(StorageLayout().search_index_key), "gzip")
    assert index.search("late winner").ids == ["12_2000"]
    assert index.search("stale").count == 0
    assert store.file_exists(f"search-entries/show/{NEW}.json")
    assert not store.file_exists(f"search-entries/show/{OLD}.json")


def test_rerun_is_idempotent(store: LocalBlobStore) -> None:
    seed(store)
    first = run_indexing(store)
    cached = store.get_file(f"search-entries/show/{NEW}.json")

    second = run_indexing(store)

    assert second.new_entries_added == first.new_entries_added
    assert store.get_file(f"search-entries/show/{NEW}.json") == cached
    index = deserialize(store.get_file(StorageLayout().search_index_key), "brotli")
    assert index.count() == first.new_entries_added


def test_missing_manifest_returns_error_summary(store: LocalBlobStore) -> None:
    seed(store, include_manifest=False)

    summary = run_indexing(store)

    assert summary.status == "error"
    assert summary.evaluated_srt_files == 0
    assert summary.total_srt_files == 0
    assert not store.file_exists(StorageLayout().search_index_key)


def test_no_transcripts_is_a_successful_noop(store: LocalBlobStore) -> None:
    store.save_file(StorageLayout().episode_manifest_key, b'{"episodes": []}')
    notifier = RecordingNotifier()

    summary = run_indexing(store, notifier=notifier)  # type: ignore[arg-type]

    assert summary.ok
    assert summary.total_srt_files == 0
    assert notifier.calls == 0


def test_persist_failure_reports_error(tmp_path) -> None:
    store = FailingIndexStore(tmp_path / "blob-store")
    seed(store)
    notifier = RecordingNotifier()

    summary = run_indexing(store, notifier=notifier)  # type: ignore[arg-type]

    assert summary.status == "error"
    assert "bucket unavailable" in summary.message
    assert summary.evaluated_srt_files == 3
    assert notifier.calls == 0


def test_unreadable_transcript_is_skipped(store: LocalBlobStore) -> None:
    seed(store)
    store.save_file(f"transcripts/show/{OTHER}.srt", b"\xff\xfe\x00broken")

    summary = run_indexing(store)

    assert summary.ok
    assert summary.evaluated_srt_files == 3
    assert summary.new_entries_added == 2
