"""Episode manifest: the mapping from transcript file keys to stable episode ids."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from ...exceptions import ManifestError
from ...storage.blob_store import BlobStore
from ...utils.logging import get_logger

__all__ = ["EpisodeManifest", "EpisodeManifestEntry", "load_manifest"]

LOGGER = get_logger(__name__)


def _iso_to_epoch_ms(value: str) -> int:
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


@dataclass(frozen=True, slots=True)
class EpisodeManifestEntry:
    sequential_id: int
    file_key: str
    published_at: str

    @property
    def published_unix_ms(self) -> int:
        return _iso_to_epoch_ms(self.published_at)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> EpisodeManifestEntry:
        return cls(
            sequential_id=int(payload["sequentialId"]),
            file_key=str(payload["fileKey"]),
            published_at=str(payload["publishedAt"]),
        )


class EpisodeManifest:
    """Lookup of manifest entries by file key."""

    def __init__(self, entries: Iterable[EpisodeManifestEntry]) -> None:
        self.entries = list(entries)
        self._by_file_key = {entry.file_key: entry for entry in self.entries}

    def __len__(self) -> int:
        return len(self.entries)

    def lookup(self, file_key: str) -> EpisodeManifestEntry | None:
        return self._by_file_key.get(file_key)

    @classmethod
    def from_dict(cls, payload: Any) -> EpisodeManifest:
        if not isinstance(payload, Mapping) or not isinstance(payload.get("episodes"), list):
            raise ManifestError("Episode manifest is missing the 'episodes' array.")
        entries: list[EpisodeManifestEntry] = []
        for raw in payload["episodes"]:
            try:
                entries.append(EpisodeManifestEntry.from_dict(raw))
            except (KeyError, TypeError, ValueError) as exc:
                LOGGER.warning("Ignoring malformed manifest episode %r: %s", raw, exc)
        return cls(entries)


def load_manifest(store: BlobStore, key: str) -> EpisodeManifest:
    """Read the manifest from the blob store.

    Raises:
        ManifestError: if the document is missing, unreadable or malformed.
    """
    try:
        payload = json.loads(store.get_file(key).decode("utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ManifestError(f"Failed to load episode manifest from {key}: {exc}") from exc

    manifest = EpisodeManifest.from_dict(payload)
    if not len(manifest):
        LOGGER.warning("Episode manifest %s is empty; no transcripts can be indexed.", key)
    else:
        LOGGER.info("Loaded %d episodes from manifest %s.", len(manifest), key)
    return manifest
