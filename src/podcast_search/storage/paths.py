"""Helpers for deriving blob store keys and local paths from configuration."""

from __future__ import annotations

import posixpath
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .blob_store import join_key

__all__ = ["StorageLayout", "build_layout", "file_stem", "podcast_of", "resolve_local_path"]

AUDIO_EXTENSION = ".mp3"
TRANSCRIPT_EXTENSION = ".srt"
SEARCH_ENTRIES_EXTENSION = ".json"


def resolve_local_path(value: str | Path, *, relative_to: Path | None = None) -> Path:
    """Return an absolute path, interpreting relative paths from ``relative_to``."""
    path = Path(value).expanduser()
    if not path.is_absolute() and relative_to is not None:
        path = relative_to / path
    return path.resolve()


def podcast_of(key: str) -> str:
    """Return the collection name, i.e. the parent directory of ``key``."""
    return posixpath.basename(posixpath.dirname(key.rstrip("/")))


def file_stem(key: str) -> str:
    """Return the basename of ``key`` without its extension (the file key)."""
    return posixpath.splitext(posixpath.basename(key))[0]


@dataclass(frozen=True, slots=True)
class StorageLayout:
    """Logical key layout shared by every pipeline stage."""

    audio_prefix: str = "audio/"
    transcripts_prefix: str = "transcripts/"
    search_entries_prefix: str = "search-entries/"
    search_index_key: str = "search-index/search_index.bin"
    episode_manifest_key: str = "episode-manifest/full-episode-manifest.json"
    lockfile_key: str = "transcripts/.processing-lock.json"

    # Convenience helpers -------------------------------------------------
    def audio_dir(self, podcast: str) -> str:
        return join_key(self.audio_prefix, podcast)

    def transcripts_dir(self, podcast: str) -> str:
        return join_key(self.transcripts_prefix, podcast)

    def search_entries_dir(self, podcast: str) -> str:
        return join_key(self.search_entries_prefix, podcast)

    def transcript_key(self, podcast: str, file_key: str) -> str:
        return join_key(self.transcripts_prefix, podcast, f"{file_key}{TRANSCRIPT_EXTENSION}")

    def search_entries_key(self, podcast: str, file_key: str) -> str:
        return join_key(
            self.search_entries_prefix, podcast, f"{file_key}{SEARCH_ENTRIES_EXTENSION}"
        )

    def transcript_key_for_audio(self, audio_key: str) -> str:
        """Map ``audio/{podcast}/{fileKey}.mp3`` to ``transcripts/{podcast}/{fileKey}.srt``."""
        return self.transcript_key(podcast_of(audio_key), file_stem(audio_key))

    def search_entries_key_for_transcript(self, transcript_key: str) -> str:
        return self.search_entries_key(podcast_of(transcript_key), file_stem(transcript_key))


def build_layout(config: Mapping[str, object]) -> StorageLayout:
    """Construct a :class:`StorageLayout` from the ``storage`` config section."""
    section = config.get("storage")
    if not isinstance(section, Mapping):
        raise ValueError("Configuration is missing the 'storage' section.")

    defaults = StorageLayout()
    return StorageLayout(
        audio_prefix=str(section.get("audio_prefix", defaults.audio_prefix)),
        transcripts_prefix=str(section.get("transcripts_prefix", defaults.transcripts_prefix)),
        search_entries_prefix=str(
            section.get("search_entries_prefix", defaults.search_entries_prefix)
        ),
        search_index_key=str(section.get("search_index_key", defaults.search_index_key)),
        episode_manifest_key=str(
            section.get("episode_manifest_key", defaults.episode_manifest_key)
        ),
        lockfile_key=str(section.get("lockfile_key", defaults.lockfile_key)),
    )
