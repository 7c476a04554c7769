"""Merge per-chunk subtitle documents into one timeline."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace

from ...utils.logging import get_logger
from .subtitles import SubtitleEntry, parse_srt, render_srt

__all__ = ["ChunkTranscript", "combine_chunks", "combine_srt"]

LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ChunkTranscript:
    """Subtitle text returned for one chunk plus the chunk's offset in the source audio."""

    subtitle_text: str
    start_offset_seconds: float


def combine_chunks(chunks: Sequence[ChunkTranscript]) -> list[SubtitleEntry]:
    """Return entries on the source-audio timeline, sorted by start time and renumbered.

    Entries with unreadable timestamps are dropped. Sorting is stable so entries that start
    at the same instant keep their chunk order.
    """
    if len(chunks) == 1:
        return parse_srt(chunks[0].subtitle_text)

    shifted: list[SubtitleEntry] = []
    for chunk in chunks:
        for entry in parse_srt(chunk.subtitle_text):
            shifted.append(entry.shifted(chunk.start_offset_seconds))

    shifted.sort(key=lambda entry: entry.start_seconds)
    return [replace(entry, sequence_id=index) for index, entry in enumerate(shifted, start=1)]


def combine_srt(chunks: Sequence[ChunkTranscript]) -> str:
    """Return the combined SRT document; a single chunk is returned byte-for-byte."""
    if not chunks:
        return ""
    if len(chunks) == 1:
        return chunks[0].subtitle_text

    entries = combine_chunks(chunks)
    LOGGER.info("Combined %d chunks into %d subtitle entries.", len(chunks), len(entries))
    return render_srt(entries)
