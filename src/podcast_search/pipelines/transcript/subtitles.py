"""SRT parsing and rendering helpers."""

from __future__ import annotations

import math
import re
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import timedelta

import srt

from ...utils.logging import get_logger

__all__ = [
    "SubtitleEntry",
    "format_srt_timestamp",
    "parse_srt",
    "parse_srt_timestamp",
    "render_srt",
]

LOGGER = get_logger(__name__)

_BLOCK_SPLIT_RE = re.compile(r"\r?\n[ \t]*\r?\n")
_TIMING_RE = re.compile(r"^\s*(?P<start>\S+)\s*-->\s*(?P<end>\S+)")


@dataclass(frozen=True, slots=True)
class SubtitleEntry:
    """One subtitle cue; times are relative to the start of the unchunked audio."""

    sequence_id: int
    start_seconds: float
    end_seconds: float
    text: str

    @property
    def start_time(self) -> str:
        return format_srt_timestamp(self.start_seconds)

    @property
    def end_time(self) -> str:
        return format_srt_timestamp(self.end_seconds)

    @property
    def start_ms(self) -> int:
        return int(round(self.start_seconds * 1000))

    @property
    def end_ms(self) -> int:
        return int(round(self.end_seconds * 1000))

    def shifted(self, offset_seconds: float) -> SubtitleEntry:
        return replace(
            self,
            start_seconds=self.start_seconds + offset_seconds,
            end_seconds=self.end_seconds + offset_seconds,
        )


def format_srt_timestamp(value: float) -> str:
    """Return ``HH:MM:SS,mmm`` for a number of seconds."""
    return srt.timedelta_to_srt_timestamp(timedelta(milliseconds=round(max(value, 0.0) * 1000)))


def parse_srt_timestamp(value: str) -> float:
    """Return seconds for an SRT timestamp.

    Raises:
        ValueError: if the value is not a finite SRT timestamp.
    """
    seconds = srt.srt_timestamp_to_timedelta(value.strip()).total_seconds()
    if not math.isfinite(seconds):
        raise ValueError(f"Non-finite timestamp: {value!r}")
    return seconds


def parse_srt(content: str) -> list[SubtitleEntry]:
    """Parse SRT text into entries, dropping blocks whose timing line cannot be read.

    Some providers emit cues such as ``NaN:NaN:NaN,NaN --> ...``; those cues are discarded
    individually rather than failing the whole document.
    """
    entries: list[SubtitleEntry] = []
    text = (content or "").lstrip("\ufeff").strip()
    if not text:
        return entries

    for block in _BLOCK_SPLIT_RE.split(text):
        lines = block.strip().splitlines()
        timing_index = next((i for i, line in enumerate(lines) if "-->" in line), None)
        if timing_index is None:
            LOGGER.debug("Skipping SRT block without a timing line: %r", block[:80])
            continue

        match = _TIMING_RE.match(lines[timing_index])
        try:
            if match is None:
                raise ValueError(lines[timing_index])
            start = parse_srt_timestamp(match.group("start"))
            end = parse_srt_timestamp(match.group("end"))
        except ValueError as exc:
            LOGGER.warning("Discarding subtitle with invalid timestamps (%s).", exc)
            continue

        sequence_id = len(entries) + 1
        if timing_index > 0 and lines[timing_index - 1].strip().isdigit():
            sequence_id = int(lines[timing_index - 1].strip())

        body = "\n".join(line.rstrip() for line in lines[timing_index + 1 :]).strip()
        entries.append(SubtitleEntry(sequence_id, start, end, body))

    return entries


def render_srt(entries: Iterable[SubtitleEntry]) -> str:
    """Render entries as SRT, preserving their order and sequence ids."""
    subtitles = [
        srt.Subtitle(
            index=entry.sequence_id,
            start=timedelta(milliseconds=entry.start_ms),
            end=timedelta(milliseconds=entry.end_ms),
            content=entry.text,
        )
        for entry in entries
    ]
    return srt.compose(subtitles, reindex=False)
