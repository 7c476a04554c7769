"""Subtitle parsing, combination and rendering."""

from __future__ import annotations

from .combine import ChunkTranscript, combine_chunks, combine_srt
from .subtitles import SubtitleEntry, format_srt_timestamp, parse_srt, render_srt

__all__ = [
    "ChunkTranscript",
    "SubtitleEntry",
    "combine_chunks",
    "combine_srt",
    "format_srt_timestamp",
    "parse_srt",
    "render_srt",
]
