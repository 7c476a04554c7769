"""Tests for SRT parsing and rendering."""

from __future__ import annotations

import pytest

from podcast_search.pipelines.transcript import (
    SubtitleEntry,
    format_srt_timestamp,
    parse_srt,
    render_srt,
)
from podcast_search.pipelines.transcript.subtitles import parse_srt_timestamp

DOCUMENT = (
    "1\n00:00:00,000 --> 00:00:02,500\nWelcome to the show.\n\n"
    "2\n00:00:02,500 --> 00:00:05,000\nToday we talk\nabout tactics.\n"
)


def test_parse_srt_reads_entries() -> None:
    entries = parse_srt(DOCUMENT)

    assert entries == [
        SubtitleEntry(1, 0.0, 2.5, "Welcome to the show."),
        SubtitleEntry(2, 2.5, 5.0, "Today we talk\nabout tactics."),
    ]
    assert entries[1].start_time == "00:00:02,500"
    assert entries[1].end_ms == 5000


def test_parse_srt_handles_crlf_and_bom() -> None:
    entries = parse_srt("\ufeff" + DOCUMENT.replace("\n", "\r\n"))

    assert [entry.text for entry in entries] == [
        "Welcome to the show.",
        "Today we talk\nabout tactics.",
    ]


def test_parse_srt_drops_blocks_with_invalid_timestamps() -> None:
    document = DOCUMENT + "\n3\nNaN:NaN:NaN,NaN --> 00:00:06,000\nBroken\n"

    entries = parse_srt(document)

    assert [entry.sequence_id for entry in entries] == [1, 2]


def test_parse_srt_empty_document() -> None:
    assert parse_srt("") == []
    assert parse_srt("   \n") == []


def test_timestamp_helpers() -> None:
    assert format_srt_timestamp(3723.456) == "01:02:03,456"
    assert parse_srt_timestamp("01:02:03,456") == pytest.approx(3723.456)
    with pytest.raises(ValueError):
        parse_srt_timestamp("NaN:NaN:NaN,NaN")


def test_render_srt_preserves_sequence_ids() -> None:
    rendered = render_srt([SubtitleEntry(7, 1200.0, 1201.25, "Second half")])

    assert rendered == "7\n00:20:00,000 --> 00:20:01,250\nSecond half\n\n"
    assert parse_srt(rendered) == [SubtitleEntry(7, 1200.0, 1201.25, "Second half")]
