"""Helpers for building and parsing episode file keys.

A file key identifies one downloaded audio file and every artifact derived from it::

    2024-03-01_Episode_12_The_Big_Match--1709312345678
    |________| |__________________________| |___________|
       date          sanitised title          downloaded-at (ms)

Keys produced before re-download tracking lack the ``--{ms}`` suffix and are still accepted.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from datetime import date, datetime, timezone

__all__ = [
    "SourceFileKey",
    "build_file_key",
    "has_downloaded_at_timestamp",
    "parse_file_key",
    "sanitise_title",
]

MAX_TITLE_LENGTH = 50

_DOWNLOADED_AT_RE = re.compile(r"--(\d{13})$")
_FILE_KEY_RE = re.compile(r"^(?P<date>\d{4}-\d{2}-\d{2})_(?P<title>.+?)(?:--(?P<ms>\d{13}))?$")
_NON_ALNUM_RE = re.compile(r"[^\w]|_", re.UNICODE)
_UNDERSCORE_RUN_RE = re.compile(r"_+")


@dataclass(frozen=True, slots=True)
class SourceFileKey:
    """Structured information encoded in a file key."""

    date: str
    title: str
    downloaded_at_ms: int | None = None

    @property
    def downloaded_at(self) -> datetime | None:
        if self.downloaded_at_ms is None:
            return None
        return datetime.fromtimestamp(self.downloaded_at_ms / 1000, tz=timezone.utc)

    def same_episode(self, other: SourceFileKey) -> bool:
        """Return True when both keys describe the same publish date and title."""
        return self.date == other.date and self.title == other.title

    def __str__(self) -> str:
        base = f"{self.date}_{self.title}"
        if self.downloaded_at_ms is None:
            return base
        return f"{base}--{self.downloaded_at_ms:013d}"


def sanitise_title(title: str) -> str:
    """Return a filesystem-safe title: alphanumerics joined by single underscores."""
    normalised = unicodedata.normalize("NFC", title or "")
    replaced = _NON_ALNUM_RE.sub("_", normalised)
    collapsed = _UNDERSCORE_RUN_RE.sub("_", replaced).strip("_")
    return collapsed[:MAX_TITLE_LENGTH]


def build_file_key(
    published_at: date | datetime | str,
    title: str,
    downloaded_at: datetime | int | None = None,
) -> str:
    """Return the file key for an episode download."""
    if isinstance(published_at, str):
        published_at = datetime.fromisoformat(published_at.replace("Z", "+00:00"))
    day = published_at.date() if isinstance(published_at, datetime) else published_at

    downloaded_ms: int | None
    if isinstance(downloaded_at, datetime):
        downloaded_ms = int(downloaded_at.timestamp() * 1000)
    else:
        downloaded_ms = downloaded_at

    return str(SourceFileKey(day.isoformat(), sanitise_title(title), downloaded_ms))


def has_downloaded_at_timestamp(file_key: str) -> bool:
    return bool(_DOWNLOADED_AT_RE.search(file_key))


def parse_file_key(file_key: str) -> SourceFileKey:
    """Parse ``file_key`` into its components.

    Raises:
        ValueError: if the key does not follow either supported format.
    """
    match = _FILE_KEY_RE.match(file_key or "")
    if not match:
        raise ValueError(f"Invalid file key format: {file_key!r}")

    try:
        date.fromisoformat(match.group("date"))
    except ValueError as exc:
        raise ValueError(f"Invalid date in file key: {file_key!r}") from exc

    raw_ms = match.group("ms")
    return SourceFileKey(
        date=match.group("date"),
        title=match.group("title"),
        downloaded_at_ms=int(raw_ms) if raw_ms else None,
    )
