"""Split long or large source audio into time-offset chunks for transcription."""

from __future__ import annotations

import shutil
import tempfile
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from ..utils.ffmpeg import FFmpeg
from ..utils.logging import get_logger

__all__ = [
    "AudioChunkPlanner",
    "ChunkingSettings",
    "TranscriptionChunk",
    "cleanup_stale_process_dirs",
    "needs_chunking",
    "plan_boundaries",
]

LOGGER = get_logger(__name__)

BYTES_PER_MB = 1024 * 1024


@dataclass(frozen=True, slots=True)
class TranscriptionChunk:
    start_seconds: float
    end_seconds: float
    local_path: Path

    @property
    def duration_seconds(self) -> float:
        return self.end_seconds - self.start_seconds


@dataclass(slots=True)
class ChunkingSettings:
    max_file_size_mb: float = 25.0
    max_duration_minutes: float = 20.0
    chunk_duration_minutes: float = 20.0
    temp_root: Path = Path(tempfile.gettempdir()) / "podcast-search"
    stale_temp_dir_hours: float = 2.0

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> ChunkingSettings:
        section = config.get("transcription")
        if not isinstance(section, Mapping):
            return cls()
        defaults = cls()
        temp_root = section.get("temp_root")
        return cls(
            max_file_size_mb=float(section.get("max_file_size_mb", defaults.max_file_size_mb)),
            max_duration_minutes=float(
                section.get("max_duration_minutes", defaults.max_duration_minutes)
            ),
            chunk_duration_minutes=float(
                section.get("chunk_duration_minutes", defaults.chunk_duration_minutes)
            ),
            temp_root=Path(str(temp_root)).expanduser() if temp_root else defaults.temp_root,
            stale_temp_dir_hours=float(
                section.get("stale_temp_dir_hours", defaults.stale_temp_dir_hours)
            ),
        )


def needs_chunking(size_mb: float, duration_minutes: float, settings: ChunkingSettings) -> bool:
    return size_mb > settings.max_file_size_mb or duration_minutes > settings.max_duration_minutes


def plan_boundaries(duration_seconds: float, chunk_seconds: float) -> list[tuple[float, float]]:
    """Return contiguous ``(start, end)`` pairs; the last end equals ``duration_seconds``."""
    if chunk_seconds <= 0:
        raise ValueError("chunk_seconds must be positive.")
    boundaries: list[tuple[float, float]] = []
    start = 0.0
    while start < duration_seconds:
        end = min(start + chunk_seconds, duration_seconds)
        boundaries.append((start, end))
        start = end
    return boundaries


class AudioChunkPlanner:
    """Materialise chunks under ``{temp_root}/{process_id}`` for one worker process."""

    def __init__(self, ffmpeg: FFmpeg, settings: ChunkingSettings, process_id: str) -> None:
        self.ffmpeg = ffmpeg
        self.settings = settings
        self.process_id = process_id

    @property
    def process_dir(self) -> Path:
        return self.settings.temp_root / self.process_id

    def stage_source(self, file_key: str, data: bytes) -> Path:
        """Write the downloaded source audio into the process directory."""
        self.process_dir.mkdir(parents=True, exist_ok=True)
        path = self.process_dir / f"{file_key}.mp3"
        path.write_bytes(data)
        return path

    def plan(self, source_path: Path, file_key: str) -> list[TranscriptionChunk]:
        """Return the chunks to transcribe, in order.

        Small, short files come back as one chunk pointing at ``source_path`` itself.
        """
        size_mb = source_path.stat().st_size / BYTES_PER_MB
        duration = self.ffmpeg.duration_seconds(source_path)
        duration_minutes = duration / 60.0

        if not needs_chunking(size_mb, duration_minutes, self.settings):
            LOGGER.info(
                "%s is %.2fMB and %.2f minutes; processing as a single chunk.",
                file_key,
                size_mb,
                duration_minutes,
            )
            return [TranscriptionChunk(0.0, duration, source_path)]

        reasons: list[str] = []
        if size_mb > self.settings.max_file_size_mb:
            reasons.append(f"too large ({size_mb:.2f}MB > {self.settings.max_file_size_mb}MB)")
        if duration_minutes > self.settings.max_duration_minutes:
            reasons.append(
                f"too long ({duration_minutes:.2f} min > {self.settings.max_duration_minutes} min)"
            )
        LOGGER.info("%s is %s; splitting into chunks.", file_key, " and ".join(reasons))

        boundaries = plan_boundaries(duration, self.settings.chunk_duration_minutes * 60.0)
        chunks: list[TranscriptionChunk] = []
        self.process_dir.mkdir(parents=True, exist_ok=True)
        try:
            for number, (start, end) in enumerate(boundaries, start=1):
                output = self.process_dir / f"{file_key}.part{number}.mp3"
                self.ffmpeg.extract_segment(
                    source_path,
                    output,
                    start_seconds=start,
                    duration_seconds=end - start,
                )
                chunks.append(TranscriptionChunk(start, end, output))
                LOGGER.debug(
                    "Created chunk %d/%d: %s (%.1fs - %.1fs).",
                    number,
                    len(boundaries),
                    output.name,
                    start,
                    end,
                )
        except Exception:
            for chunk in chunks:
                chunk.local_path.unlink(missing_ok=True)
            raise

        LOGGER.info("Split %s into %d chunks.", file_key, len(chunks))
        return chunks

    def cleanup(self) -> None:
        """Remove the process directory and everything left in it."""
        if self.process_dir.exists():
            shutil.rmtree(self.process_dir, ignore_errors=True)
            LOGGER.debug("Removed temporary directory %s.", self.process_dir)


def cleanup_stale_process_dirs(
    temp_root: Path,
    max_age_seconds: float,
    *,
    keep: str | None = None,
    now: float | None = None,
) -> int:
    """Delete process directories under ``temp_root`` older than ``max_age_seconds``."""
    if not temp_root.exists():
        return 0
    current = now if now is not None else time.time()
    removed = 0
    for child in temp_root.iterdir():
        if not child.is_dir() or child.name == keep:
            continue
        try:
            age = current - child.stat().st_mtime
        except OSError:
            continue
        if age > max_age_seconds:
            shutil.rmtree(child, ignore_errors=True)
            removed += 1
            LOGGER.info("Removed stale temporary directory %s (%.1fh old).", child, age / 3600)
    return removed
