"""FFmpeg command wrappers used to measure and split source audio."""

from __future__ import annotations

import json
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import cast

__all__ = ["FFmpeg", "FFmpegError"]


class FFmpegError(RuntimeError):
    """Raised when FFmpeg or FFprobe exits with a non-zero status."""


class FFmpeg:
    """Lightweight wrapper around FFmpeg and FFprobe commands."""

    def __init__(
        self,
        *,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        timeout_seconds: float | None = 600.0,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> FFmpeg:
        section = config.get("ffmpeg")
        if not isinstance(section, Mapping):
            return cls()
        return cls(
            ffmpeg_path=str(section.get("ffmpeg_path", "ffmpeg")),
            ffprobe_path=str(section.get("ffprobe_path", "ffprobe")),
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def probe(self, media_path: str | Path) -> dict[str, object]:
        """Return container metadata for the provided media file using ffprobe."""
        command = [
            self.ffprobe_path,
            "-v",
            "quiet",
            "-print_format",
            "json",
            "-show_format",
            str(media_path),
        ]
        result = subprocess.run(  # noqa: S603 - command constructed from trusted input
            command,
            check=False,
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            raise FFmpegError(
                f"ffprobe failed with code {result.returncode}: {result.stderr.strip()}"
            )
        try:
            payload = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise FFmpegError(f"ffprobe returned invalid JSON for {media_path}.") from exc
        if not isinstance(payload, dict):
            raise FFmpegError("ffprobe did not return a JSON object.")
        return cast(dict[str, object], payload)

    def duration_seconds(self, media_path: str | Path) -> float:
        """Return the container duration reported by ffprobe."""
        fmt = self.probe(media_path).get("format")
        raw = fmt.get("duration") if isinstance(fmt, dict) else None
        try:
            duration = float(raw)  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise FFmpegError(f"Could not determine duration for {media_path}.") from exc
        if duration < 0:
            raise FFmpegError(f"Negative duration reported for {media_path}.")
        return duration

    def extract_segment(
        self,
        input_path: str | Path,
        output_path: str | Path,
        *,
        start_seconds: float,
        duration_seconds: float,
    ) -> None:
        """Copy ``duration_seconds`` of audio starting at ``start_seconds`` without re-encoding.

        Timestamps are reset to zero in the output and corrupt frames are skipped so a
        damaged source still yields a usable slice.
        """
        command = [
            "-i",
            str(input_path),
            "-ss",
            _format_seconds(start_seconds),
            "-t",
            _format_seconds(duration_seconds),
            "-c",
            "copy",
            "-avoid_negative_ts",
            "make_zero",
            "-fflags",
            "+discardcorrupt",
            "-err_detect",
            "ignore_err",
            str(output_path),
        ]
        self.run(command)

    def run(self, args: Sequence[str], *, timeout: float | None = None) -> None:
        """Invoke FFmpeg with the provided arguments."""
        command = [self.ffmpeg_path, "-hide_banner", "-y", *args]
        effective_timeout = timeout if timeout is not None else self.timeout_seconds
        try:
            result = subprocess.run(  # noqa: S603 - command is constructed from trusted configuration
                command,
                check=False,
                capture_output=True,
                text=True,
                timeout=effective_timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise FFmpegError(f"FFmpeg timed out after {effective_timeout}s.") from exc
        if result.returncode != 0:
            raise FFmpegError(result.stderr.strip())


def _format_seconds(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".") or "0"
