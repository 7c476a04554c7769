"""Tests for the FFmpeg helper utilities."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

from podcast_search.utils.ffmpeg import FFmpeg, FFmpegError


class FakeCompletedProcess:
    def __init__(self, returncode: int, stdout: str = "", stderr: str = "") -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def test_probe_returns_metadata(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    metadata = {"format": {"duration": "2100.5"}}

    def fake_run(*_args, **_kwargs):
        return FakeCompletedProcess(returncode=0, stdout=json.dumps(metadata))

    monkeypatch.setattr("subprocess.run", fake_run)
    ffmpeg = FFmpeg()

    assert ffmpeg.probe(tmp_path / "episode.mp3") == metadata
    assert ffmpeg.duration_seconds(tmp_path / "episode.mp3") == pytest.approx(2100.5)


def test_probe_failure_raises(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_run(*_args, **_kwargs):
        return FakeCompletedProcess(returncode=1, stderr="not found")

    monkeypatch.setattr("subprocess.run", fake_run)
    with pytest.raises(FFmpegError):
        FFmpeg().probe(tmp_path / "episode.mp3")


def test_duration_missing_raises(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_run(*_args, **_kwargs):
        return FakeCompletedProcess(returncode=0, stdout=json.dumps({"format": {}}))

    monkeypatch.setattr("subprocess.run", fake_run)
    with pytest.raises(FFmpegError):
        FFmpeg().duration_seconds(tmp_path / "episode.mp3")


def test_extract_segment_invokes_run(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    captured: dict[str, object] = {}

    def fake_run(*args, **kwargs):
        captured["command"] = list(args[0])
        captured["timeout"] = kwargs.get("timeout")
        return FakeCompletedProcess(returncode=0)

    monkeypatch.setattr("subprocess.run", fake_run)
    FFmpeg(ffmpeg_path="/opt/ffmpeg").extract_segment(
        tmp_path / "in.mp3",
        tmp_path / "out.mp3",
        start_seconds=1200.0,
        duration_seconds=900.25,
    )

    command = captured["command"]
    assert command[:3] == ["/opt/ffmpeg", "-hide_banner", "-y"]
    assert command[command.index("-ss") + 1] == "1200"
    assert command[command.index("-t") + 1] == "900.25"
    assert command[command.index("-c") + 1] == "copy"
    assert command[-1] == str(tmp_path / "out.mp3")
    assert captured["timeout"] == 600.0


def test_run_timeout_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(*_args, **_kwargs):
        raise subprocess.TimeoutExpired(cmd="ffmpeg", timeout=1)

    monkeypatch.setattr("subprocess.run", fake_run)
    with pytest.raises(FFmpegError):
        FFmpeg().run(["-i", "in.mp3", "out.mp3"], timeout=1)


def test_from_config_reads_paths() -> None:
    ffmpeg = FFmpeg.from_config({"ffmpeg": {"ffmpeg_path": "ff", "ffprobe_path": "fp"}})

    assert (ffmpeg.ffmpeg_path, ffmpeg.ffprobe_path) == ("ff", "fp")
