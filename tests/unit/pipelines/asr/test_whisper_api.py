"""Tests for the hosted Whisper API provider."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import requests

from podcast_search.exceptions import ConfigurationError, ProviderError, ProviderTimeout
from podcast_search.pipelines.asr.whisper_api import (
    WhisperAPIProvider,
    build_whisper_api_provider,
)

SRT = "1\n00:00:00,000 --> 00:00:01,500\nHello world\n"


class StubResponse:
    def __init__(self, status_code: int, text: str = "") -> None:
        self.status_code = status_code
        self.text = text


class StubSession:
    def __init__(self, responses: list[StubResponse | Exception]) -> None:
        self.responses = responses
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def post(self, url: str, **kwargs: Any) -> StubResponse:
        self.calls.append({"url": url, **kwargs})
        if not self.responses:
            raise AssertionError("No responses queued for StubSession")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self) -> None:
        self.closed = True


def base_config() -> dict[str, Any]:
    return {
        "providers": {
            "whisper_api": {
                "api_base_url": "https://api.example.com/v1/audio/transcriptions",
                "model": "whisper-1",
                "api_key_env": "TEST_OPENAI_KEY",
            }
        },
    }


def write_audio(tmp_path: Path) -> Path:
    audio_path = tmp_path / "episode.mp3"
    audio_path.write_bytes(b"\x00\x00")
    return audio_path


def make_provider(session: StubSession) -> WhisperAPIProvider:
    return build_whisper_api_provider(base_config(), session=session)  # type: ignore[arg-type]


def test_transcribe_success(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TEST_OPENAI_KEY", "secret")
    session = StubSession([StubResponse(200, SRT)])

    text = make_provider(session).transcribe(
        write_audio(tmp_path), prompt="Listen, Fair Play", timeout=240
    )

    assert text == SRT
    call = session.calls[0]
    assert call["url"] == "https://api.example.com/v1/audio/transcriptions"
    assert call["timeout"] == 240
    assert call["headers"] == {"Authorization": "Bearer secret"}
    assert call["data"] == {
        "model": "whisper-1",
        "response_format": "srt",
        "prompt": "Listen, Fair Play",
    }
    assert call["files"]["file"][0] == "episode.mp3"


def test_http_error_raises_provider_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TEST_OPENAI_KEY", "secret")
    session = StubSession([StubResponse(500, "server exploded")])

    with pytest.raises(ProviderError, match="500"):
        make_provider(session).transcribe(write_audio(tmp_path), prompt="p", timeout=1)


def test_request_timeout_raises_provider_timeout(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("TEST_OPENAI_KEY", "secret")
    session = StubSession([requests.Timeout("read timed out")])

    with pytest.raises(ProviderTimeout):
        make_provider(session).transcribe(write_audio(tmp_path), prompt="p", timeout=1)


def test_missing_api_key_fails_validation(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TEST_OPENAI_KEY", raising=False)

    with pytest.raises(ConfigurationError):
        make_provider(StubSession([])).validate()


def test_cancel_closes_session() -> None:
    session = StubSession([])
    make_provider(session).cancel()

    assert session.closed
