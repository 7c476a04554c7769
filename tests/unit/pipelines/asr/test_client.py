"""Tests for the retrying transcription client."""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar

import pytest

from podcast_search.exceptions import (
    ConfigurationError,
    ProviderError,
    ProviderTimeout,
    TranscriptionFailed,
)
from podcast_search.pipelines.asr import (
    RetryPolicy,
    TranscriptionClient,
    build_provider,
    build_transcription_client,
)

SRT = "1\n00:00:00,000 --> 00:00:01,000\nHello\n"


class ScriptedProvider:
    """Provider whose outcomes are queued per call."""

    name: ClassVar[str] = "scripted"

    def __init__(self, outcomes: list[str | Exception]) -> None:
        self.outcomes = outcomes
        self.calls: list[dict[str, object]] = []
        self.cancelled = False
        self.validated = False

    def validate(self) -> None:
        self.validated = True

    def transcribe(self, audio_path, *, prompt, response_format="srt", timeout):
        self.calls.append({"path": Path(audio_path), "prompt": prompt, "timeout": timeout})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def cancel(self) -> None:
        self.cancelled = True


@pytest.fixture
def audio(tmp_path: Path) -> Path:
    path = tmp_path / "chunk.mp3"
    path.write_bytes(b"\x00\x01")
    return path


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    recorded: list[float] = []
    monkeypatch.setattr("time.sleep", recorded.append)
    return recorded


def test_timeout_escalates_each_attempt(audio: Path, sleeps: list[float]) -> None:
    provider = ScriptedProvider([ProviderTimeout("slow"), ProviderError("502"), SRT])
    policy = RetryPolicy(max_attempts=3, base_timeout_seconds=120, backoff_seconds=1)
    client = TranscriptionClient(provider, policy)

    assert client.transcribe(audio, prompt="Podcast intro") == SRT
    assert [call["timeout"] for call in provider.calls] == [120, 240, 360]
    assert sleeps == [1, 2]


def test_exhausted_retries_raise_transcription_failed(audio: Path, sleeps: list[float]) -> None:
    provider = ScriptedProvider([ProviderTimeout("slow")] * 3)
    client = TranscriptionClient(provider, RetryPolicy(3, base_timeout_seconds=10))

    with pytest.raises(TranscriptionFailed) as excinfo:
        client.transcribe(audio, prompt="Podcast intro")

    error = excinfo.value
    assert error.filename == "chunk.mp3"
    assert error.provider == "scripted"
    assert error.attempts == 3
    assert isinstance(error.last_error, ProviderTimeout)
    assert len(sleeps) == 2


def test_missing_prompt_is_not_retried(audio: Path, sleeps: list[float]) -> None:
    provider = ScriptedProvider([SRT])
    client = TranscriptionClient(provider)

    with pytest.raises(ConfigurationError):
        client.transcribe(audio, prompt="  ")
    assert provider.calls == []
    assert sleeps == []


def test_missing_audio_file_raises(tmp_path: Path) -> None:
    client = TranscriptionClient(ScriptedProvider([SRT]))

    with pytest.raises(FileNotFoundError):
        client.transcribe(tmp_path / "absent.mp3", prompt="Podcast intro")


def test_terminate_active_cancels_provider() -> None:
    provider = ScriptedProvider([])
    TranscriptionClient(provider).terminate_active()

    assert provider.cancelled


def test_retry_policy_from_config() -> None:
    policy = RetryPolicy.from_config(
        {"transcription": {"max_attempts": 4, "base_timeout_seconds": 60, "backoff_seconds": 0.5}}
    )

    assert policy.timeout_for(4) == 240
    assert policy.backoff_for(3) == 2.0


def test_build_client_validates_injected_provider() -> None:
    provider = ScriptedProvider([])
    client = build_transcription_client({"transcription": {"max_attempts": 2}}, provider=provider)

    assert provider.validated
    assert client.policy.max_attempts == 2


def test_unknown_provider_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        build_provider({"transcription": {"provider": "carrier-pigeon"}})
