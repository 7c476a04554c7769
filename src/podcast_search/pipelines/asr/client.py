"""Retrying transcription client shared by every provider."""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Protocol

from ...exceptions import ConfigurationError, ProviderError, TranscriptionFailed
from ...utils.logging import get_logger

LOGGER = get_logger(__name__)

__all__ = ["RetryPolicy", "SpeechToTextProvider", "TranscriptionClient"]


class SpeechToTextProvider(Protocol):
    """Anything that turns a local audio file into subtitle text."""

    name: ClassVar[str]

    def validate(self) -> None: ...

    def transcribe(
        self,
        audio_path: str | Path,
        *,
        prompt: str,
        response_format: str = "srt",
        timeout: float,
    ) -> str: ...

    def cancel(self) -> None: ...


@dataclass(slots=True)
class RetryPolicy:
    """Attempt ``n`` runs with ``n * base_timeout_seconds`` and backs off exponentially."""

    max_attempts: int = 3
    base_timeout_seconds: float = 120.0
    backoff_seconds: float = 1.0

    def timeout_for(self, attempt: int) -> float:
        return attempt * self.base_timeout_seconds

    def backoff_for(self, attempt: int) -> float:
        return self.backoff_seconds * (2 ** (attempt - 1))

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> RetryPolicy:
        section = config.get("transcription")
        if not isinstance(section, Mapping):
            return cls()
        return cls(
            max_attempts=int(section.get("max_attempts", 3)),
            base_timeout_seconds=float(section.get("base_timeout_seconds", 120.0)),
            backoff_seconds=float(section.get("backoff_seconds", 1.0)),
        )


class TranscriptionClient:
    """Call a provider with escalating timeouts until it succeeds or attempts run out."""

    def __init__(self, provider: SpeechToTextProvider, policy: RetryPolicy | None = None) -> None:
        self.provider = provider
        self.policy = policy or RetryPolicy()

    def transcribe(
        self,
        audio_path: str | Path,
        *,
        prompt: str | None,
        response_format: str = "srt",
    ) -> str:
        """Return subtitle text for ``audio_path``.

        Raises:
            ConfigurationError: if ``prompt`` is missing (not retried).
            TranscriptionFailed: once every attempt has failed.
        """
        if not prompt or not prompt.strip():
            raise ConfigurationError("A transcription prompt is required.")

        audio_path = Path(audio_path)
        if not audio_path.exists():
            raise FileNotFoundError(audio_path)

        attempts = self.policy.max_attempts
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            timeout = self.policy.timeout_for(attempt)
            LOGGER.info(
                "Transcribing %s via %s (attempt %d/%d, timeout %.0fs).",
                audio_path.name,
                self.provider.name,
                attempt,
                attempts,
                timeout,
            )
            started = time.monotonic()
            try:
                text = self.provider.transcribe(
                    audio_path,
                    prompt=prompt,
                    response_format=response_format,
                    timeout=timeout,
                )
            except (ProviderError, OSError) as exc:
                last_error = exc
                LOGGER.warning(
                    "Attempt %d/%d for %s failed: %s", attempt, attempts, audio_path.name, exc
                )
            else:
                LOGGER.info(
                    "Transcribed %s in %.1fs.", audio_path.name, time.monotonic() - started
                )
                return text

            if attempt < attempts:
                delay = self.policy.backoff_for(attempt)
                LOGGER.info("Retrying %s in %.1fs.", audio_path.name, delay)
                time.sleep(delay)

        raise TranscriptionFailed(audio_path.name, self.provider.name, attempts, last_error)

    def terminate_active(self) -> None:
        """Stop any in-flight provider call (used by interrupt handlers)."""
        self.provider.cancel()
