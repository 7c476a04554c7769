"""Speech-to-text providers and the retrying client that drives them."""

from __future__ import annotations

from collections.abc import Mapping

from requests import Session

from ...exceptions import ConfigurationError
from .client import RetryPolicy, SpeechToTextProvider, TranscriptionClient
from .whisper_api import WhisperAPIProvider, WhisperAPISettings, build_whisper_api_provider
from .whisper_local import WhisperCppProvider, WhisperCppSettings, build_whisper_cpp_provider

__all__ = [
    "RetryPolicy",
    "SpeechToTextProvider",
    "TranscriptionClient",
    "WhisperAPIProvider",
    "WhisperAPISettings",
    "WhisperCppProvider",
    "WhisperCppSettings",
    "build_provider",
    "build_transcription_client",
]


def build_provider(
    config: Mapping[str, object],
    *,
    session: Session | None = None,
) -> SpeechToTextProvider:
    """Return the provider named by ``transcription.provider``."""
    section = config.get("transcription")
    name = str(section.get("provider", "whisper-api")) if isinstance(section, Mapping) else ""
    if name == WhisperAPIProvider.name:
        return build_whisper_api_provider(config, session=session)
    if name == WhisperCppProvider.name:
        return build_whisper_cpp_provider(config)
    raise ConfigurationError(f"Unknown transcription provider: {name!r}")


def build_transcription_client(
    config: Mapping[str, object],
    *,
    provider: SpeechToTextProvider | None = None,
    session: Session | None = None,
) -> TranscriptionClient:
    """Build and validate a client so configuration errors surface before any work."""
    resolved = provider or build_provider(config, session=session)
    resolved.validate()
    return TranscriptionClient(resolved, RetryPolicy.from_config(config))
