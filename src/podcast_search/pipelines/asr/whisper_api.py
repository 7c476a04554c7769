"""Client for the hosted OpenAI Whisper transcription API."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar

import requests
from requests import Session

from ...exceptions import ConfigurationError, ProviderError, ProviderTimeout
from ...utils.logging import get_logger

LOGGER = get_logger(__name__)

__all__ = ["WhisperAPIProvider", "WhisperAPISettings", "build_whisper_api_provider"]


@dataclass(slots=True)
class WhisperAPISettings:
    """Static configuration for the Whisper API client."""

    api_base_url: str = "https://api.openai.com/v1/audio/transcriptions"
    model: str = "whisper-1"
    api_key_env: str = "OPENAI_API_KEY"

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> WhisperAPISettings:
        providers = config.get("providers")
        api_cfg = providers.get("whisper_api") if isinstance(providers, Mapping) else None
        if not isinstance(api_cfg, Mapping):
            return cls()

        defaults = cls()
        return cls(
            api_base_url=str(api_cfg.get("api_base_url") or defaults.api_base_url),
            model=str(api_cfg.get("model") or defaults.model),
            api_key_env=str(api_cfg.get("api_key_env") or defaults.api_key_env),
        )


class WhisperAPIProvider:
    """Submit one audio file per call and return the subtitle text verbatim."""

    name: ClassVar[str] = "whisper-api"

    def __init__(self, settings: WhisperAPISettings, *, session: Session | None = None) -> None:
        self.settings = settings
        self._session = session or requests.Session()

    def validate(self) -> None:
        """Fail fast when the API key is not available."""
        self._build_headers()

    def transcribe(
        self,
        audio_path: str | Path,
        *,
        prompt: str,
        response_format: str = "srt",
        timeout: float,
    ) -> str:
        audio_path = Path(audio_path)
        headers = self._build_headers()
        payload = {
            "model": self.settings.model,
            "response_format": response_format,
            "prompt": prompt,
        }

        with audio_path.open("rb") as audio_handle:
            files = {"file": (audio_path.name, audio_handle, "audio/mpeg")}
            try:
                response = self._session.post(
                    self.settings.api_base_url,
                    timeout=timeout,
                    files=files,
                    data=payload,
                    headers=headers,
                )
            except requests.Timeout as exc:
                raise ProviderTimeout(
                    f"Whisper API did not respond within {timeout:.0f}s for {audio_path.name}."
                ) from exc
            except requests.RequestException as exc:
                raise ProviderError(f"Whisper API request failed: {exc}") from exc

        if response.status_code >= 400:
            raise ProviderError(
                f"Whisper API responded with status {response.status_code}: {response.text}"
            )
        return response.text

    def cancel(self) -> None:
        """Requests are bounded by their own timeout; dropping the pool aborts the rest."""
        self._session.close()

    def _build_headers(self) -> dict[str, str]:
        api_key = os.environ.get(self.settings.api_key_env)
        if not api_key:
            raise ConfigurationError(
                "Whisper API key not available. Set the environment variable "
                f"{self.settings.api_key_env}."
            )
        return {"Authorization": f"Bearer {api_key}"}


def build_whisper_api_provider(
    config: Mapping[str, object],
    *,
    session: Session | None = None,
) -> WhisperAPIProvider:
    return WhisperAPIProvider(WhisperAPISettings.from_config(config), session=session)
