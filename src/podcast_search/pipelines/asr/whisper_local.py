"""Run transcription through a locally built whisper.cpp binary."""

from __future__ import annotations

import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar

from ...exceptions import ConfigurationError, ProviderError, ProviderTimeout
from ...utils.logging import get_logger

LOGGER = get_logger(__name__)

__all__ = ["WhisperCppProvider", "WhisperCppSettings", "build_whisper_cpp_provider"]


@dataclass(slots=True)
class WhisperCppSettings:
    """Location of the whisper.cpp checkout and the ggml model to load."""

    whisper_dir: Path
    model: str = "base.en"

    @property
    def binary_path(self) -> Path:
        return self.whisper_dir / "build" / "bin" / "whisper-cli"

    @property
    def model_path(self) -> Path:
        return self.whisper_dir / "models" / f"ggml-{self.model}.bin"

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> WhisperCppSettings:
        providers = config.get("providers")
        cpp_cfg = providers.get("whisper_cpp") if isinstance(providers, Mapping) else None
        if not isinstance(cpp_cfg, Mapping) or not cpp_cfg.get("whisper_dir"):
            raise ConfigurationError("Configuration missing 'providers.whisper_cpp.whisper_dir'.")
        return cls(
            whisper_dir=Path(str(cpp_cfg["whisper_dir"])).expanduser(),
            model=str(cpp_cfg.get("model", "base.en")),
        )


class WhisperCppProvider:
    """Spawn ``whisper-cli`` per chunk and read back the ``.srt`` it writes."""

    name: ClassVar[str] = "whisper-cpp"

    def __init__(self, settings: WhisperCppSettings) -> None:
        self.settings = settings
        self._active: subprocess.Popen[str] | None = None

    def validate(self) -> None:
        if not self.settings.binary_path.exists():
            raise ConfigurationError(
                f"whisper.cpp binary not found at {self.settings.binary_path}."
            )
        if not self.settings.model_path.exists():
            raise ConfigurationError(f"whisper.cpp model not found at {self.settings.model_path}.")

    def transcribe(
        self,
        audio_path: str | Path,
        *,
        prompt: str,
        response_format: str = "srt",
        timeout: float,
    ) -> str:
        if response_format != "srt":
            raise ProviderError(f"whisper.cpp provider only produces srt, not {response_format}.")

        audio_path = Path(audio_path)
        output_base = audio_path.with_suffix("")
        command = [
            str(self.settings.binary_path),
            "-m",
            str(self.settings.model_path),
            "-f",
            str(audio_path),
            "--output-srt",
            "-of",
            str(output_base),
            "--prompt",
            prompt,
        ]

        process = subprocess.Popen(  # noqa: S603 - command is constructed from trusted configuration
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        self._active = process
        try:
            _, stderr = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            process.kill()
            process.communicate()
            raise ProviderTimeout(
                f"whisper.cpp exceeded {timeout:.0f}s on {audio_path.name}; process killed."
            ) from exc
        finally:
            self._active = None

        if process.returncode != 0:
            raise ProviderError(
                f"whisper.cpp exited with code {process.returncode}: {(stderr or '').strip()}"
            )

        srt_path = Path(f"{output_base}.srt")
        if not srt_path.exists():
            raise ProviderError(f"whisper.cpp did not produce {srt_path}.")
        try:
            return srt_path.read_text(encoding="utf-8")
        finally:
            srt_path.unlink(missing_ok=True)

    def cancel(self) -> None:
        """Send SIGTERM to an in-flight whisper.cpp process, if any."""
        process = self._active
        if process is not None and process.poll() is None:
            LOGGER.warning("Terminating whisper.cpp process %s.", process.pid)
            process.terminate()


def build_whisper_cpp_provider(config: Mapping[str, object]) -> WhisperCppProvider:
    return WhisperCppProvider(WhisperCppSettings.from_config(config))
