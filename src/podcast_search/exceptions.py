"""Exception types for the transcription and indexing pipelines."""

from __future__ import annotations

__all__ = [
    "ConfigurationError",
    "IndexPersistError",
    "LockfileWriteError",
    "ManifestError",
    "ProviderError",
    "ProviderTimeout",
    "SerializationError",
    "TranscriptionFailed",
]


class ConfigurationError(RuntimeError):
    """Raised when required settings (prompt, credentials, binaries) are missing.

    These are fatal and surface before any file is touched.
    """


class ProviderError(RuntimeError):
    """Raised by a speech-to-text provider when a single call fails."""


class ProviderTimeout(ProviderError):
    """Raised when a provider call exceeds its per-attempt timeout."""


class TranscriptionFailed(RuntimeError):
    """Raised once every transcription attempt for a file has been exhausted."""

    def __init__(
        self,
        filename: str,
        provider: str,
        attempts: int,
        last_error: BaseException | None,
    ) -> None:
        self.filename = filename
        self.provider = provider
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Transcription of {filename} via {provider} failed after {attempts} attempt(s): "
            f"{last_error}"
        )


class LockfileWriteError(RuntimeError):
    """Raised when the shared lockfile cannot be persisted."""


class ManifestError(RuntimeError):
    """Raised when the episode manifest is missing or malformed."""


class SerializationError(RuntimeError):
    """Raised when an index cannot be encoded or decoded."""


class IndexPersistError(RuntimeError):
    """Raised when the rebuilt index cannot be written to the blob store."""
