"""Configuration loading helpers."""

from __future__ import annotations

from .load import ConfigError, load_config
from .site_config import (
    SiteConfigError,
    load_custom_corrections,
    load_site_config,
    require_transcription_prompt,
)

__all__ = [
    "ConfigError",
    "SiteConfigError",
    "load_config",
    "load_custom_corrections",
    "load_site_config",
    "require_transcription_prompt",
]
