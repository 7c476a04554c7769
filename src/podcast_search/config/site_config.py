"""Helpers for loading per-site configuration and spelling correction lists."""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any, cast

from jsonschema import Draft7Validator

from ..exceptions import ConfigurationError

__all__ = [
    "SiteConfigError",
    "load_custom_corrections",
    "load_site_config",
    "require_transcription_prompt",
]

SCHEMA_PATH = Path(__file__).with_name("site_config_schema.json")


class SiteConfigError(ConfigurationError):
    """Raised when site configuration loading or validation fails."""


def load_site_config(config_path: str | Path, *, validate: bool = True) -> dict[str, Any]:
    """Load and optionally validate a per-site configuration."""
    path = Path(config_path)
    data = _read_json(path)
    if not isinstance(data, dict):
        raise SiteConfigError(f"Site configuration root must be an object: {path}")

    if validate:
        _validate_site_config(data)

    return data


def load_custom_corrections(corrections_path: str | Path | None) -> list[dict[str, Any]]:
    """Load the optional global spelling correction overrides.

    The file may hold either a bare list of rules or ``{"correctionsToApply": [...]}``.
    A missing path yields an empty list.
    """
    if corrections_path is None:
        return []
    path = Path(corrections_path)
    if not path.exists():
        return []

    data = _read_json(path)
    if isinstance(data, Mapping):
        data = data.get("correctionsToApply", [])
    if not isinstance(data, list):
        raise SiteConfigError(f"Spelling corrections must be a list of rules: {path}")
    return [dict(rule) for rule in data if isinstance(rule, Mapping)]


def require_transcription_prompt(site_config: Mapping[str, Any]) -> str:
    """Return the transcription prompt, failing before any work starts when absent."""
    prompt = site_config.get("transcription_prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        site_id = site_config.get("id", "<unknown>")
        raise SiteConfigError(
            f"transcription_prompt is required in site configuration for {site_id}."
        )
    return prompt


def _read_json(path: Path) -> Any:
    if not path.exists():
        raise SiteConfigError(f"Site configuration file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        try:
            return json.load(handle)
        except json.JSONDecodeError as exc:
            raise SiteConfigError(f"Invalid JSON in {path}: {exc}") from exc


def _validate_site_config(config: Mapping[str, Any]) -> None:
    validator = Draft7Validator(_load_schema())
    errors = sorted(validator.iter_errors(config), key=lambda err: list(err.path))
    if not errors:
        return

    formatted = []
    for error in errors:
        path = ".".join(str(piece) for piece in error.path) or "<root>"
        formatted.append(f"- {path}: {error.message}")

    error_message = "\n".join(formatted)
    raise SiteConfigError(f"Site configuration validation failed:\n{error_message}") from errors[0]


def _load_schema() -> dict[str, Any]:
    with SCHEMA_PATH.open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise SiteConfigError("Site configuration schema must be a JSON object.")
    return cast(dict[str, Any], data)
