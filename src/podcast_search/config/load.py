"""Load the per-environment pipeline configuration.

A configuration is ``configs/{env}.yaml`` with programmatic overrides and then
``PODCAST_SEARCH_<SECTION>__<KEY>`` environment variables merged on top. The result is checked
against ``schema.json`` plus the cross-field rules JSON Schema cannot express.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from copy import deepcopy
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft7Validator

from ..exceptions import ConfigurationError

__all__ = ["ConfigError", "environment_overrides", "load_config"]

PROJECT_ROOT = Path(__file__).resolve().parents[3]
CONFIG_DIR = PROJECT_ROOT / "configs"
SCHEMA_PATH = Path(__file__).with_name("schema.json")
ENV_PREFIX = "PODCAST_SEARCH_"
ENV_SEPARATOR = "__"


class ConfigError(ConfigurationError):
    """Raised when a configuration file is missing, unreadable or invalid."""


def load_config(
    env: str = "dev",
    *,
    config_dir: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    validate: bool = True,
) -> dict[str, Any]:
    """Return the merged configuration for ``env``.

    Raises:
        ConfigError: if no file exists for ``env``, the YAML is invalid or validation fails.
    """
    path = _find_config_file(Path(config_dir) if config_dir is not None else CONFIG_DIR, env)
    config = _read_yaml(path)
    if overrides:
        config = _merge(config, overrides)
    env_overrides = environment_overrides(os.environ)
    if env_overrides:
        config = _merge(config, env_overrides)

    if validate:
        problems = _schema_problems(config) or _range_problems(config)
        if problems:
            listing = "\n".join(f"- {problem}" for problem in problems)
            raise ConfigError(f"Configuration validation failed for {path.name}:\n{listing}")
    return config


def environment_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Nested overrides from ``PODCAST_SEARCH_*`` variables; values are read as YAML scalars.

    ``PODCAST_SEARCH_INDEXING__COMPRESSION=zstd`` sets ``config["indexing"]["compression"]``.
    """
    overrides: dict[str, Any] = {}
    for name, raw in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        path = [
            part.strip().lower().replace("-", "_")
            for part in name[len(ENV_PREFIX) :].split(ENV_SEPARATOR)
            if part.strip()
        ]
        if not path:
            continue
        section = overrides
        for part in path[:-1]:
            child = section.get(part)
            if not isinstance(child, dict):
                child = section[part] = {}
            section = child
        section[path[-1]] = _scalar(raw)
    return overrides


def _scalar(raw: str) -> Any:
    if raw == "":
        return ""
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def _find_config_file(base_dir: Path, env: str) -> Path:
    for suffix in (".yaml", ".yml"):
        candidate = base_dir / f"{env}{suffix}"
        if candidate.exists():
            return candidate
    raise ConfigError(f"Configuration file not found for environment '{env}' in {base_dir}.")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration root must be a mapping in {path}.")
    return data


def _merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged = deepcopy(dict(base))
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = _merge(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


@lru_cache(maxsize=1)
def _validator() -> Draft7Validator:
    schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
    if not isinstance(schema, dict):
        raise ConfigError("Configuration schema must be a JSON object.")
    return Draft7Validator(schema)


def _schema_problems(config: Mapping[str, Any]) -> list[str]:
    errors = sorted(_validator().iter_errors(config), key=lambda err: list(err.path))
    return [
        f"{'.'.join(str(piece) for piece in error.path) or '<root>'}: {error.message}"
        for error in errors
    ]


def _range_problems(config: Mapping[str, Any]) -> list[str]:
    problems: list[str] = []
    transcription = config.get("transcription") or {}
    chunk = transcription.get("chunk_duration_minutes")
    ceiling = transcription.get("max_duration_minutes")
    if chunk is not None and ceiling is not None and chunk > ceiling:
        problems.append(
            f"transcription.chunk_duration_minutes: {chunk} exceeds "
            f"max_duration_minutes ({ceiling})"
        )

    indexing = config.get("indexing") or {}
    low, high = indexing.get("min_chunk_ms"), indexing.get("max_chunk_ms")
    if low is not None and high is not None and low > high:
        problems.append(f"indexing.min_chunk_ms: {low} exceeds max_chunk_ms ({high})")
    return problems
