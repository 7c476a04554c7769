"""Tests for per-site configuration and spelling correction files."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from podcast_search.config import (
    SiteConfigError,
    load_custom_corrections,
    load_site_config,
    require_transcription_prompt,
)

EXAMPLES = Path(__file__).resolve().parents[3] / "configs"


def write_json(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_example_site_config_is_valid() -> None:
    config = load_site_config(EXAMPLES / "site.example.json")

    assert config["id"] == "listenfairplay"
    assert require_transcription_prompt(config).startswith("Hi, I'm Jon")


def test_site_config_rejects_malformed_rules(tmp_path: Path) -> None:
    path = write_json(
        tmp_path / "site.json",
        {"id": "demo", "spelling_corrections": [{"misspellings": ["Jon"]}]},
    )

    with pytest.raises(SiteConfigError):
        load_site_config(path)


def test_missing_prompt_is_a_configuration_error() -> None:
    with pytest.raises(SiteConfigError, match="transcription_prompt"):
        require_transcription_prompt({"id": "demo", "transcription_prompt": "   "})


def test_custom_corrections_accepts_wrapped_and_bare_lists(tmp_path: Path) -> None:
    rule = {"misspellings": ["Jon Smith"], "correctedSpelling": "John Smith"}
    wrapped = write_json(tmp_path / "wrapped.json", {"correctionsToApply": [rule]})
    bare = write_json(tmp_path / "bare.json", [rule])

    assert load_custom_corrections(wrapped) == [rule]
    assert load_custom_corrections(bare) == [rule]


def test_custom_corrections_missing_file_is_empty(tmp_path: Path) -> None:
    assert load_custom_corrections(None) == []
    assert load_custom_corrections(tmp_path / "absent.json") == []


def test_custom_corrections_rejects_scalars(tmp_path: Path) -> None:
    path = write_json(tmp_path / "bad.json", {"correctionsToApply": "John Smith"})

    with pytest.raises(SiteConfigError):
        load_custom_corrections(path)
