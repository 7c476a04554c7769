"""Deterministic spelling corrections for transcript text."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..storage.blob_store import BlobStore
from .logging import get_logger

__all__ = [
    "CorrectionOutcome",
    "CorrectionResult",
    "SpellingRule",
    "aggregate_correction_results",
    "apply_corrections",
    "apply_corrections_to_file",
    "merge_rules",
]

LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SpellingRule:
    """Replace every whole-word, case-insensitive occurrence of a misspelling."""

    misspellings: tuple[str, ...]
    corrected_spelling: str

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> SpellingRule:
        raw = payload.get("misspellings") or []
        corrected = payload.get("correctedSpelling", payload.get("corrected_spelling"))
        if not isinstance(corrected, str) or not corrected:
            raise ValueError(f"Spelling rule is missing correctedSpelling: {dict(payload)!r}")
        return cls(tuple(str(item) for item in raw if item), corrected)

    def patterns(self) -> list[re.Pattern[str]]:
        return [
            re.compile(rf"\b{re.escape(misspelling)}\b", re.IGNORECASE)
            for misspelling in self.misspellings
        ]


@dataclass(slots=True)
class CorrectionResult:
    corrected_spelling: str
    corrections_applied: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "correctedSpelling": self.corrected_spelling,
            "correctionsApplied": self.corrections_applied,
        }


@dataclass(slots=True)
class CorrectionOutcome:
    """Corrected text together with per-rule counts."""

    corrected_content: str
    correction_results: list[CorrectionResult] = field(default_factory=list)

    @property
    def total_corrections(self) -> int:
        return sum(result.corrections_applied for result in self.correction_results)

    @property
    def changed(self) -> bool:
        return self.total_corrections > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "correctedContent": self.corrected_content,
            "correctionResults": [result.to_dict() for result in self.correction_results],
            "totalCorrections": self.total_corrections,
        }


def merge_rules(
    site_rules: Iterable[Mapping[str, Any] | SpellingRule],
    global_rules: Iterable[Mapping[str, Any] | SpellingRule] = (),
) -> list[SpellingRule]:
    """Return site rules followed by the global overrides, in configured order."""
    merged: list[SpellingRule] = []
    for rule in [*site_rules, *global_rules]:
        merged.append(rule if isinstance(rule, SpellingRule) else SpellingRule.from_dict(rule))
    return merged


def apply_corrections(text: str, rules: Sequence[SpellingRule]) -> CorrectionOutcome:
    """Apply ``rules`` in order and count the replacements that changed the text.

    A match that already equals the corrected spelling is left alone and not counted, which
    keeps the pass idempotent.
    """
    content = text
    results: list[CorrectionResult] = []

    for rule in rules:
        result = CorrectionResult(rule.corrected_spelling)

        def _replace(match: re.Match[str], *, _rule: SpellingRule = rule) -> str:
            if match.group(0) != _rule.corrected_spelling:
                result.corrections_applied += 1
            return _rule.corrected_spelling

        for pattern in rule.patterns():
            content = pattern.sub(_replace, content)

        if result.corrections_applied:
            LOGGER.debug(
                "Applied %d correction(s) for '%s'.",
                result.corrections_applied,
                rule.corrected_spelling,
            )
        results.append(result)

    return CorrectionOutcome(content, results)


def apply_corrections_to_file(
    store: BlobStore,
    key: str,
    rules: Sequence[SpellingRule],
) -> CorrectionOutcome:
    """Correct the document stored at ``key``; it is rewritten only when something changed."""
    original = store.get_file(key).decode("utf-8")
    outcome = apply_corrections(original, rules)
    if outcome.changed:
        store.save_file(key, outcome.corrected_content.encode("utf-8"))
        LOGGER.info("Applied %d spelling correction(s) to %s.", outcome.total_corrections, key)
    return outcome


def aggregate_correction_results(outcomes: Iterable[CorrectionOutcome]) -> list[CorrectionResult]:
    """Sum corrections per corrected spelling across files, most frequent first."""
    totals: dict[str, int] = {}
    for outcome in outcomes:
        for result in outcome.correction_results:
            if result.corrections_applied:
                totals[result.corrected_spelling] = (
                    totals.get(result.corrected_spelling, 0) + result.corrections_applied
                )
    ordered = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    return [CorrectionResult(spelling, count) for spelling, count in ordered]
