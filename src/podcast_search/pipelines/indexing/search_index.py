"""In-memory full-text index over search entries."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ...utils.logging import get_logger
from .extractor import SearchEntry

__all__ = ["SCHEMA", "SearchHit", "SearchIndex", "SearchResults", "tokenize"]

LOGGER = get_logger(__name__)

SCHEMA: dict[str, str] = {
    "id": "string",
    "text": "string",
    "sequentialEpisodeIdAsString": "string",
    "startTimeMs": "number",
    "endTimeMs": "number",
    "episodePublishedUnixTimestamp": "number",
}

EXPORT_FORMAT_VERSION = 1

_TOKEN_RE = re.compile(r"[^\W_]+", re.UNICODE)


def tokenize(text: str) -> list[str]:
    """Lower-cased alphanumeric runs of ``text``."""
    return [token.lower() for token in _TOKEN_RE.findall(text or "")]


@dataclass(frozen=True, slots=True)
class SearchHit:
    id: str
    document: dict[str, Any]


@dataclass(slots=True)
class SearchResults:
    hits: list[SearchHit] = field(default_factory=list)
    count: int = 0

    @property
    def ids(self) -> list[str]:
        return [hit.id for hit in self.hits]


class SearchIndex:
    """Inverted index keyed by token; documents keep their insertion position.

    Duplicate ids are stored as separate documents so they remain detectable.
    """

    def __init__(self, schema: Mapping[str, str] | None = None) -> None:
        self.schema = dict(schema or SCHEMA)
        self._documents: list[dict[str, Any]] = []
        self._postings: dict[str, list[int]] = {}

    # ------------------------------------------------------------------ #
    # Mutation
    # ------------------------------------------------------------------ #
    def insert(self, entry: SearchEntry | Mapping[str, Any]) -> int:
        document = entry.to_dict() if isinstance(entry, SearchEntry) else dict(entry)
        missing = [name for name in self.schema if name not in document]
        if missing:
            raise ValueError(f"Document is missing schema fields: {', '.join(missing)}")

        position = len(self._documents)
        self._documents.append(document)
        for token in dict.fromkeys(tokenize(str(document.get("text", "")))):
            self._postings.setdefault(token, []).append(position)
        return position

    def insert_multiple(
        self,
        entries: Iterable[SearchEntry | Mapping[str, Any]],
        batch_size: int = 500,
    ) -> int:
        """Insert entries in batches of ``batch_size``; returns the number inserted."""
        if batch_size <= 0:
            raise ValueError("batch_size must be positive.")
        inserted = 0
        batch: list[SearchEntry | Mapping[str, Any]] = []
        for entry in entries:
            batch.append(entry)
            if len(batch) >= batch_size:
                inserted += self._insert_batch(batch)
                batch = []
        if batch:
            inserted += self._insert_batch(batch)
        return inserted

    def _insert_batch(self, batch: Sequence[SearchEntry | Mapping[str, Any]]) -> int:
        for entry in batch:
            self.insert(entry)
        LOGGER.debug("Inserted batch of %d documents (total %d).", len(batch), self.count())
        return len(batch)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    def count(self) -> int:
        return len(self._documents)

    def search(
        self,
        term: str,
        *,
        limit: int = 10,
        offset: int = 0,
        sort_by: str | None = None,
        sort_order: str = "DESC",
        episode_ids: Iterable[str] | None = None,
    ) -> SearchResults:
        """Return documents containing every token of ``term``.

        Without ``sort_by`` hits keep insertion order. An empty term matches everything.
        """
        positions = self._match(tokenize(term))
        if episode_ids is not None:
            wanted = {str(value) for value in episode_ids}
            positions = [
                position
                for position in positions
                if self._documents[position].get("sequentialEpisodeIdAsString") in wanted
            ]

        if sort_by is not None:
            if sort_by not in self.schema:
                raise ValueError(f"Unknown sort field: {sort_by}")
            order = sort_order.upper()
            if order not in {"ASC", "DESC"}:
                raise ValueError(f"sort_order must be ASC or DESC, got {sort_order!r}")
            positions = sorted(
                positions,
                key=lambda position: self._documents[position][sort_by],
                reverse=order == "DESC",
            )

        window = positions[offset : offset + limit] if limit >= 0 else positions[offset:]
        hits = [
            SearchHit(str(self._documents[position]["id"]), dict(self._documents[position]))
            for position in window
        ]
        return SearchResults(hits=hits, count=len(positions))

    def _match(self, tokens: Sequence[str]) -> list[int]:
        if not tokens:
            return list(range(len(self._documents)))
        postings = [self._postings.get(token) for token in dict.fromkeys(tokens)]
        if any(not posting for posting in postings):
            return []
        postings.sort(key=len)
        matched = set(postings[0])
        for posting in postings[1:]:
            matched.intersection_update(posting)
        return sorted(matched)

    # ------------------------------------------------------------------ #
    # Export / load
    # ------------------------------------------------------------------ #
    def export(self) -> dict[str, Any]:
        """Plain-data representation suitable for a binary container."""
        return {
            "version": EXPORT_FORMAT_VERSION,
            "schema": dict(self.schema),
            "documents": [dict(document) for document in self._documents],
        }

    @classmethod
    def load(cls, payload: Mapping[str, Any]) -> SearchIndex:
        if not isinstance(payload, Mapping):
            raise ValueError(f"Index export must be a mapping, got {type(payload).__name__}.")
        version = payload.get("version")
        if version != EXPORT_FORMAT_VERSION:
            raise ValueError(f"Unsupported index export version: {version!r}")
        documents = payload.get("documents")
        if not isinstance(documents, list):
            raise ValueError("Index export has no documents list.")
        index = cls(payload.get("schema") or SCHEMA)
        for document in documents:
            index.insert(document)
        return index
